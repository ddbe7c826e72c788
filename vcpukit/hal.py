"""Services the host kernel or hypervisor provides to virtual CPUs."""

from __future__ import annotations

from abc import ABC, abstractmethod


class VCpuHal(ABC):
    """Host services: frame allocation, address translation and IRQs."""

    @abstractmethod
    def alloc_frame(self) -> int | None:
        """Allocate a frame; return its host physical address or None on failure."""

    @abstractmethod
    def dealloc_frame(self, paddr: int) -> None:
        """Free the frame at host physical address ``paddr``."""

    @abstractmethod
    def phys_to_virt(self, paddr: int) -> int:
        """Convert a host physical address to a host virtual address."""

    @abstractmethod
    def virt_to_phys(self, vaddr: int) -> int:
        """Convert a host virtual address to a host physical address."""

    def irq_fetch(self) -> int:
        """Return the current IRQ number; 0 unless the host overrides it."""
        return 0

    def irq_handler(self) -> None:
        """Dispatch the current IRQ to the host; hosts must override this."""
        raise NotImplementedError("irq_handler is not implemented")