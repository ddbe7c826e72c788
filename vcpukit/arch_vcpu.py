"""Interface for architecture-specific virtual CPUs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .exit import VCpuExitReason


class ArchVCpu(ABC):
    """An architecture-specific virtual CPU.

    Subclasses are constructed with a creation config, then receive exactly one
    ``set_entry`` and one ``set_ept_root`` call followed by one ``setup`` call.
    Failures are reported by raising :class:`vcpukit.errors.VCpuError`.
    """

    def __init__(self, config: Any) -> None:
        self.create_config = config

    @abstractmethod
    def set_entry(self, entry: int) -> None:
        """Set the guest physical entry point."""

    @abstractmethod
    def set_ept_root(self, ept_root: int) -> None:
        """Set the host physical address of the nested page table root."""

    @abstractmethod
    def setup(self, config: Any) -> None:
        """Finish setting up the virtual CPU."""

    @abstractmethod
    def run(self) -> VCpuExitReason:
        """Run the virtual CPU until a VM exit occurs."""

    @abstractmethod
    def bind(self) -> None:
        """Bind the virtual CPU to the current physical CPU."""

    @abstractmethod
    def unbind(self) -> None:
        """Unbind the virtual CPU from the current physical CPU."""

    @abstractmethod
    def set_gpr(self, reg: int, val: int) -> None:
        """Set a general-purpose register by index."""