"""Per-physical-CPU virtualization state."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from .errors import BadStateError


class ArchPerCpu(ABC):
    """Architecture-specific virtualization state of one physical CPU."""

    def __init__(self, cpu_id: int) -> None:
        self.cpu_id = cpu_id

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether hardware virtualization is enabled on this CPU."""

    @abstractmethod
    def hardware_enable(self) -> None:
        """Enable hardware virtualization on this CPU."""

    @abstractmethod
    def hardware_disable(self) -> None:
        """Disable hardware virtualization on this CPU."""


A = TypeVar("A", bound=ArchPerCpu)


class PerCpu(Generic[A]):
    """Host per-CPU state used to run guests.

    Created uninitialized; :meth:`init` builds the architecture state. Closing
    it (directly or by leaving a ``with`` block) disables hardware
    virtualization if it is still enabled.
    """

    def __init__(self, arch_class: type[A]) -> None:
        self._arch_class = arch_class
        self._cpu_id: int | None = None
        self._arch: A | None = None

    @property
    def cpu_id(self) -> int | None:
        """The id of the CPU, or None before initialization."""
        return self._cpu_id

    @property
    def is_initialized(self) -> bool:
        """Whether :meth:`init` has succeeded."""
        return self._cpu_id is not None

    def init(self, cpu_id: int) -> None:
        """Initialize the state for CPU ``cpu_id``; may be done only once."""
        if self.is_initialized:
            raise BadStateError("per-CPU state is already initialized")
        self._arch = self._arch_class(cpu_id)
        self._cpu_id = cpu_id

    @property
    def arch(self) -> A:
        """The architecture-specific state; raises if not initialized."""
        if self._arch is None:
            raise BadStateError("per-CPU state is not initialized")
        return self._arch

    def is_enabled(self) -> bool:
        """Whether this CPU has hardware virtualization enabled."""
        return self.arch.is_enabled()

    def hardware_enable(self) -> None:
        """Enable hardware virtualization on this CPU."""
        self.arch.hardware_enable()

    def hardware_disable(self) -> None:
        """Disable hardware virtualization on this CPU."""
        self.arch.hardware_disable()

    def close(self) -> None:
        """Disable hardware virtualization if it is enabled."""
        if self.is_initialized and self.is_enabled():
            self.hardware_disable()

    def __enter__(self) -> PerCpu[A]:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()