"""Architecture-independent virtual CPU with a state-transition model."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import IntEnum
from typing import Any, Generic, TypeVar

from .arch_vcpu import ArchVCpu
from .errors import BadStateError
from .exit import VCpuExitReason

A = TypeVar("A", bound=ArchVCpu)
T = TypeVar("T")


class VCpuState(IntEnum):
    """The lifecycle state of a virtual CPU."""

    INVALID = 0
    CREATED = 1
    FREE = 2
    READY = 3
    RUNNING = 4
    BLOCKED = 5


class _CurrentSlot(threading.local):
    vcpu: VCpu[Any] | None = None


_current = _CurrentSlot()


def get_current_vcpu() -> VCpu[Any] | None:
    """Return the virtual CPU currently operated on by this thread, if any.

    While any method of an :class:`ArchVCpu` is called through :class:`VCpu`,
    this returns the :class:`VCpu` that contains it.
    """
    return _current.vcpu


def set_current_vcpu(vcpu: VCpu[Any]) -> None:
    """Mark ``vcpu`` as the current virtual CPU of this thread."""
    _current.vcpu = vcpu


def clear_current_vcpu() -> None:
    """Clear the current virtual CPU of this thread."""
    _current.vcpu = None


class VCpu(Generic[A]):
    """A virtual CPU that delegates architecture work to an :class:`ArchVCpu`.

    Operations are guarded by state transitions: each one requires a specific
    starting state, moves to a target state on success and to
    :attr:`VCpuState.INVALID` on any failure. Not thread-safe.
    """

    def __init__(
        self,
        vcpu_id: int,
        favor_phys_cpu: int,
        phys_cpu_set: int | None,
        arch_class: type[A],
        arch_config: Any,
    ) -> None:
        self._id = vcpu_id
        self._favor_phys_cpu = favor_phys_cpu
        self._phys_cpu_set = phys_cpu_set
        self._arch = arch_class(arch_config)
        self._state = VCpuState.CREATED

    def setup(self, entry: int, ept_root: int, arch_config: Any) -> None:
        """Set the entry point and EPT root, then set up the architecture state."""

        def _do(arch: A) -> None:
            arch.set_entry(entry)
            arch.set_ept_root(ept_root)
            arch.setup(arch_config)

        self.manipulate_arch_vcpu(VCpuState.CREATED, VCpuState.FREE, _do)

    @property
    def id(self) -> int:
        """The id of this virtual CPU."""
        return self._id

    @property
    def favor_phys_cpu(self) -> int:
        """The physical CPU that has priority to run this virtual CPU."""
        return self._favor_phys_cpu

    @property
    def phys_cpu_set(self) -> int | None:
        """Bit mask of physical CPUs allowed to run this vCPU; None means any."""
        return self._phys_cpu_set

    @property
    def is_bsp(self) -> bool:
        """Whether this is the bootstrap processor (the vCPU with id 0)."""
        return self._id == 0

    @property
    def state(self) -> VCpuState:
        """The current lifecycle state."""
        return self._state

    def force_state(self, state: VCpuState) -> None:
        """Set the state directly, bypassing the transition model."""
        self._state = VCpuState(state)

    @contextmanager
    def state_transition(
        self, from_state: VCpuState, to_state: VCpuState
    ) -> Iterator[None]:
        """Run the ``with`` body while transitioning from ``from_state`` to ``to_state``.

        Raises :class:`BadStateError` if the current state is not ``from_state``.
        The state becomes INVALID on any error, and ``to_state`` on success.
        """
        actual = self._state
        if actual != from_state:
            self._state = VCpuState.INVALID
            raise BadStateError(
                f"VCpu state is not {VCpuState(from_state).name}, but {actual.name}"
            )
        try:
            yield
        except Exception:
            self._state = VCpuState.INVALID
            raise
        self._state = VCpuState(to_state)

    @contextmanager
    def as_current(self) -> Iterator[VCpu[A]]:
        """Make this the current virtual CPU for the ``with`` body."""
        if get_current_vcpu() is not None:
            raise RuntimeError("Nested vcpu operation is not allowed!")
        set_current_vcpu(self)
        try:
            yield self
        finally:
            clear_current_vcpu()

    def manipulate_arch_vcpu(
        self, from_state: VCpuState, to_state: VCpuState, func: Callable[[A], T]
    ) -> T:
        """Call ``func`` on the architecture vCPU under a state transition,
        with this vCPU set as current."""
        with self.state_transition(from_state, to_state), self.as_current():
            return func(self._arch)

    def transition_state(self, from_state: VCpuState, to_state: VCpuState) -> None:
        """Move from ``from_state`` to ``to_state``; raise if not in ``from_state``."""
        with self.state_transition(from_state, to_state):
            pass

    @property
    def arch_vcpu(self) -> A:
        """The architecture-specific virtual CPU."""
        return self._arch

    def run(self) -> VCpuExitReason:
        """Run the virtual CPU until a VM exit and return the exit reason."""
        self.transition_state(VCpuState.READY, VCpuState.RUNNING)
        return self.manipulate_arch_vcpu(
            VCpuState.RUNNING, VCpuState.READY, lambda arch: arch.run()
        )

    def bind(self) -> None:
        """Bind the virtual CPU to the current physical CPU."""
        self.manipulate_arch_vcpu(
            VCpuState.FREE, VCpuState.READY, lambda arch: arch.bind()
        )

    def unbind(self) -> None:
        """Unbind the virtual CPU from the current physical CPU."""
        self.manipulate_arch_vcpu(
            VCpuState.READY, VCpuState.FREE, lambda arch: arch.unbind()
        )

    def set_entry(self, entry: int) -> None:
        """Set the entry address of the virtual CPU."""
        self._arch.set_entry(entry)

    def set_gpr(self, reg: int, val: int) -> None:
        """Set a general-purpose register by index."""
        self._arch.set_gpr(reg, val)