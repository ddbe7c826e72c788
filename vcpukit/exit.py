"""Access widths and the reasons a virtual CPU stops running."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

_PORT_MAX = 0xFFFF
_HYPERCALL_ARGS = 6


class AccessWidth(IntEnum):
    """The width of a memory, register or port access.

    "Word" means 16-bit data, as on x86. The value is the size in bytes.
    """

    BYTE = 1
    WORD = 2
    DWORD = 4
    QWORD = 8

    @classmethod
    def from_size(cls, size: int) -> AccessWidth:
        """Return the width for an access of ``size`` bytes."""
        try:
            return cls(size)
        except ValueError:
            raise ValueError(f"invalid access width: {size!r} bytes") from None

    def size(self) -> int:
        """The size of the access in bytes."""
        return int(self.value)

    def bits_range(self) -> range:
        """The range of bits that the access covers."""
        return range(0, self.value * 8)


def _check_port(port: int) -> None:
    if not 0 <= port <= _PORT_MAX:
        raise ValueError(f"I/O port out of range: {port!r}")


class VCpuExitReason:
    """Base class of every result returned by running a virtual CPU."""

    __slots__ = ()


@dataclass(frozen=True)
class Hypercall(VCpuExitReason):
    """The guest performed a hypercall."""

    nr: int
    args: tuple[int, ...]

    def __post_init__(self) -> None:
        args = tuple(self.args)
        if len(args) != _HYPERCALL_ARGS:
            raise ValueError(
                f"a hypercall takes exactly {_HYPERCALL_ARGS} arguments, got {len(args)}"
            )
        object.__setattr__(self, "args", args)


@dataclass(frozen=True)
class MmioRead(VCpuExitReason):
    """The guest performed an MMIO read into register ``reg``."""

    addr: int
    width: AccessWidth
    reg: int
    reg_width: AccessWidth


@dataclass(frozen=True)
class MmioWrite(VCpuExitReason):
    """The guest performed an MMIO write."""

    addr: int
    width: AccessWidth
    data: int


@dataclass(frozen=True)
class SysRegRead(VCpuExitReason):
    """The guest read a system register (MSR, CSR or AArch64 system register)."""

    addr: int
    reg: int


@dataclass(frozen=True)
class SysRegWrite(VCpuExitReason):
    """The guest wrote a system register (MSR, CSR or AArch64 system register)."""

    addr: int
    value: int


@dataclass(frozen=True)
class IoRead(VCpuExitReason):
    """The guest performed a port I/O read."""

    port: int
    width: AccessWidth

    def __post_init__(self) -> None:
        _check_port(self.port)


@dataclass(frozen=True)
class IoWrite(VCpuExitReason):
    """The guest performed a port I/O write."""

    port: int
    width: AccessWidth
    data: int

    def __post_init__(self) -> None:
        _check_port(self.port)


@dataclass(frozen=True)
class ExternalInterrupt(VCpuExitReason):
    """An external interrupt happened."""

    vector: int


@dataclass(frozen=True)
class NestedPageFault(VCpuExitReason):
    """A nested page fault (EPT violation on x86) happened."""

    addr: int
    access_flags: int


@dataclass(frozen=True)
class Halt(VCpuExitReason):
    """The virtual CPU halted."""


@dataclass(frozen=True)
class CpuUp(VCpuExitReason):
    """The guest asked to bring up a secondary CPU."""

    target_cpu: int
    entry_point: int
    arg: int


@dataclass(frozen=True)
class CpuDown(VCpuExitReason):
    """The virtual CPU powered off; it may be resumed later."""

    state: int = field(default=0)


@dataclass(frozen=True)
class SystemDown(VCpuExitReason):
    """The whole system should be powered off."""


@dataclass(frozen=True)
class Nothing(VCpuExitReason):
    """The virtual CPU handled the exit itself."""


@dataclass(frozen=True)
class FailEntry(VCpuExitReason):
    """VM entry failed; the hardware reason is architecture specific."""

    hardware_entry_failure_reason: int