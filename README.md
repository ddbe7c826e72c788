# vcpukit

A small virtual CPU abstraction for hypervisors. `VCpu` gives every
architecture the same interface and the same lifecycle state model. The
work that depends on the architecture is done by a subclass of `ArchVCpu`
that you write.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `vcpukit.arch_vcpu`: `ArchVCpu`, the abstract base class for an
  architecture-specific vCPU. It is constructed with a creation config, which
  is stored as `create_config`. Implement `set_entry`, `set_ept_root`, `setup`,
  `run`, `bind`, `unbind` and `set_gpr`. `run` returns a `VCpuExitReason`.
  Report failures by raising an exception, preferably a `VCpuError`.
- `vcpukit.vcpu`: `VCpu` wraps an `ArchVCpu`. Pass it the arch class and the
  creation config, and it builds the instance. It enforces these state
  transitions with `VCpuState`:
  `CREATED -> FREE` (`setup`), `FREE -> READY` (`bind`),
  `READY -> RUNNING -> READY` (`run`), `READY -> FREE` (`unbind`).
  If an operation starts from the wrong state, `BadStateError` is raised. If
  the architecture call raises, its exception propagates. In both cases the
  vCPU is left `INVALID`.
  - `id`, `favor_phys_cpu`, `phys_cpu_set`, `is_bsp` (id 0), `state` and
    `arch_vcpu` are read-only properties.
  - `force_state(state)` sets the state directly and bypasses the model.
  - `state_transition(from_state, to_state)` and `as_current()` are context
    managers. `manipulate_arch_vcpu(from_state, to_state, func)` combines
    them and calls `func` with the arch vCPU. `transition_state(from_state,
    to_state)` performs a bare transition.
  - `set_entry` and `set_gpr` forward straight to the arch vCPU with no
    state check.
  - `get_current_vcpu()`, `set_current_vcpu(vcpu)` and
    `clear_current_vcpu()` manage the current vCPU of each thread. While an
    `ArchVCpu` method runs through `VCpu`, `get_current_vcpu()` returns the
    `VCpu` that wraps it. Nesting `as_current()` raises `RuntimeError`.
- `vcpukit.exit`: the exit reasons, all frozen dataclasses that subclass
  `VCpuExitReason`. They are `Hypercall` (exactly six `args`), `MmioRead`,
  `MmioWrite`, `SysRegRead`, `SysRegWrite`, `IoRead` and `IoWrite` (port
  0–0xFFFF), `ExternalInterrupt`, `NestedPageFault`, `Halt`, `CpuUp`,
  `CpuDown`, `SystemDown`, `Nothing` and `FailEntry`. The module also holds
  `AccessWidth`, an `IntEnum` of access widths in bytes.
  `AccessWidth.from_size(4)` is `AccessWidth.DWORD`, and
  `AccessWidth.QWORD.bits_range()` is `range(0, 64)`.
- `vcpukit.percpu`: `ArchPerCpu` is the abstract per-physical-CPU
  virtualization state. `PerCpu(arch_class)` holds it. `init(cpu_id)` builds
  the state and may be called only once. `arch`, `is_enabled`,
  `hardware_enable` and `hardware_disable` raise `BadStateError` before
  `init`. `close()`, or leaving a `with` block, disables virtualization if it
  is still enabled.
- `vcpukit.hal`: `VCpuHal`, the abstract interface that the host provides.
  It covers frame allocation, address translation and IRQs. `irq_fetch`
  returns 0 by default. `irq_handler` raises `NotImplementedError` unless you
  override it.
- `vcpukit.errors`: `VCpuError` and its subclass `BadStateError`.

## Example

```python
from vcpukit.arch_vcpu import ArchVCpu
from vcpukit.exit import Halt
from vcpukit.vcpu import VCpu, VCpuState, get_current_vcpu


class DemoVCpu(ArchVCpu):
    def __init__(self, config):
        super().__init__(config)
        self.entry = None
        self.ept_root = None
        self.regs = {}

    def set_entry(self, entry):
        self.entry = entry

    def set_ept_root(self, ept_root):
        self.ept_root = ept_root

    def setup(self, config):
        pass

    def run(self):
        assert get_current_vcpu() is not None
        return Halt()

    def bind(self):
        pass

    def unbind(self):
        pass

    def set_gpr(self, reg, val):
        self.regs[reg] = val


vcpu = VCpu(0, 0, None, DemoVCpu, None)
vcpu.setup(0x8000_0000, 0x1000, None)
vcpu.bind()
exit_reason = vcpu.run()
assert isinstance(exit_reason, Halt)
assert vcpu.state is VCpuState.READY
vcpu.unbind()
assert vcpu.state is VCpuState.FREE
```

## What it does not do

vcpukit contains no architecture backends and does not itself run guest
code. It provides the interfaces (`ArchVCpu`, `ArchPerCpu`, `VCpuHal`), the
state model and the exit reason types. Executing guests, allocating memory
and handling interrupts are left to the classes you supply.