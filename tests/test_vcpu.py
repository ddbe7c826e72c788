import threading

import pytest

from vcpukit.arch_vcpu import ArchVCpu
from vcpukit.errors import BadStateError, VCpuError
from vcpukit.exit import Halt, IoRead, AccessWidth
from vcpukit.vcpu import (
    VCpu,
    VCpuState,
    clear_current_vcpu,
    get_current_vcpu,
    set_current_vcpu,
)


class FakeArch(ArchVCpu):
    def __init__(self, config):
        super().__init__(config)
        self.calls = []
        self.currents = []
        self.fail_on = set()
        self.exit_reason = Halt()
        self.gprs = {}

    def _record(self, name, *args):
        self.currents.append(get_current_vcpu())
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise VCpuError(f"{name} failed")

    def set_entry(self, entry):
        self._record("set_entry", entry)

    def set_ept_root(self, ept_root):
        self._record("set_ept_root", ept_root)

    def setup(self, config):
        self._record("setup", config)

    def run(self):
        self._record("run")
        return self.exit_reason

    def bind(self):
        self._record("bind")

    def unbind(self):
        self._record("unbind")

    def set_gpr(self, reg, val):
        self.gprs[reg] = val


@pytest.fixture(autouse=True)
def _reset_current():
    clear_current_vcpu()
    yield
    clear_current_vcpu()


def make_vcpu(vcpu_id=0, phys_cpu_set=None):
    return VCpu(vcpu_id, 2, phys_cpu_set, FakeArch, "create-cfg")


def ready_vcpu():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, "setup-cfg")
    vcpu.bind()
    return vcpu


def test_new_vcpu_properties():
    vcpu = make_vcpu(vcpu_id=3, phys_cpu_set=0b101)
    assert vcpu.id == 3
    assert vcpu.favor_phys_cpu == 2
    assert vcpu.phys_cpu_set == 0b101
    assert vcpu.is_bsp is False
    assert vcpu.state is VCpuState.CREATED
    assert vcpu.arch_vcpu.create_config == "create-cfg"


def test_vcpu_zero_is_bsp_and_unrestricted():
    vcpu = make_vcpu(vcpu_id=0)
    assert vcpu.is_bsp is True
    assert vcpu.phys_cpu_set is None


def test_state_values_follow_lifecycle_order():
    assert [s.value for s in VCpuState] == list(range(6))
    assert VCpuState(1) is VCpuState.CREATED


def test_setup_calls_arch_in_order_and_frees():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, "setup-cfg")
    assert vcpu.arch_vcpu.calls == [
        ("set_entry", 0x8000),
        ("set_ept_root", 0x1000),
        ("setup", "setup-cfg"),
    ]
    assert vcpu.state is VCpuState.FREE


def test_arch_calls_see_vcpu_as_current():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, None)
    assert all(current is vcpu for current in vcpu.arch_vcpu.currents)
    assert get_current_vcpu() is None


def test_setup_twice_is_bad_state_and_invalidates():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, None)
    with pytest.raises(BadStateError):
        vcpu.setup(0x8000, 0x1000, None)
    assert vcpu.state is VCpuState.INVALID


def test_setup_failure_invalidates_and_clears_current():
    vcpu = make_vcpu()
    vcpu.arch_vcpu.fail_on.add("set_ept_root")
    with pytest.raises(VCpuError, match="set_ept_root failed"):
        vcpu.setup(0x8000, 0x1000, None)
    assert vcpu.state is VCpuState.INVALID
    assert ("setup", None) not in vcpu.arch_vcpu.calls
    assert get_current_vcpu() is None


def test_full_lifecycle():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, None)
    vcpu.bind()
    assert vcpu.state is VCpuState.READY
    reason = vcpu.run()
    assert reason == Halt()
    assert vcpu.state is VCpuState.READY
    vcpu.unbind()
    assert vcpu.state is VCpuState.FREE
    names = [call[0] for call in vcpu.arch_vcpu.calls]
    assert names[-3:] == ["bind", "run", "unbind"]


def test_run_returns_arch_exit_reason():
    vcpu = ready_vcpu()
    vcpu.arch_vcpu.exit_reason = IoRead(0x3F8, AccessWidth.BYTE)
    assert vcpu.run() == IoRead(0x3F8, AccessWidth.BYTE)


def test_run_when_not_ready_fails():
    vcpu = make_vcpu()
    with pytest.raises(BadStateError):
        vcpu.run()
    assert vcpu.state is VCpuState.INVALID
    assert vcpu.arch_vcpu.calls == []


def test_run_failure_invalidates():
    vcpu = ready_vcpu()
    vcpu.arch_vcpu.fail_on.add("run")
    with pytest.raises(VCpuError):
        vcpu.run()
    assert vcpu.state is VCpuState.INVALID


def test_bind_requires_free():
    vcpu = make_vcpu()
    with pytest.raises(BadStateError):
        vcpu.bind()
    assert vcpu.state is VCpuState.INVALID


def test_unbind_requires_ready():
    vcpu = make_vcpu()
    vcpu.setup(0x8000, 0x1000, None)
    with pytest.raises(BadStateError):
        vcpu.unbind()
    assert vcpu.state is VCpuState.INVALID


def test_transition_state():
    vcpu = make_vcpu()
    vcpu.transition_state(VCpuState.CREATED, VCpuState.BLOCKED)
    assert vcpu.state is VCpuState.BLOCKED
    with pytest.raises(BadStateError, match="not CREATED, but BLOCKED"):
        vcpu.transition_state(VCpuState.CREATED, VCpuState.FREE)
    assert vcpu.state is VCpuState.INVALID


def test_state_transition_context_error_invalidates():
    vcpu = make_vcpu()
    with pytest.raises(KeyError):
        with vcpu.state_transition(VCpuState.CREATED, VCpuState.FREE):
            raise KeyError("boom")
    assert vcpu.state is VCpuState.INVALID


def test_state_transition_context_success():
    vcpu = make_vcpu()
    with vcpu.state_transition(VCpuState.CREATED, VCpuState.FREE):
        assert vcpu.state is VCpuState.CREATED
    assert vcpu.state is VCpuState.FREE


def test_force_state():
    vcpu = make_vcpu()
    vcpu.force_state(VCpuState.RUNNING)
    assert vcpu.state is VCpuState.RUNNING
    vcpu.transition_state(VCpuState.RUNNING, VCpuState.READY)
    assert vcpu.state is VCpuState.READY


def test_as_current_sets_and_clears():
    vcpu = make_vcpu()
    with vcpu.as_current() as current:
        assert current is vcpu
        assert get_current_vcpu() is vcpu
    assert get_current_vcpu() is None


def test_nested_as_current_rejected():
    first = make_vcpu(vcpu_id=0)
    second = make_vcpu(vcpu_id=1)
    with first.as_current():
        with pytest.raises(RuntimeError, match="Nested"):
            with second.as_current():
                pass
        assert get_current_vcpu() is first


def test_manipulate_while_other_current_invalidates():
    other = make_vcpu(vcpu_id=1)
    vcpu = make_vcpu()
    set_current_vcpu(other)
    with pytest.raises(RuntimeError):
        vcpu.manipulate_arch_vcpu(
            VCpuState.CREATED, VCpuState.FREE, lambda arch: None
        )
    assert vcpu.state is VCpuState.INVALID


def test_manipulate_returns_value():
    vcpu = make_vcpu()
    result = vcpu.manipulate_arch_vcpu(
        VCpuState.CREATED, VCpuState.FREE, lambda arch: arch.create_config
    )
    assert result == "create-cfg"
    assert vcpu.state is VCpuState.FREE


def test_set_and_clear_current():
    vcpu = make_vcpu()
    set_current_vcpu(vcpu)
    assert get_current_vcpu() is vcpu
    clear_current_vcpu()
    assert get_current_vcpu() is None


def test_current_is_per_thread():
    vcpu = make_vcpu()
    seen = []
    set_current_vcpu(vcpu)
    thread = threading.Thread(target=lambda: seen.append(get_current_vcpu()))
    thread.start()
    thread.join()
    assert seen == [None]
    assert get_current_vcpu() is vcpu


def test_set_entry_and_gpr_delegate_without_state_change():
    vcpu = make_vcpu()
    vcpu.set_entry(0x4000)
    vcpu.set_gpr(1, 42)
    assert vcpu.arch_vcpu.calls == [("set_entry", 0x4000)]
    assert vcpu.arch_vcpu.gprs == {1: 42}
    assert vcpu.state is VCpuState.CREATED