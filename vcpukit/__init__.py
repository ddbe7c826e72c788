"""An architecture-independent virtual CPU abstraction for hypervisors."""

__version__ = "0.1.0"

__all__ = ["arch_vcpu", "errors", "exit", "hal", "percpu", "vcpu"]