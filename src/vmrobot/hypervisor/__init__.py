"""Hypervisor capability interface for vmrobot.

Public API:
    Hypervisor -- Abstract automation entry point
    Machine, Snapshot, Progress -- Machine records and async operations
    HypervisorSession, Console, Mouse, Keyboard -- Lock and device handles
    HypervisorError -- Raised by backends
    InMemoryHypervisor -- In-process backend
"""

from vmrobot.hypervisor.base import (
    CloneMode,
    CloneOption,
    Console,
    Hypervisor,
    HypervisorError,
    HypervisorSession,
    Keyboard,
    LockType,
    Machine,
    MachineState,
    Mouse,
    ProcessRequest,
    ProcessResult,
    Progress,
    Snapshot,
)

__all__ = [
    "CloneMode",
    "CloneOption",
    "Console",
    "Hypervisor",
    "HypervisorError",
    "HypervisorSession",
    "InMemoryHypervisor",
    "Keyboard",
    "LockType",
    "Machine",
    "MachineState",
    "Mouse",
    "ProcessRequest",
    "ProcessResult",
    "Progress",
    "Snapshot",
]


def __getattr__(name: str) -> type:
    """Lazy import for backends that pull in extra dependencies."""
    if name == "InMemoryHypervisor":
        from vmrobot.hypervisor.memory import InMemoryHypervisor
        return InMemoryHypervisor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
