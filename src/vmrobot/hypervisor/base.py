"""Abstract capability interface of a hypervisor automation API.

The session lifecycle manager and the action pipeline only ever talk to
these interfaces, so any hypervisor whose automation API offers the
machine -> session -> console -> mouse/keyboard handle chain can back
them. The method set follows the VirtualBox Main API, which is the
shape most desktop hypervisors expose.

Example usage::

    async with SomeHypervisor() as hv:
        machine = await hv.find_machine("win10")
        session = await hv.get_session_object()
        await machine.lock_machine(session, LockType.SHARED)
        console = await session.get_console()
        keyboard = await console.get_keyboard()
        await keyboard.put_scancodes([0x1C, 0x9C])
        await session.unlock_machine()
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MachineState(str, enum.Enum):
    """Power state reported by a machine."""

    POWERED_OFF = "PoweredOff"
    SAVED = "Saved"
    ABORTED = "Aborted"
    RUNNING = "Running"
    PAUSED = "Paused"
    STARTING = "Starting"
    STOPPING = "Stopping"


class LockType(str, enum.Enum):
    """Kind of claim a session holds on a machine."""

    SHARED = "Shared"
    WRITE = "Write"


class CloneMode(str, enum.Enum):
    MACHINE_STATE = "MachineState"
    MACHINE_AND_CHILD_STATES = "MachineAndChildStates"
    ALL_STATES = "AllStates"


class CloneOption(str, enum.Enum):
    LINK = "Link"
    KEEP_ALL_MACS = "KeepAllMACs"
    KEEP_DISK_NAMES = "KeepDiskNames"


# ---------------------------------------------------------------------------
# Guest process call shape
# ---------------------------------------------------------------------------


class ProcessRequest(BaseModel):
    """A process to run inside the guest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    command_line: list[str] = Field(alias="commandLine", min_length=1)
    environment: list[str] = Field(default_factory=list)
    timeout_ms: int = Field(default=0, ge=0, alias="timeoutMs", description="0 = no timeout")


class ProcessResult(BaseModel):
    """Outcome of a guest process."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    exit_code: int = Field(alias="exitCode")
    stdout: str = ""
    stderr: str = ""


# ---------------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------------


class HypervisorError(Exception):
    """Raised by hypervisor backends when an automation call fails."""

    def __init__(self, message: str, backend: str = "") -> None:
        super().__init__(message)
        self.backend = backend


class Progress(ABC):
    """Handle on an asynchronous long-running hypervisor operation."""

    @abstractmethod
    async def wait_for_completion(self, timeout_ms: int = -1) -> bool:
        """Wait for the operation to finish.

        Args:
            timeout_ms: Maximum wait in milliseconds, ``-1`` to wait forever.

        Returns:
            True if the operation completed, False if the wait timed out.

        Raises:
            HypervisorError: If the operation completed with a failure.
        """
        ...


class Mouse(ABC):
    """Pointer device of a machine console.

    ``buttons`` is always the full mask of held buttons: left 0x01,
    right 0x02, middle 0x04.
    """

    @abstractmethod
    async def put_mouse_event(self, dx: int, dy: int, dz: int, dw: int, buttons: int) -> None:
        """Inject a relative pointer event (dz = vertical wheel)."""
        ...

    @abstractmethod
    async def put_mouse_event_absolute(self, x: int, y: int, dz: int, dw: int, buttons: int) -> None:
        """Inject an absolute pointer event."""
        ...


class Keyboard(ABC):
    """Keyboard device of a machine console."""

    @abstractmethod
    async def put_scancodes(self, scancodes: list[int]) -> None:
        """Inject raw scancodes in order."""
        ...


class Console(ABC):
    """Console of a locked machine: input devices, display and guest."""

    @abstractmethod
    async def get_mouse(self) -> Mouse:
        ...

    @abstractmethod
    async def get_keyboard(self) -> Keyboard:
        ...

    @abstractmethod
    async def take_screenshot(self) -> Any:
        """Return the current screen as an RGB ``numpy`` array (H x W x 3)."""
        ...

    @abstractmethod
    async def run_process(self, request: ProcessRequest) -> ProcessResult:
        """Run a process inside the guest and wait for it."""
        ...


class HypervisorSession(ABC):
    """A session object; holds the lock on one machine once acquired."""

    @abstractmethod
    async def get_console(self) -> Console:
        ...

    @abstractmethod
    async def unlock_machine(self) -> None:
        """Release the lock this session holds."""
        ...


class Machine(ABC):
    """A machine record known to the hypervisor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def get_state(self) -> MachineState:
        ...

    @abstractmethod
    async def find_snapshot(self, name: str) -> Snapshot:
        """Raises HypervisorError if the machine has no such snapshot."""
        ...

    @abstractmethod
    async def clone_to(self, target: Machine, mode: CloneMode, options: list[CloneOption]) -> Progress:
        ...

    @abstractmethod
    async def lock_machine(self, session: HypervisorSession, lock_type: LockType) -> None:
        ...

    @abstractmethod
    async def launch_vm_process(self, session: HypervisorSession, session_type: str = "headless") -> Progress:
        """Start the machine; the session gets the exclusive lock."""
        ...

    @abstractmethod
    async def power_off(self) -> None:
        ...

    @abstractmethod
    async def unregister_and_delete(self) -> None:
        """Unregister the machine (if registered) and delete its files."""
        ...


class Snapshot(ABC):
    """A saved state of a machine."""

    @abstractmethod
    async def get_machine(self) -> Machine:
        """Return the machine state captured by this snapshot."""
        ...


class Hypervisor(ABC):
    """Entry point of a hypervisor automation API."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish the connection to the hypervisor."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Safe to call multiple times."""
        ...

    @abstractmethod
    async def find_machine(self, name_or_id: str) -> Machine:
        """Raises HypervisorError if no machine matches."""
        ...

    @abstractmethod
    async def create_machine(self, name: str) -> Machine:
        """Create a new, unregistered machine record."""
        ...

    @abstractmethod
    async def register_machine(self, machine: Machine) -> None:
        ...

    @abstractmethod
    async def get_session_object(self) -> HypervisorSession:
        ...

    async def __aenter__(self) -> Hypervisor:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()
