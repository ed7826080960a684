"""In-process hypervisor backend.

Implements the capability interface entirely in memory: machines are
plain records, input devices record every injected event, and
long-running operations are simulated by :class:`MemoryProgress`.
Used by the test suite and by the ``memory`` backend of the server,
which is handy for exercising clients without a real hypervisor.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable

import numpy as np

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

logger = logging.getLogger(__name__)

BACKEND = "memory"

DEFAULT_SCREEN_SIZE = (768, 1024)  # (height, width)


class MemoryProgress(Progress):
    """Simulated long-running operation.

    Args:
        duration: Seconds the operation takes once waited on.
        error: If set, the operation fails with this message.
        completes: If False, the operation never finishes.
    """

    def __init__(self, duration: float = 0.0, error: str | None = None, completes: bool = True) -> None:
        self._duration = duration
        self._error = error
        self._completes = completes
        self._on_complete: Callable[[], None] | None = None
        self.completed = False

    def bind(self, on_complete: Callable[[], None]) -> MemoryProgress:
        self._on_complete = on_complete
        return self

    async def wait_for_completion(self, timeout_ms: int = -1) -> bool:
        if self.completed:
            return True
        timeout = None if timeout_ms < 0 else timeout_ms / 1000
        if not self._completes:
            if timeout is None:
                await asyncio.Event().wait()
            await asyncio.sleep(timeout)
            return False
        if timeout is not None and timeout < self._duration:
            await asyncio.sleep(timeout)
            return False
        await asyncio.sleep(self._duration)
        if self._error:
            raise HypervisorError(self._error, backend=BACKEND)
        self.completed = True
        if self._on_complete is not None:
            self._on_complete()
        return True


class MemoryMouse(Mouse):
    """Records ``(kind, x_or_dx, y_or_dy, dz, dw, buttons)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, int, int, int, int, int]] = []

    async def put_mouse_event(self, dx: int, dy: int, dz: int, dw: int, buttons: int) -> None:
        self.events.append(("relative", dx, dy, dz, dw, buttons))

    async def put_mouse_event_absolute(self, x: int, y: int, dz: int, dw: int, buttons: int) -> None:
        self.events.append(("absolute", x, y, dz, dw, buttons))


class MemoryKeyboard(Keyboard):
    """Records each ``put_scancodes`` call."""

    def __init__(self) -> None:
        self.calls: list[list[int]] = []

    @property
    def scancodes(self) -> list[int]:
        return [code for call in self.calls for code in call]

    async def put_scancodes(self, scancodes: list[int]) -> None:
        self.calls.append(list(scancodes))


class MemoryConsole(Console):
    def __init__(self, machine: MemoryMachine) -> None:
        self._machine = machine

    async def get_mouse(self) -> MemoryMouse:
        return self._machine.mouse

    async def get_keyboard(self) -> MemoryKeyboard:
        return self._machine.keyboard

    async def take_screenshot(self) -> np.ndarray:
        return self._machine.screen.copy()

    async def run_process(self, request: ProcessRequest) -> ProcessResult:
        logger.debug("Guest %s runs %s", self._machine.name, request.command_line)
        return self._machine.process_handler(request)


class MemorySession(HypervisorSession):
    def __init__(self) -> None:
        self.machine: MemoryMachine | None = None
        self.lock_type: LockType | None = None

    @property
    def is_locked(self) -> bool:
        return self.machine is not None

    async def get_console(self) -> MemoryConsole:
        if self.machine is None:
            raise HypervisorError("Session is not locked to a machine", backend=BACKEND)
        return MemoryConsole(self.machine)

    async def unlock_machine(self) -> None:
        if self.machine is None:
            raise HypervisorError("Session is not locked", backend=BACKEND)
        self.machine.sessions.remove(self)
        logger.debug("Unlocked machine %s (%s)", self.machine.name, self.lock_type)
        self.machine = None
        self.lock_type = None

    def _attach(self, machine: MemoryMachine, lock_type: LockType) -> None:
        self.machine = machine
        self.lock_type = lock_type
        machine.sessions.append(self)


def _default_process_handler(request: ProcessRequest) -> ProcessResult:
    return ProcessResult(exit_code=0)


class MemoryMachine(Machine):
    def __init__(
        self,
        hypervisor: InMemoryHypervisor,
        name: str,
        state: MachineState = MachineState.POWERED_OFF,
    ) -> None:
        self._hypervisor = hypervisor
        self._name = name
        self.id = uuid.uuid4().hex
        self.state = state
        self.registered = False
        self.deleted = False
        self.cloned_from: MemoryMachine | None = None
        self.snapshots: dict[str, MemorySnapshot] = {}
        self.sessions: list[MemorySession] = []
        self.mouse = MemoryMouse()
        self.keyboard = MemoryKeyboard()
        self.screen = np.zeros((*DEFAULT_SCREEN_SIZE, 3), dtype=np.uint8)
        self.process_handler: Callable[[ProcessRequest], ProcessResult] = _default_process_handler

    @property
    def name(self) -> str:
        return self._name

    def add_snapshot(self, name: str) -> MemorySnapshot:
        frozen = MemoryMachine(self._hypervisor, f"{self._name}@{name}", state=MachineState.SAVED)
        snapshot = MemorySnapshot(frozen)
        self.snapshots[name] = snapshot
        return snapshot

    async def get_state(self) -> MachineState:
        return self.state

    async def find_snapshot(self, name: str) -> MemorySnapshot:
        snapshot = self.snapshots.get(name)
        if snapshot is None:
            raise HypervisorError(f"Machine {self._name} has no snapshot {name!r}", backend=BACKEND)
        return snapshot

    async def clone_to(self, target: Machine, mode: CloneMode, options: list[CloneOption]) -> MemoryProgress:
        if not isinstance(target, MemoryMachine):
            raise HypervisorError("Clone target belongs to another backend", backend=BACKEND)

        def _done() -> None:
            target.cloned_from = self
            logger.debug("Cloned %s to %s (%s, %s)", self._name, target.name, mode.value, options)

        return self._hypervisor.next_progress("clone").bind(_done)

    async def lock_machine(self, session: HypervisorSession, lock_type: LockType) -> None:
        if not isinstance(session, MemorySession) or session.is_locked:
            raise HypervisorError("Session already in use", backend=BACKEND)
        if lock_type is LockType.SHARED and self.state is not MachineState.RUNNING:
            raise HypervisorError(f"Machine {self._name} is not running", backend=BACKEND)
        if lock_type is LockType.WRITE and self.sessions:
            raise HypervisorError(f"Machine {self._name} is already locked", backend=BACKEND)
        session._attach(self, lock_type)

    async def launch_vm_process(self, session: HypervisorSession, session_type: str = "headless") -> MemoryProgress:
        if not self.registered:
            raise HypervisorError(f"Machine {self._name} is not registered", backend=BACKEND)
        if self.state is MachineState.RUNNING:
            raise HypervisorError(f"Machine {self._name} is already running", backend=BACKEND)
        await self.lock_machine(session, LockType.WRITE)
        self.state = MachineState.STARTING

        def _done() -> None:
            self.state = MachineState.RUNNING
            logger.debug("Machine %s running (%s)", self._name, session_type)

        return self._hypervisor.next_progress("launch").bind(_done)

    async def power_off(self) -> None:
        if self.state not in (MachineState.RUNNING, MachineState.STARTING, MachineState.PAUSED):
            raise HypervisorError(f"Machine {self._name} is not running", backend=BACKEND)
        self.state = MachineState.POWERED_OFF

    async def unregister_and_delete(self) -> None:
        if self.state is MachineState.RUNNING:
            raise HypervisorError(f"Machine {self._name} is still running", backend=BACKEND)
        if self.sessions:
            raise HypervisorError(f"Machine {self._name} is still locked", backend=BACKEND)
        self._hypervisor._unregister(self)
        self.deleted = True


class MemorySnapshot(Snapshot):
    def __init__(self, machine: MemoryMachine) -> None:
        self._machine = machine

    async def get_machine(self) -> MemoryMachine:
        return self._machine


class InMemoryHypervisor(Hypervisor):
    """Hypervisor whose machines live in this process.

    Seed it with machines, then drive it through the regular interface::

        hv = InMemoryHypervisor()
        hv.add_machine("win10", state=MachineState.RUNNING, snapshots=["clean"])

    ``progress_overrides`` lets a caller make the next ``"clone"`` or
    ``"launch"`` operation slow, failing or never-ending.
    """

    def __init__(self) -> None:
        self._machines: dict[str, MemoryMachine] = {}
        self.progress_overrides: dict[str, MemoryProgress] = {}
        self.is_connected = False

    async def connect(self) -> None:
        self.is_connected = True
        logger.info("Connected to in-memory hypervisor")

    async def disconnect(self) -> None:
        if self.is_connected:
            self.is_connected = False
            logger.info("Disconnected from in-memory hypervisor")

    def add_machine(
        self,
        name: str,
        state: MachineState = MachineState.RUNNING,
        snapshots: list[str] | None = None,
    ) -> MemoryMachine:
        machine = MemoryMachine(self, name, state=state)
        for snapshot in snapshots or []:
            machine.add_snapshot(snapshot)
        machine.registered = True
        self._machines[machine.id] = machine
        return machine

    @property
    def registered_machines(self) -> list[MemoryMachine]:
        return list(self._machines.values())

    def next_progress(self, operation: str) -> MemoryProgress:
        return self.progress_overrides.pop(operation, None) or MemoryProgress()

    async def find_machine(self, name_or_id: str) -> MemoryMachine:
        machine = self._machines.get(name_or_id)
        if machine is None:
            machine = next((m for m in self._machines.values() if m.name == name_or_id), None)
        if machine is None:
            raise HypervisorError(f"Could not find a registered machine named {name_or_id!r}", backend=BACKEND)
        return machine

    async def create_machine(self, name: str) -> MemoryMachine:
        if any(m.name == name for m in self._machines.values()):
            raise HypervisorError(f"Machine {name!r} already exists", backend=BACKEND)
        return MemoryMachine(self, name)

    async def register_machine(self, machine: Machine) -> None:
        if not isinstance(machine, MemoryMachine):
            raise HypervisorError("Machine belongs to another backend", backend=BACKEND)
        if machine.registered:
            raise HypervisorError(f"Machine {machine.name} is already registered", backend=BACKEND)
        machine.registered = True
        self._machines[machine.id] = machine

    async def get_session_object(self) -> MemorySession:
        return MemorySession()

    def _unregister(self, machine: MemoryMachine) -> None:
        self._machines.pop(machine.id, None)
        machine.registered = False
