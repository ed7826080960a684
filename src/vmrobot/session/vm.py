"""A controlled virtual machine session.

A :class:`VMSession` bundles the handle chain acquired from the
hypervisor (machine -> locked session -> console -> mouse/keyboard)
together with the local mirror of held mouse buttons, and owns the
teardown of everything it acquired.

Teardown depends on how the session was created:

- ``DETACH`` (attached to an already-running machine): release the lock,
  leave the machine alone.
- ``DESTROY`` (cloned and launched for this session): power the machine
  off, release the lock, unregister and delete the clone.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from typing import Any

from vmrobot.domain.errors import DeviceInjectionError, SessionCloseError
from vmrobot.hypervisor.base import (
    Console,
    HypervisorSession,
    Keyboard,
    Machine,
    Mouse,
    ProcessRequest,
    ProcessResult,
)

logger = logging.getLogger(__name__)


class TeardownStrategy(str, enum.Enum):
    DETACH = "detach"
    DESTROY = "destroy"


class VMSession:
    """One controlled machine and the handles acquired on it.

    Handles are filled in by the session manager as they are acquired;
    ``hv_session`` is only set once the lock is actually held, so
    :meth:`close` never releases something it does not own.

    The button mirror is needed because the hypervisor's mouse event call
    is stateless: every event must carry the full mask of held buttons.
    """

    def __init__(self, session_id: str, teardown: TeardownStrategy) -> None:
        self.id = session_id
        self.teardown = teardown
        self.machine: Machine | None = None
        self.hv_session: HypervisorSession | None = None
        self.console: Console | None = None
        self.mouse: Mouse | None = None
        self.keyboard: Keyboard | None = None
        self.mouse_buttons = 0
        self.launched = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        """Whether every handle is present and the session is open."""
        return (
            not self._closed
            and self.machine is not None
            and self.hv_session is not None
            and self.mouse is not None
            and self.keyboard is not None
        )

    @property
    def closed(self) -> bool:
        return self._closed

    async def bind_console(self) -> None:
        """Derive console, mouse and keyboard handles from the held lock."""
        if self.hv_session is None:
            raise DeviceInjectionError("Cannot bind console before locking the machine", vm_id=self.id)
        self.console = await self.hv_session.get_console()
        self.mouse = await self.console.get_mouse()
        self.keyboard = await self.console.get_keyboard()

    async def close(self) -> None:
        """Release everything this session acquired.

        Idempotent: only the first call has any effect. Every teardown
        step is attempted even when an earlier one fails.

        Raises:
            SessionCloseError: If any teardown step failed.
        """
        if self._closed:
            return
        self._closed = True
        destroy = self.teardown is TeardownStrategy.DESTROY
        errors: list[Exception] = []

        if destroy and self.machine is not None and self.launched:
            try:
                await self.machine.power_off()
            except Exception as e:
                logger.warning("Session %s: power off failed: %s", self.id, e)
                errors.append(e)

        if self.hv_session is not None:
            try:
                await self.hv_session.unlock_machine()
            except Exception as e:
                logger.warning("Session %s: unlock failed: %s", self.id, e)
                errors.append(e)

        if destroy and self.machine is not None:
            try:
                await self.machine.unregister_and_delete()
            except Exception as e:
                logger.warning("Session %s: delete of machine %s failed: %s", self.id, self.machine.name, e)
                errors.append(e)

        self.mouse = None
        self.keyboard = None
        self.console = None
        self.hv_session = None

        if errors:
            raise SessionCloseError(
                f"Failed to close session {self.id}: {errors[0]}", errors, vm_id=self.id
            ) from errors[0]
        logger.info("Closed session %s (%s)", self.id, self.teardown.value)

    # -------------------------------------------------------------------
    # Device injection
    # -------------------------------------------------------------------

    def _require(self, handle: Any, what: str) -> Any:
        if self._closed or handle is None:
            raise DeviceInjectionError(f"Session {self.id} has no {what}", vm_id=self.id)
        return handle

    async def move_mouse(self, x: int, y: int) -> None:
        """Move the pointer to an absolute position, keeping held buttons."""
        mouse: Mouse = self._require(self.mouse, "mouse")
        try:
            await mouse.put_mouse_event_absolute(x, y, 0, 0, self.mouse_buttons)
        except Exception as e:
            raise DeviceInjectionError(f"Mouse move to ({x}, {y}) failed: {e}", vm_id=self.id) from e

    async def put_mouse_buttons(self, buttons: int) -> None:
        """Inject a button event and commit ``buttons`` as the held mask."""
        mouse: Mouse = self._require(self.mouse, "mouse")
        try:
            await mouse.put_mouse_event(0, 0, 0, 0, buttons)
        except Exception as e:
            raise DeviceInjectionError(f"Mouse button event failed: {e}", vm_id=self.id) from e
        self.mouse_buttons = buttons

    async def scroll_mouse(self, delta: int) -> None:
        mouse: Mouse = self._require(self.mouse, "mouse")
        try:
            await mouse.put_mouse_event(0, 0, delta, 0, self.mouse_buttons)
        except Exception as e:
            raise DeviceInjectionError(f"Mouse wheel event failed: {e}", vm_id=self.id) from e

    async def put_scancodes(self, scancodes: Sequence[int]) -> None:
        keyboard: Keyboard = self._require(self.keyboard, "keyboard")
        try:
            await keyboard.put_scancodes(list(scancodes))
        except Exception as e:
            raise DeviceInjectionError(f"Sending scancodes failed: {e}", vm_id=self.id) from e

    async def take_screenshot(self) -> Any:
        console: Console = self._require(self.console, "console")
        try:
            return await console.take_screenshot()
        except Exception as e:
            raise DeviceInjectionError(f"Screenshot failed: {e}", vm_id=self.id) from e

    async def run_process(self, request: ProcessRequest) -> ProcessResult:
        """Run a process inside the guest."""
        console: Console = self._require(self.console, "console")
        try:
            return await console.run_process(request)
        except Exception as e:
            raise DeviceInjectionError(
                f"Running {' '.join(request.command_line)} failed: {e}", vm_id=self.id
            ) from e

    async def __aenter__(self) -> VMSession:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        machine = self.machine.name if self.machine is not None else None
        return f"VMSession(id={self.id!r}, machine={machine!r}, teardown={self.teardown.value})"
