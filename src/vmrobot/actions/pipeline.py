"""Action execution pipeline.

Walks an ordered batch of actions against one :class:`VMSession`. Every
action goes through two phases:

1. translate -- parse it and resolve it to a device step (this is where
   unknown actions, bad arguments and unknown key codes are detected);
2. run -- await the step, which issues the device call(s).

Two entry points apply different failure policies:

- :meth:`ActionPipeline.execute` stops at the first failure of either phase.
- :meth:`ActionPipeline.execute_isolated` records translation failures in
  the failing slot and carries on; device failures still abort the batch.

Actions of one batch run strictly in order and never concurrently. Two
batches must not run on the same session at the same time; sessions are
not locked against that.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from vmrobot.actions.calibration import Calibrator
from vmrobot.domain.errors import ActionError
from vmrobot.domain.models import (
    ActionModel,
    ActionResult,
    Calibrate,
    KeyboardSendScancodes,
    KeyPress,
    KeyRelease,
    MouseMove,
    MousePress,
    MouseRelease,
    MouseWheel,
    Pause,
    SmoothMouseMove,
    TypeText,
    parse_action,
)
from vmrobot.keyboard.translator import KeyDirection, ScancodeTranslator
from vmrobot.session.vm import VMSession

logger = logging.getLogger(__name__)

# Java AWT InputEvent masks used by callers
BUTTON1_MASK = 16
BUTTON2_MASK = 8
BUTTON3_MASK = 4

# Caller mask -> hypervisor button bit (left, right, middle)
BUTTON_BITS: dict[int, int] = {
    BUTTON1_MASK: 0x01,
    BUTTON2_MASK: 0x02,
    BUTTON3_MASK: 0x04,
}

DEFAULT_TICK = 0.05

Step = Callable[[], Awaitable[Any]]


def press_buttons(buttons: int, state: int) -> int:
    """Return ``state`` with the buttons of caller mask ``buttons`` held."""
    for mask, bit in BUTTON_BITS.items():
        if buttons & mask:
            state |= bit
    return state


def release_buttons(buttons: int, state: int) -> int:
    """Return ``state`` with the buttons of caller mask ``buttons`` released."""
    for mask, bit in BUTTON_BITS.items():
        if buttons & mask:
            state &= ~bit
    return state


class ActionPipeline:
    """Translates and runs action batches.

    Args:
        translator: Scancode lookup for keyPress/keyRelease/type.
        calibrator: Handler of the calibrate action; None disables it.
        tick: Seconds between intermediate points of smoothMouseMove.
        clock: Monotonic clock in seconds.
        sleep: Coroutine function used for pauses and ticks.
    """

    def __init__(
        self,
        translator: ScancodeTranslator,
        calibrator: Calibrator | None = None,
        tick: float = DEFAULT_TICK,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._translator = translator
        self._calibrator = calibrator
        self._tick = tick
        self._clock = clock
        self._sleep = sleep

    async def execute(self, session: VMSession, actions: Iterable[Any]) -> Any:
        """Run a batch, stopping at the first failure.

        Returns:
            The output of the last action that produced one (for example
            a calibration offset), or None.

        Raises:
            ActionError: If an action cannot be translated.
            DeviceInjectionError: If a device call fails.
        """
        batch = list(actions)
        output = None
        for index, raw in enumerate(batch):
            action, step = self.translate(session, raw)
            self._log_step(session, index, len(batch), action)
            result = await step()
            if result is not None:
                output = result
        return output

    async def execute_isolated(self, session: VMSession, actions: Iterable[Any]) -> list[ActionResult]:
        """Run a batch, recording translation failures per slot.

        A slot whose action cannot be translated gets an error result and
        the batch continues. A failing device call is not isolated: it is
        raised and the remaining actions do not run.

        Raises:
            DeviceInjectionError: If a device call fails.
        """
        batch = list(actions)
        results: list[ActionResult] = []
        for index, raw in enumerate(batch):
            try:
                action, step = self.translate(session, raw)
            except ActionError as e:
                logger.warning("/vm/%s execute (%d/%d) failed: %s", session.id, index + 1, len(batch), e)
                results.append(ActionResult(success=False, error=str(e)))
                continue
            self._log_step(session, index, len(batch), action)
            result = await step()
            results.append(ActionResult(success=True, result=result))
        return results

    def translate(self, session: VMSession, raw: Any) -> tuple[ActionModel, Step]:
        """Resolve one action to the step that performs it.

        Raises:
            ActionError: If the action cannot be translated.
        """
        action = parse_action(raw)
        if isinstance(action, MouseMove):
            return action, lambda: session.move_mouse(action.x, action.y)
        if isinstance(action, SmoothMouseMove):
            return action, lambda: self._smooth_mouse_move(session, action)
        if isinstance(action, MousePress):
            return action, lambda: session.put_mouse_buttons(
                press_buttons(action.buttons, session.mouse_buttons)
            )
        if isinstance(action, MouseRelease):
            return action, lambda: session.put_mouse_buttons(
                release_buttons(action.buttons, session.mouse_buttons)
            )
        if isinstance(action, MouseWheel):
            return action, lambda: session.scroll_mouse(action.delta)
        if isinstance(action, KeyboardSendScancodes):
            return action, lambda: session.put_scancodes(action.scancodes)
        if isinstance(action, (KeyPress, KeyRelease)):
            direction = KeyDirection.PRESS if isinstance(action, KeyPress) else KeyDirection.RELEASE
            scancodes = self._translator.resolve(direction, action.key_code)
            return action, lambda: session.put_scancodes(scancodes)
        if isinstance(action, TypeText):
            text_scancodes = self._translator.type_text(action.text)
            return action, lambda: session.put_scancodes(text_scancodes)
        if isinstance(action, Pause):
            return action, lambda: self._sleep(action.ms / 1000)
        if isinstance(action, Calibrate):
            calibrator = self._calibrator
            if calibrator is None:
                raise ActionError("Screen calibration is not available", vm_id=session.id)
            return action, lambda: calibrator.calibrate(session, action.width, action.height)
        raise ActionError(f"No handler for action {action.action}", vm_id=session.id)

    async def _smooth_mouse_move(self, session: VMSession, action: SmoothMouseMove) -> None:
        """Interpolate the pointer from start to target over the duration.

        The number of intermediate points depends on tick scheduling; the
        start point is always hit first and the target exactly once, last.
        """
        from_x, from_y = action.from_x, action.from_y
        to_x, to_y = action.to_x, action.to_y
        duration = action.duration_ms / 1000

        await session.move_mouse(from_x, from_y)
        now = self._clock()
        end = now + duration
        while now < end:
            remaining = (end - now) / duration
            x = round(remaining * from_x + (1 - remaining) * to_x)
            y = round(remaining * from_y + (1 - remaining) * to_y)
            if (x, y) != (to_x, to_y):
                await session.move_mouse(x, y)
            await self._sleep(self._tick)
            now = self._clock()
        await session.move_mouse(to_x, to_y)

    @staticmethod
    def _log_step(session: VMSession, index: int, total: int, action: ActionModel) -> None:
        logger.info(
            "/vm/%s execute (%d/%d) %s %s",
            session.id, index + 1, total, action.action, action.to_list()[1:],
        )
