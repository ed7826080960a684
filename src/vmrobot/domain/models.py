"""Input action models.

An action is a symbolic instruction: a name plus a fixed, name-determined
list of positional arguments. On the wire an action is either the
positional list form used by the browser-side robot API::

    ["mouseMove", 120, 48]
    ["smoothMouseMove", 0, 0, 100, 100, 200]
    ["type", "hello"]

or an object carrying the ``action`` discriminator and named fields.
Both forms parse into the same frozen models.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from vmrobot.domain.errors import InvalidActionError, UnknownActionError


class ActionName(str, enum.Enum):
    """Closed set of supported action kinds (wire names)."""

    MOUSE_MOVE = "mouseMove"
    SMOOTH_MOUSE_MOVE = "smoothMouseMove"
    MOUSE_PRESS = "mousePress"
    MOUSE_RELEASE = "mouseRelease"
    MOUSE_WHEEL = "mouseWheel"
    KEYBOARD_SEND_SCANCODES = "keyboardSendScancodes"
    KEY_PRESS = "keyPress"
    KEY_RELEASE = "keyRelease"
    TYPE = "type"
    PAUSE = "pause"
    CALIBRATE = "calibrate"


class ActionModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Positional argument order of the list form
    ARGS: ClassVar[tuple[str, ...]] = ()

    action: str

    def to_list(self) -> list[Any]:
        """Return the positional list form, e.g. ``["mouseMove", 1, 2]``."""
        values: list[Any] = [self.action]
        for name in self.ARGS:
            value = getattr(self, name)
            values.append(list(value) if isinstance(value, tuple) else value)
        return values


# ---------------------------------------------------------------------------
# Mouse actions
# ---------------------------------------------------------------------------


class MouseMove(ActionModel):
    """Absolute pointer move."""

    ARGS: ClassVar[tuple[str, ...]] = ("x", "y")

    action: Literal["mouseMove"] = "mouseMove"
    x: int
    y: int


class SmoothMouseMove(ActionModel):
    """Time-interpolated pointer move from one point to another."""

    ARGS: ClassVar[tuple[str, ...]] = ("from_x", "from_y", "to_x", "to_y", "duration_ms")

    action: Literal["smoothMouseMove"] = "smoothMouseMove"
    from_x: int
    from_y: int
    to_x: int
    to_y: int
    duration_ms: int = Field(ge=0)


class MousePress(ActionModel):
    """Press the buttons of an AWT-style button mask (BUTTON1 = 16, ...)."""

    ARGS: ClassVar[tuple[str, ...]] = ("buttons",)

    action: Literal["mousePress"] = "mousePress"
    buttons: int


class MouseRelease(ActionModel):
    ARGS: ClassVar[tuple[str, ...]] = ("buttons",)

    action: Literal["mouseRelease"] = "mouseRelease"
    buttons: int


class MouseWheel(ActionModel):
    ARGS: ClassVar[tuple[str, ...]] = ("delta",)

    action: Literal["mouseWheel"] = "mouseWheel"
    delta: int


# ---------------------------------------------------------------------------
# Keyboard actions
# ---------------------------------------------------------------------------


class KeyboardSendScancodes(ActionModel):
    """Raw scancodes, injected unmodified."""

    ARGS: ClassVar[tuple[str, ...]] = ("scancodes",)

    action: Literal["keyboardSendScancodes"] = "keyboardSendScancodes"
    scancodes: tuple[int, ...]


class KeyPress(ActionModel):
    """Press of a DOM-style virtual key code (65 = A, 13 = Enter)."""

    ARGS: ClassVar[tuple[str, ...]] = ("key_code",)

    action: Literal["keyPress"] = "keyPress"
    key_code: int


class KeyRelease(ActionModel):
    ARGS: ClassVar[tuple[str, ...]] = ("key_code",)

    action: Literal["keyRelease"] = "keyRelease"
    key_code: int


class TypeText(ActionModel):
    """Type a string; each character becomes a press/release pair."""

    ARGS: ClassVar[tuple[str, ...]] = ("text",)

    action: Literal["type"] = "type"
    text: str

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return str(value)


# ---------------------------------------------------------------------------
# Other actions
# ---------------------------------------------------------------------------


class Pause(ActionModel):
    ARGS: ClassVar[tuple[str, ...]] = ("ms",)

    action: Literal["pause"] = "pause"
    ms: int = Field(ge=0)


class Calibrate(ActionModel):
    """Locate a rectangle of the given size on the guest screen."""

    ARGS: ClassVar[tuple[str, ...]] = ("width", "height")

    action: Literal["calibrate"] = "calibrate"
    width: int = Field(gt=0)
    height: int = Field(gt=0)


Action = Annotated[
    Union[
        MouseMove,
        SmoothMouseMove,
        MousePress,
        MouseRelease,
        MouseWheel,
        KeyboardSendScancodes,
        KeyPress,
        KeyRelease,
        TypeText,
        Pause,
        Calibrate,
    ],
    Field(discriminator="action"),
]

ACTIONS: dict[str, type[ActionModel]] = {
    ActionName.MOUSE_MOVE.value: MouseMove,
    ActionName.SMOOTH_MOUSE_MOVE.value: SmoothMouseMove,
    ActionName.MOUSE_PRESS.value: MousePress,
    ActionName.MOUSE_RELEASE.value: MouseRelease,
    ActionName.MOUSE_WHEEL.value: MouseWheel,
    ActionName.KEYBOARD_SEND_SCANCODES.value: KeyboardSendScancodes,
    ActionName.KEY_PRESS.value: KeyPress,
    ActionName.KEY_RELEASE.value: KeyRelease,
    ActionName.TYPE.value: TypeText,
    ActionName.PAUSE.value: Pause,
    ActionName.CALIBRATE.value: Calibrate,
}

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(Action)


def parse_action(raw: Any) -> ActionModel:
    """Parse one action from a model, a mapping or the positional list form.

    Raises:
        UnknownActionError: If the action name is not supported.
        InvalidActionError: If the arguments do not fit the action.
    """
    if isinstance(raw, ActionModel):
        return raw
    if isinstance(raw, Mapping):
        name = str(raw.get("action", ""))
        data = dict(raw)
    elif isinstance(raw, (list, tuple)):
        if not raw:
            raise InvalidActionError("Empty action")
        name = str(raw[0])
        model = ACTIONS.get(name)
        if model is None:
            raise UnknownActionError(f"Unknown action {name}")
        data = dict(zip(model.ARGS, raw[1:]))
        data["action"] = name
    else:
        raise InvalidActionError(f"Expected an array: {raw!r}")

    if name not in ACTIONS:
        raise UnknownActionError(f"Unknown action {name}")
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidActionError(f"Invalid arguments for {name}: {e}") from e


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ActionResult(BaseModel):
    """Outcome of one slot of an isolated batch."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(description="Whether the action was translated and executed")
    result: Any = Field(default=None, description="Output of the action, if any")
    error: str | None = Field(default=None, description="Error description for failed slots")
