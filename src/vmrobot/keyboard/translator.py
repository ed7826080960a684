"""Translation of logical keys and text into scancode sequences.

The translator is a pure lookup over one :class:`KeyLayout`; it never talks
to a device. The action pipeline injects whatever it returns.
"""

from __future__ import annotations

import enum
import logging

from vmrobot.domain.errors import ResourceNotFoundError, UnknownCharacterError, UnknownKeyCodeError
from vmrobot.keyboard.layouts import LAYOUTS, VK_SHIFT, KeyLayout

logger = logging.getLogger(__name__)


class KeyDirection(str, enum.Enum):
    """Which half of a keystroke to produce."""

    PRESS = "keyPress"
    RELEASE = "keyRelease"


class ScancodeTranslator:
    """Resolves key codes and text to scancodes for one keyboard layout.

    Usage::

        translator = ScancodeTranslator.for_layout("us")
        translator.resolve(KeyDirection.PRESS, 13)   # (0x1C,)
        translator.type_text("Ab")                   # shift, a, a-up, shift-up, b, b-up
    """

    def __init__(self, layout: KeyLayout) -> None:
        self._layout = layout

    @classmethod
    def for_layout(cls, name: str) -> ScancodeTranslator:
        """Build a translator for a named layout.

        Raises:
            ResourceNotFoundError: If no layout has that name.
        """
        layout = LAYOUTS.get(name)
        if layout is None:
            raise ResourceNotFoundError(f"Unknown keyboard layout: {name!r}")
        return cls(layout)

    @property
    def layout(self) -> KeyLayout:
        return self._layout

    def resolve(self, direction: KeyDirection, key_code: int) -> tuple[int, ...]:
        """Return the scancodes of one key event.

        Raises:
            UnknownKeyCodeError: If the layout has no entry for the key code.
        """
        table = self._layout.press if direction is KeyDirection.PRESS else self._layout.release
        scancodes = table.get(key_code)
        if not scancodes:
            raise UnknownKeyCodeError(f"Unknown key code: {key_code}")
        return scancodes

    def type_text(self, text: str) -> list[int]:
        """Return the flat scancode sequence that types ``text``.

        Each character becomes a press/release pair, wrapped in a shift
        press/release when the layout needs shift for it.

        Raises:
            UnknownCharacterError: If a character cannot be typed.
        """
        scancodes: list[int] = []
        for char in text:
            entry = self._layout.chars.get(char)
            if entry is None:
                raise UnknownCharacterError(f"No scancode mapping for character: {char!r}")
            key_code, shifted = entry
            if shifted:
                scancodes.extend(self.resolve(KeyDirection.PRESS, VK_SHIFT))
            scancodes.extend(self.resolve(KeyDirection.PRESS, key_code))
            scancodes.extend(self.resolve(KeyDirection.RELEASE, key_code))
            if shifted:
                scancodes.extend(self.resolve(KeyDirection.RELEASE, VK_SHIFT))
        logger.debug("Translated text %r to %d scancodes", text[:50], len(scancodes))
        return scancodes
