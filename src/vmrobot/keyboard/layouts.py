"""PC keyboard scancode tables, one per keyboard layout.

Reference: IBM PC AT scancode set 1 (the set VirtualBox and QEMU expect
for injected keyboard events).

- A key press is the key's make code, e.g. 0x1E for 'A'.
- A key release is the make code with bit 7 set, e.g. 0x9E.
- Extended keys (arrows, navigation block, right-hand modifiers) are
  prefixed with 0xE0 on both press and release.

Keys are identified by DOM-style virtual key codes (65 = A, 13 = Enter),
which is what browser-side callers send for keyPress/keyRelease.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

EXTENDED_PREFIX: int = 0xE0
RELEASE_BIT: int = 0x80

# ---------------------------------------------------------------------------
# Virtual key codes of the modifier used when typing text
# ---------------------------------------------------------------------------

VK_SHIFT: int = 16

# ---------------------------------------------------------------------------
# Virtual key code -> set 1 make code (layout independent positions)
# ---------------------------------------------------------------------------

MAKE_CODES: dict[int, int] = {
    # Control keys
    8: 0x0E,  # Backspace
    9: 0x0F,  # Tab
    13: 0x1C,  # Enter
    16: 0x2A,  # Shift (left)
    17: 0x1D,  # Control (left)
    18: 0x38,  # Alt (left)
    20: 0x3A,  # CapsLock
    27: 0x01,  # Escape
    32: 0x39,  # Space
    # Digits (0 = 0x0B, 1..9 = 0x02..0x0A)
    48: 0x0B, 49: 0x02, 50: 0x03, 51: 0x04, 52: 0x05,
    53: 0x06, 54: 0x07, 55: 0x08, 56: 0x09, 57: 0x0A,
    # Letters (QWERTY positions)
    65: 0x1E, 66: 0x30, 67: 0x2E, 68: 0x20, 69: 0x12,
    70: 0x21, 71: 0x22, 72: 0x23, 73: 0x17, 74: 0x24,
    75: 0x25, 76: 0x26, 77: 0x32, 78: 0x31, 79: 0x18,
    80: 0x19, 81: 0x10, 82: 0x13, 83: 0x1F, 84: 0x14,
    85: 0x16, 86: 0x2F, 87: 0x11, 88: 0x2D, 89: 0x15,
    90: 0x2C,
    # Numeric keypad
    96: 0x52, 97: 0x4F, 98: 0x50, 99: 0x51, 100: 0x4B,
    101: 0x4C, 102: 0x4D, 103: 0x47, 104: 0x48, 105: 0x49,
    106: 0x37,  # *
    107: 0x4E,  # +
    109: 0x4A,  # -
    110: 0x53,  # .
    # Function keys
    112: 0x3B, 113: 0x3C, 114: 0x3D, 115: 0x3E, 116: 0x3F,
    117: 0x40, 118: 0x41, 119: 0x42, 120: 0x43, 121: 0x44,
    122: 0x57, 123: 0x58,
    # Lock keys
    144: 0x45,  # NumLock
    145: 0x46,  # ScrollLock
    # Punctuation (US positions)
    186: 0x27,  # ;
    187: 0x0D,  # =
    188: 0x33,  # ,
    189: 0x0C,  # -
    190: 0x34,  # .
    191: 0x35,  # /
    192: 0x29,  # `
    219: 0x1A,  # [
    220: 0x2B,  # backslash
    221: 0x1B,  # ]
    222: 0x28,  # '
}

# Keys that need the 0xE0 prefix
EXTENDED_MAKE_CODES: dict[int, int] = {
    33: 0x49,  # PageUp
    34: 0x51,  # PageDown
    35: 0x4F,  # End
    36: 0x47,  # Home
    37: 0x4B,  # Left
    38: 0x48,  # Up
    39: 0x4D,  # Right
    40: 0x50,  # Down
    45: 0x52,  # Insert
    46: 0x53,  # Delete
    91: 0x5B,  # Meta (left)
    92: 0x5C,  # Meta (right)
    93: 0x5D,  # ContextMenu
    111: 0x35,  # Numpad /
}

# ---------------------------------------------------------------------------
# Printable character -> (virtual key code, needs shift), US layout
# ---------------------------------------------------------------------------

US_CHARS: dict[str, tuple[int, bool]] = {
    " ": (32, False),
    "\n": (13, False),
    "\t": (9, False),
    "0": (48, False), "1": (49, False), "2": (50, False), "3": (51, False),
    "4": (52, False), "5": (53, False), "6": (54, False), "7": (55, False),
    "8": (56, False), "9": (57, False),
    ")": (48, True), "!": (49, True), "@": (50, True), "#": (51, True),
    "$": (52, True), "%": (53, True), "^": (54, True), "&": (55, True),
    "*": (56, True), "(": (57, True),
    ";": (186, False), ":": (186, True),
    "=": (187, False), "+": (187, True),
    ",": (188, False), "<": (188, True),
    "-": (189, False), "_": (189, True),
    ".": (190, False), ">": (190, True),
    "/": (191, False), "?": (191, True),
    "`": (192, False), "~": (192, True),
    "[": (219, False), "{": (219, True),
    "\\": (220, False), "|": (220, True),
    "]": (221, False), "}": (221, True),
    "'": (222, False), '"': (222, True),
}
for _offset in range(26):
    US_CHARS[chr(ord("a") + _offset)] = (65 + _offset, False)
    US_CHARS[chr(ord("A") + _offset)] = (65 + _offset, True)


class KeyLayout(BaseModel):
    """Immutable scancode tables of one keyboard layout.

    ``press`` and ``release`` map a virtual key code to the scancode
    sequence of that event; ``chars`` maps a printable character to the
    virtual key code producing it and whether shift must be held.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    press: Mapping[int, tuple[int, ...]]
    release: Mapping[int, tuple[int, ...]]
    chars: Mapping[str, tuple[int, bool]]

    @field_validator("press", "release", "chars", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[Any, Any]) -> Mapping[Any, Any]:
        return MappingProxyType(dict(value))


def build_layout(
    name: str,
    chars: dict[str, tuple[int, bool]],
    make_codes: dict[int, int] = MAKE_CODES,
    extended_make_codes: dict[int, int] = EXTENDED_MAKE_CODES,
) -> KeyLayout:
    """Derive press/release tables from make codes."""
    press: dict[int, tuple[int, ...]] = {}
    release: dict[int, tuple[int, ...]] = {}
    for key_code, make in make_codes.items():
        press[key_code] = (make,)
        release[key_code] = (make | RELEASE_BIT,)
    for key_code, make in extended_make_codes.items():
        press[key_code] = (EXTENDED_PREFIX, make)
        release[key_code] = (EXTENDED_PREFIX, make | RELEASE_BIT)
    return KeyLayout(name=name, press=press, release=release, chars=dict(chars))


US_LAYOUT = build_layout("us", US_CHARS)

LAYOUTS: dict[str, KeyLayout] = {
    US_LAYOUT.name: US_LAYOUT,
}
