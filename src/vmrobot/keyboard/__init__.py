"""Keyboard translation for vmrobot.

Maps DOM-style virtual key codes and printable text to PC scancode
sequences using static per-layout tables.

Public API:
    KeyLayout -- Immutable scancode tables of one layout
    LAYOUTS -- Named layouts available at runtime
    ScancodeTranslator -- Key code / text to scancode lookup
    KeyDirection -- Press or release half of a keystroke
"""

from vmrobot.keyboard.layouts import LAYOUTS, KeyLayout
from vmrobot.keyboard.translator import KeyDirection, ScancodeTranslator

__all__ = ["KeyDirection", "KeyLayout", "LAYOUTS", "ScancodeTranslator"]
