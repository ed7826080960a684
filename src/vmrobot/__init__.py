"""vmrobot -- Remote keyboard/mouse control of virtual machines.

This package attaches to (or clones and launches) virtual machines through
a hypervisor automation interface and drives them with ordered batches of
synthetic input actions: pointer moves, button presses, wheel events and
keyboard scancodes.
"""

__version__ = "0.1.0"
