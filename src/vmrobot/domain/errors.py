"""Error kinds raised by the session lifecycle and action pipeline.

All errors derive from :class:`VMRobotError`, which carries the identifier
of the session involved (when known) and, for lifecycle failures, the error
raised by the cleanup attempt that followed the original failure.
"""

from __future__ import annotations


class VMRobotError(Exception):
    """Base class for vmrobot errors."""

    def __init__(self, message: str, vm_id: str = "") -> None:
        super().__init__(message)
        self.vm_id = vm_id
        self.close_error: Exception | None = None


class PreconditionFailedError(VMRobotError):
    """Raised when a machine is not in the state an operation requires."""


class ResourceNotFoundError(VMRobotError):
    """Raised for unknown machines, snapshots, sessions or layouts."""


class LifecycleError(VMRobotError):
    """Raised when a step of attach, clone or launch fails."""


class DeviceInjectionError(VMRobotError):
    """Raised when the hypervisor rejects an injected input event."""


class SessionCloseError(VMRobotError):
    """Raised when one or more teardown steps of a session failed.

    Every teardown step is attempted; ``errors`` lists all the failures in
    the order they happened.
    """

    def __init__(self, message: str, errors: list[Exception], vm_id: str = "") -> None:
        super().__init__(message, vm_id=vm_id)
        self.errors = errors


# ---------------------------------------------------------------------------
# Translation failures (action -> device call)
# ---------------------------------------------------------------------------


class ActionError(VMRobotError):
    """Raised when an action cannot be translated into a device call."""


class UnknownActionError(ActionError):
    """Raised for an action name outside the supported set."""


class InvalidActionError(ActionError):
    """Raised when an action's arguments do not match its signature."""


class UnknownKeyCodeError(ActionError):
    """Raised when a key code has no entry in the keyboard layout."""


class UnknownCharacterError(UnknownKeyCodeError):
    """Raised when a character of typed text cannot be produced by the layout."""


class CalibrationError(ActionError):
    """Raised when screen calibration cannot locate its target."""
