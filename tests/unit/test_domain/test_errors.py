"""Tests for the error hierarchy."""

from __future__ import annotations

from vmrobot.domain.errors import (
    ActionError,
    CalibrationError,
    DeviceInjectionError,
    LifecycleError,
    PreconditionFailedError,
    ResourceNotFoundError,
    SessionCloseError,
    UnknownCharacterError,
    UnknownKeyCodeError,
    VMRobotError,
)


class TestErrors:
    def test_all_errors_share_a_base(self) -> None:
        for cls in (
            PreconditionFailedError,
            ResourceNotFoundError,
            LifecycleError,
            DeviceInjectionError,
            ActionError,
            CalibrationError,
        ):
            assert issubclass(cls, VMRobotError)

    def test_device_errors_are_not_action_errors(self) -> None:
        assert not issubclass(DeviceInjectionError, ActionError)

    def test_unknown_character_is_unknown_key_code(self) -> None:
        assert issubclass(UnknownCharacterError, UnknownKeyCodeError)

    def test_vm_id_and_close_error(self) -> None:
        error = LifecycleError("boom", vm_id="abc")
        assert error.vm_id == "abc"
        assert error.close_error is None
        assert str(error) == "boom"

    def test_session_close_error_keeps_every_failure(self) -> None:
        first, second = RuntimeError("a"), RuntimeError("b")
        error = SessionCloseError("close failed", [first, second], vm_id="abc")
        assert error.errors == [first, second]
        assert error.vm_id == "abc"
