"""Tests for VMSession teardown and device injection."""

from __future__ import annotations

from unittest.mock import AsyncMock, call

import pytest

from vmrobot.domain.errors import DeviceInjectionError, SessionCloseError
from vmrobot.hypervisor.base import HypervisorError, ProcessRequest, ProcessResult
from vmrobot.session.vm import TeardownStrategy, VMSession


@pytest.fixture
def destroy_session(mock_session: VMSession) -> VMSession:
    mock_session.teardown = TeardownStrategy.DESTROY
    mock_session.launched = True
    return mock_session


class TestClose:
    @pytest.mark.asyncio
    async def test_detach_only_unlocks(self, mock_session: VMSession) -> None:
        machine = mock_session.machine
        hv_session = mock_session.hv_session
        await mock_session.close()
        hv_session.unlock_machine.assert_awaited_once()
        machine.power_off.assert_not_called()
        machine.unregister_and_delete.assert_not_called()
        assert mock_session.closed
        assert not mock_session.is_ready

    @pytest.mark.asyncio
    async def test_destroy_order(self, destroy_session: VMSession) -> None:
        order = AsyncMock()
        destroy_session.machine.power_off = order.power_off
        destroy_session.hv_session.unlock_machine = order.unlock_machine
        destroy_session.machine.unregister_and_delete = order.unregister_and_delete

        await destroy_session.close()
        assert order.mock_calls == [call.power_off(), call.unlock_machine(), call.unregister_and_delete()]

    @pytest.mark.asyncio
    async def test_destroy_without_launch_skips_power_off(self, destroy_session: VMSession) -> None:
        destroy_session.launched = False
        machine = destroy_session.machine
        await destroy_session.close()
        machine.power_off.assert_not_called()
        machine.unregister_and_delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_lock_no_unlock(self) -> None:
        session = VMSession("half-built", TeardownStrategy.DETACH)
        session.machine = AsyncMock()
        await session.close()
        session.machine.power_off.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_close_does_nothing(self, mock_session: VMSession) -> None:
        hv_session = mock_session.hv_session
        await mock_session.close()
        await mock_session.close()
        hv_session.unlock_machine.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_every_step_runs_and_errors_are_collected(self, destroy_session: VMSession) -> None:
        machine = destroy_session.machine
        machine.power_off.side_effect = HypervisorError("power")
        destroy_session.hv_session.unlock_machine.side_effect = HypervisorError("unlock")

        with pytest.raises(SessionCloseError, match="power") as exc_info:
            await destroy_session.close()
        machine.unregister_and_delete.assert_awaited_once()
        assert [str(e) for e in exc_info.value.errors] == ["power", "unlock"]
        assert destroy_session.closed

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, mock_session: VMSession) -> None:
        hv_session = mock_session.hv_session
        async with mock_session:
            pass
        hv_session.unlock_machine.assert_awaited_once()


class TestInjection:
    @pytest.mark.asyncio
    async def test_move_carries_held_buttons(self, mock_session: VMSession) -> None:
        mock_session.mouse_buttons = 0x01
        await mock_session.move_mouse(5, 6)
        mock_session.mouse.put_mouse_event_absolute.assert_awaited_once_with(5, 6, 0, 0, 0x01)

    @pytest.mark.asyncio
    async def test_button_mask_committed_after_success(self, mock_session: VMSession) -> None:
        await mock_session.put_mouse_buttons(0x02)
        mock_session.mouse.put_mouse_event.assert_awaited_once_with(0, 0, 0, 0, 0x02)
        assert mock_session.mouse_buttons == 0x02

    @pytest.mark.asyncio
    async def test_button_mask_unchanged_on_failure(self, mock_session: VMSession) -> None:
        mock_session.mouse.put_mouse_event.side_effect = HypervisorError("rejected")
        with pytest.raises(DeviceInjectionError, match="rejected"):
            await mock_session.put_mouse_buttons(0x01)
        assert mock_session.mouse_buttons == 0

    @pytest.mark.asyncio
    async def test_scroll(self, mock_session: VMSession) -> None:
        await mock_session.scroll_mouse(-3)
        mock_session.mouse.put_mouse_event.assert_awaited_once_with(0, 0, -3, 0, 0)

    @pytest.mark.asyncio
    async def test_scancodes_passed_as_list(self, mock_session: VMSession) -> None:
        await mock_session.put_scancodes((0x1C, 0x9C))
        mock_session.keyboard.put_scancodes.assert_awaited_once_with([0x1C, 0x9C])

    @pytest.mark.asyncio
    async def test_injection_after_close_fails(self, mock_session: VMSession) -> None:
        await mock_session.close()
        with pytest.raises(DeviceInjectionError, match="no keyboard"):
            await mock_session.put_scancodes([0x1C])

    @pytest.mark.asyncio
    async def test_run_process(self, mock_session: VMSession) -> None:
        mock_session.console.run_process.return_value = ProcessResult(exit_code=0, stdout="ok")
        result = await mock_session.run_process(ProcessRequest(command_line=["whoami"]))
        assert result.stdout == "ok"

    @pytest.mark.asyncio
    async def test_run_process_failure(self, mock_session: VMSession) -> None:
        mock_session.console.run_process.side_effect = HypervisorError("no guest additions")
        with pytest.raises(DeviceInjectionError, match="whoami"):
            await mock_session.run_process(ProcessRequest(command_line=["whoami"]))

    def test_repr(self, mock_session: VMSession) -> None:
        assert "test-vm" in repr(mock_session)
