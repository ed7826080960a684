"""Tests for screen calibration."""

from __future__ import annotations

from unittest.mock import AsyncMock

import numpy as np
import pytest

from vmrobot.actions.calibration import RedRectangleCalibrator, locate_rectangle
from vmrobot.domain.errors import CalibrationError, DeviceInjectionError
from vmrobot.hypervisor.base import HypervisorError
from vmrobot.session.vm import VMSession


def _screen(height: int = 60, width: int = 80) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


class TestLocateRectangle:
    def test_finds_top_left(self) -> None:
        image = _screen()
        image[5:15, 10:30] = (255, 0, 0)
        assert locate_rectangle(image, 20, 10) == {"x": 10, "y": 5}

    def test_ignores_other_colors(self) -> None:
        image = _screen()
        image[:, :] = (250, 10, 10)
        image[20:22, 40:44] = (255, 0, 0)
        assert locate_rectangle(image, 4, 2) == {"x": 40, "y": 20}

    def test_tolerance(self) -> None:
        image = _screen()
        image[0:3, 0:3] = (250, 4, 2)
        with pytest.raises(CalibrationError):
            locate_rectangle(image, 3, 3)
        assert locate_rectangle(image, 3, 3, tolerance=5) == {"x": 0, "y": 0}

    def test_alpha_channel_is_ignored(self) -> None:
        image = np.zeros((10, 10, 4), dtype=np.uint8)
        image[2:4, 2:6] = (255, 0, 0, 128)
        assert locate_rectangle(image, 4, 2) == {"x": 2, "y": 2}

    def test_not_found(self) -> None:
        with pytest.raises(CalibrationError, match="not found"):
            locate_rectangle(_screen(), 10, 10)

    def test_size_mismatch(self) -> None:
        image = _screen()
        image[0:10, 0:10] = (255, 0, 0)
        with pytest.raises(CalibrationError, match="expected 20x10"):
            locate_rectangle(image, 20, 10)

    def test_rejects_grayscale(self) -> None:
        with pytest.raises(CalibrationError, match="RGB"):
            locate_rectangle(np.zeros((10, 10), dtype=np.uint8), 1, 1)


class TestRedRectangleCalibrator:
    @pytest.mark.asyncio
    async def test_uses_session_screenshot(self, mock_session: VMSession) -> None:
        image = _screen()
        image[30:40, 50:70] = (255, 0, 0)
        mock_session.console.take_screenshot.return_value = image
        offset = await RedRectangleCalibrator().calibrate(mock_session, 20, 10)
        assert offset == {"x": 50, "y": 30}

    @pytest.mark.asyncio
    async def test_custom_color(self, mock_session: VMSession) -> None:
        image = _screen()
        image[0:2, 0:2] = (0, 255, 0)
        mock_session.console.take_screenshot.return_value = image
        offset = await RedRectangleCalibrator(color=(0, 255, 0)).calibrate(mock_session, 2, 2)
        assert offset == {"x": 0, "y": 0}

    @pytest.mark.asyncio
    async def test_screenshot_failure(self, mock_session: VMSession) -> None:
        mock_session.console.take_screenshot = AsyncMock(side_effect=HypervisorError("no display"))
        with pytest.raises(DeviceInjectionError, match="no display"):
            await RedRectangleCalibrator().calibrate(mock_session, 2, 2)
