"""Screen calibration.

Browser-side callers need to know where the page viewport sits on the
guest screen before they can translate page coordinates into absolute
pointer positions. They draw a solid red rectangle of a known size over
the whole viewport and issue a ``calibrate(width, height)`` action; the
calibrator finds that rectangle in a screenshot of the guest and returns
its top-left corner.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from vmrobot.domain.errors import CalibrationError

if TYPE_CHECKING:
    from vmrobot.session.vm import VMSession

logger = logging.getLogger(__name__)

CALIBRATION_COLOR: tuple[int, int, int] = (255, 0, 0)


class Calibrator(ABC):
    """Locates the caller's viewport on the guest screen."""

    @abstractmethod
    async def calibrate(self, session: VMSession, width: int, height: int) -> dict[str, int]:
        """Return ``{"x": left, "y": top}`` of a ``width`` x ``height`` marker.

        Raises:
            CalibrationError: If the marker cannot be located.
        """
        ...


def locate_rectangle(
    image: np.ndarray,
    width: int,
    height: int,
    color: tuple[int, int, int] = CALIBRATION_COLOR,
    tolerance: int = 0,
) -> dict[str, int]:
    """Find the bounding box of ``color`` pixels and check its size.

    Args:
        image: RGB screenshot, H x W x 3 (extra channels are ignored).
        width: Expected rectangle width in pixels.
        height: Expected rectangle height in pixels.
        color: Marker color.
        tolerance: Per-channel difference still counted as the marker color.

    Raises:
        CalibrationError: If no marker pixel is found or the box size differs.
    """
    if image.ndim != 3 or image.shape[2] < 3:
        raise CalibrationError(f"Expected an RGB screenshot, got shape {image.shape}")

    diff = np.abs(image[:, :, :3].astype(np.int16) - np.array(color, dtype=np.int16))
    mask = np.all(diff <= tolerance, axis=2)
    ys, xs = np.nonzero(mask)
    if xs.size == 0:
        raise CalibrationError("Calibration rectangle not found on screen")

    left, right = int(xs.min()), int(xs.max())
    top, bottom = int(ys.min()), int(ys.max())
    found_width = right - left + 1
    found_height = bottom - top + 1
    if (found_width, found_height) != (width, height):
        raise CalibrationError(
            f"Found a {found_width}x{found_height} rectangle at ({left}, {top}), "
            f"expected {width}x{height}"
        )
    return {"x": left, "y": top}


class RedRectangleCalibrator(Calibrator):
    """Calibrates from a screenshot taken through the session's console."""

    def __init__(self, color: tuple[int, int, int] = CALIBRATION_COLOR, tolerance: int = 0) -> None:
        self._color = color
        self._tolerance = tolerance

    async def calibrate(self, session: VMSession, width: int, height: int) -> dict[str, int]:
        image = np.asarray(await session.take_screenshot())
        offset = locate_rectangle(image, width, height, self._color, self._tolerance)
        logger.info(
            "Session %s calibrated: %dx%d viewport at (%d, %d)",
            session.id, width, height, offset["x"], offset["y"],
        )
        return offset
