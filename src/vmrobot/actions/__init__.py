"""Action execution for vmrobot.

Public API:
    ActionPipeline -- Runs ordered action batches against a session
    Calibrator -- Screen calibration collaborator interface
    RedRectangleCalibrator -- Screenshot-based calibrator
"""

from vmrobot.actions.calibration import Calibrator, RedRectangleCalibrator
from vmrobot.actions.pipeline import ActionPipeline

__all__ = ["ActionPipeline", "Calibrator", "RedRectangleCalibrator"]
