"""Domain models for vmrobot.

This package contains the input action models and the error kinds shared
by the session lifecycle, the action pipeline and the HTTP surface. All
models use Pydantic v2 for validation and serialization.
"""

from vmrobot.domain.models import (
    ACTIONS,
    Action,
    ActionName,
    ActionResult,
    parse_action,
)

__all__ = [
    "ACTIONS",
    "Action",
    "ActionName",
    "ActionResult",
    "parse_action",
]
