"""VM session lifecycle for vmrobot.

Public API:
    VMSession -- One controlled machine and its acquired handles
    TeardownStrategy -- Detach (unlock only) or destroy (delete the clone)
    SessionManager -- Attach / clone-and-launch / close
"""

from vmrobot.session.manager import SessionManager
from vmrobot.session.vm import TeardownStrategy, VMSession

__all__ = ["SessionManager", "TeardownStrategy", "VMSession"]
