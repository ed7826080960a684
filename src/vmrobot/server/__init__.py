"""HTTP surface for vmrobot.

Exposes session creation, action execution, guest process execution
and session teardown over a FastAPI application.
"""
