"""Shared helpers for vmrobot."""
