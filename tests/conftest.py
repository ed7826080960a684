"""Shared test fixtures for the vmrobot test suite.

Provides an in-memory hypervisor seeded with machines, a session manager
on top of it, a US-layout translator and a session whose device handles
are mocks.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from vmrobot.hypervisor.base import Console, HypervisorSession, Keyboard, Machine, MachineState, Mouse
from vmrobot.hypervisor.memory import InMemoryHypervisor, MemoryMachine
from vmrobot.keyboard.translator import ScancodeTranslator
from vmrobot.session.manager import SessionManager
from vmrobot.session.vm import TeardownStrategy, VMSession


# ---------------------------------------------------------------------------
# Hypervisor Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hypervisor() -> InMemoryHypervisor:
    """A hypervisor with one running machine (with a snapshot) and one stopped."""
    hv = InMemoryHypervisor()
    hv.add_machine("win10", state=MachineState.RUNNING, snapshots=["clean"])
    hv.add_machine("stopped", state=MachineState.POWERED_OFF)
    return hv


@pytest.fixture
def running_machine(hypervisor: InMemoryHypervisor) -> MemoryMachine:
    return next(m for m in hypervisor.registered_machines if m.name == "win10")


@pytest.fixture
def manager(hypervisor: InMemoryHypervisor) -> SessionManager:
    return SessionManager(hypervisor)


@pytest.fixture
def translator() -> ScancodeTranslator:
    return ScancodeTranslator.for_layout("us")


# ---------------------------------------------------------------------------
# Mock Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_session() -> VMSession:
    """A fully initialized session whose handles are AsyncMocks."""
    session = VMSession("test-vm", TeardownStrategy.DETACH)
    session.machine = AsyncMock(spec=Machine)
    session.hv_session = AsyncMock(spec=HypervisorSession)
    session.console = AsyncMock(spec=Console)
    session.mouse = AsyncMock(spec=Mouse)
    session.keyboard = AsyncMock(spec=Keyboard)
    return session
