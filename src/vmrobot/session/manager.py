"""Session lifecycle manager.

Creates sessions in one of two ways and keeps them in a registry keyed by
session id:

- :meth:`SessionManager.attach` binds to a machine that is already running,
  with a shared lock (other viewers may be controlling it too).
- :meth:`SessionManager.clone_and_launch` makes a linked clone of a machine
  (or of one of its snapshots), registers it and starts it headless.

Either the caller gets a fully initialized :class:`VMSession`, or whatever
was acquired on the way is torn down before the error is raised.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from vmrobot.domain.errors import (
    LifecycleError,
    PreconditionFailedError,
    ResourceNotFoundError,
    SessionCloseError,
    VMRobotError,
)
from vmrobot.hypervisor.base import (
    CloneMode,
    CloneOption,
    Hypervisor,
    HypervisorError,
    LockType,
    Machine,
    MachineState,
    Progress,
)
from vmrobot.session.vm import TeardownStrategy, VMSession

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionManager:
    """Creates, tracks and closes VM sessions on one hypervisor.

    Args:
        hypervisor: The hypervisor automation entry point.
        clone_timeout: Seconds to wait for the clone and the launch to
            complete. ``None`` waits as long as it takes.
    """

    def __init__(self, hypervisor: Hypervisor, clone_timeout: float | None = None) -> None:
        self._hypervisor = hypervisor
        self._clone_timeout = clone_timeout
        self._sessions: dict[str, VMSession] = {}

    @property
    def sessions(self) -> dict[str, VMSession]:
        return dict(self._sessions)

    def get(self, session_id: str) -> VMSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise ResourceNotFoundError(f"Unknown session {session_id!r}", vm_id=session_id)
        return session

    async def attach(self, machine_id: str) -> VMSession:
        """Attach to a running machine.

        Raises:
            PreconditionFailedError: If the machine is not running.
            ResourceNotFoundError: If the machine does not exist.
            LifecycleError: If locking or console access fails.
        """
        session = VMSession(new_session_id(), TeardownStrategy.DETACH)
        logger.info("Session %s: connecting to %s", session.id, machine_id)
        try:
            session.machine = await self._find_machine(machine_id, session.id)
            state = await session.machine.get_state()
            if state != MachineState.RUNNING:
                raise PreconditionFailedError(
                    f"The virtual machine {machine_id!r} is not running (state: {state})",
                    vm_id=session.id,
                )
            hv_session = await self._hypervisor.get_session_object()
            await session.machine.lock_machine(hv_session, LockType.SHARED)
            session.hv_session = hv_session
            await session.bind_console()
        except asyncio.CancelledError:
            await self._cleanup(session)
            raise
        except Exception as e:
            error = await self._abort(session, e, f"Failed to attach to {machine_id!r}")
            if error is e:
                raise
            raise error from e

        self._sessions[session.id] = session
        logger.info("Session %s attached to %s", session.id, machine_id)
        return session

    async def clone_and_launch(
        self,
        source_id: str,
        new_name: str | None = None,
        snapshot: str | None = None,
    ) -> VMSession:
        """Clone a machine (or one of its snapshots) and start the clone.

        The clone is a linked clone named ``new_name`` (defaults to the new
        session id). Closing the returned session deletes it.

        Raises:
            ResourceNotFoundError: If the machine or snapshot does not exist.
            LifecycleError: If cloning, registering or launching fails.
        """
        session = VMSession(new_session_id(), TeardownStrategy.DESTROY)
        name = new_name or session.id
        logger.info(
            "Session %s: cloning %s (%s) as %s",
            session.id, source_id, snapshot or "snapshot not specified", name,
        )
        try:
            source = await self._find_machine(source_id, session.id)
            if snapshot:
                source = await self._find_snapshot_machine(source, snapshot, session.id)
            session.machine = await self._hypervisor.create_machine(name)
            progress = await source.clone_to(session.machine, CloneMode.MACHINE_STATE, [CloneOption.LINK])
            await self._wait(progress, f"clone of {source_id!r}", session.id)
            await self._hypervisor.register_machine(session.machine)

            hv_session = await self._hypervisor.get_session_object()
            progress = await session.machine.launch_vm_process(hv_session, "headless")
            session.hv_session = hv_session
            session.launched = True
            await self._wait(progress, f"launch of {name!r}", session.id)
            await session.bind_console()
        except asyncio.CancelledError:
            await self._cleanup(session)
            raise
        except Exception as e:
            error = await self._abort(session, e, f"Failed to clone and launch {source_id!r}")
            if error is e:
                raise
            raise error from e

        self._sessions[session.id] = session
        logger.info("Session %s running clone %s", session.id, name)
        return session

    async def close(self, session: VMSession | str) -> None:
        """Close a session and drop it from the registry.

        Raises:
            ResourceNotFoundError: If the session id is unknown.
            SessionCloseError: If a teardown step failed.
        """
        session_id = session if isinstance(session, str) else session.id
        found = self._sessions.pop(session_id, None)
        if found is None:
            if isinstance(session, VMSession):
                # Already removed from the registry; close() is idempotent.
                await session.close()
                return
            raise ResourceNotFoundError(f"Unknown session {session_id!r}", vm_id=session_id)
        logger.info("Session %s: closing", session_id)
        await found.close()

    async def close_all(self) -> None:
        """Close every registered session, then raise the first failure."""
        first_error: Exception | None = None
        for session_id in list(self._sessions):
            try:
                await self.close(session_id)
            except SessionCloseError as e:
                logger.error("Failed to close session %s: %s", session_id, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    async def _find_machine(self, machine_id: str, session_id: str) -> Machine:
        try:
            return await self._hypervisor.find_machine(machine_id)
        except HypervisorError as e:
            raise ResourceNotFoundError(f"Unknown machine {machine_id!r}: {e}", vm_id=session_id) from e

    async def _find_snapshot_machine(self, machine: Machine, snapshot: str, session_id: str) -> Machine:
        try:
            snapshot_object = await machine.find_snapshot(snapshot)
        except HypervisorError as e:
            raise ResourceNotFoundError(
                f"Unknown snapshot {snapshot!r} of {machine.name!r}: {e}", vm_id=session_id
            ) from e
        return await snapshot_object.get_machine()

    async def _wait(self, progress: Progress, what: str, session_id: str) -> None:
        timeout_ms = -1 if self._clone_timeout is None else int(self._clone_timeout * 1000)
        completed = await progress.wait_for_completion(timeout_ms)
        if not completed:
            raise LifecycleError(f"Timed out waiting for {what}", vm_id=session_id)

    async def _cleanup(self, session: VMSession) -> Exception | None:
        """Close a half-built session, returning the close error if any."""
        try:
            await session.close()
        except SessionCloseError as e:
            logger.error("Session %s: cleanup after failure also failed: %s", session.id, e)
            return e
        return None

    async def _abort(self, session: VMSession, error: Exception, message: str) -> VMRobotError:
        """Tear down after a failed creation step and build the error to raise.

        The original failure always wins; a cleanup failure is attached as
        ``close_error``.
        """
        logger.error("%s: %s", message, error)
        close_error = await self._cleanup(session)
        if isinstance(error, VMRobotError):
            result = error
        else:
            result = LifecycleError(f"{message}: {error}", vm_id=session.id)
        result.close_error = close_error
        return result
