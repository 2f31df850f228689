"""Serialized execution of the actions of one generation turn."""

import asyncio
import logging
from types import MappingProxyType
from typing import Mapping

from .actions import ActionState, ActionStatus, FileAction, ShellAction
from .filesystem import VirtualFileStore
from .sandbox_link import SandboxLink, mirror_file

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({ActionStatus.COMPLETE, ActionStatus.ABORTED, ActionStatus.FAILED})


class ActionNotFoundError(Exception):
    """Action was submitted or aborted before it was registered."""


class ActionExecutor:
    """
    Runs the actions of one turn strictly in submission order.

    Every submitted action is chained onto a single tail task. A failing
    action is recorded on its own state and logged; the chain deliberately
    continues so later actions of the turn still run.
    """

    def __init__(self, turn_id: str, store: VirtualFileStore, link: SandboxLink):
        """
        Initialize executor.

        Args:
            turn_id: Artifact/message id of the turn
            store: Virtual file store, written for every file action
            link: Sandbox link, written best-effort
        """
        self.turn_id = turn_id
        self.store = store
        self.link = link
        self._actions: dict[str, ActionState] = {}
        self._tail: asyncio.Task | None = None

    @property
    def actions(self) -> Mapping[str, ActionState]:
        return MappingProxyType(self._actions)

    def get(self, action_id: str) -> ActionState | None:
        return self._actions.get(action_id)

    def register(self, action_id: str, action: FileAction | ShellAction) -> ActionState:
        """Record a newly observed action as pending. Re-delivery is a no-op."""
        existing = self._actions.get(action_id)
        if existing is not None:
            return existing

        state = ActionState(turn_id=self.turn_id, action_id=action_id, action=action)
        self._actions[action_id] = state

        # Visibility only: flips to running once everything submitted so far is done.
        if self._tail is None:
            asyncio.get_running_loop().call_soon(self._mark_running, action_id)
        else:
            self._tail.add_done_callback(lambda _: self._mark_running(action_id))

        logger.debug(f"[{self.turn_id}] Registered {action.type} action {action_id}")
        return state

    def submit(self, action_id: str, action: FileAction | ShellAction | None = None) -> None:
        """Queue ``action_id`` for execution after every earlier submission.

        Each action executes at most once; repeated submissions are ignored.
        """
        state = self._actions.get(action_id)
        if state is None:
            raise ActionNotFoundError(f"Action {action_id} not found in turn {self.turn_id}")

        if state.executed:
            return

        if action is not None:
            state.action = action
        state.executed = True

        self._tail = asyncio.ensure_future(self._continue_on_error(self._tail, action_id))

    def abort(self, action_id: str) -> None:
        """Signal cancellation. Settled actions are left as they are.

        Best-effort only: the action still performs its writes, and in-flight
        sandbox calls are not interrupted. Only its final status changes.
        """
        state = self._actions.get(action_id)
        if state is None:
            raise ActionNotFoundError(f"Action {action_id} not found in turn {self.turn_id}")

        if state.status in TERMINAL_STATUSES:
            logger.debug(f"[{self.turn_id}] Action {action_id} already {state.status.value}, not aborting")
            return

        state.abort_event.set()
        state.status = ActionStatus.ABORTED
        logger.info(f"[{self.turn_id}] Aborted action {action_id}")

    def abort_all(self) -> None:
        for action_id in list(self._actions):
            self.abort(action_id)

    async def join(self) -> None:
        """Wait until every action submitted so far has settled."""
        while self._tail is not None and not self._tail.done():
            await asyncio.wait({self._tail})

    async def _continue_on_error(self, previous: asyncio.Task | None, action_id: str) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        try:
            await self._execute(action_id)
        except Exception:
            # Swallowed on purpose so the next action in the chain still runs.
            logger.exception(f"[{self.turn_id}] Action {action_id} failed")

    async def _execute(self, action_id: str) -> None:
        state = self._actions[action_id]
        state.status = ActionStatus.RUNNING

        try:
            if isinstance(state.action, FileAction):
                await self._run_file_action(state.action)
            else:
                await self._run_shell_action(state.action)
        except Exception:
            state.status = ActionStatus.FAILED
            state.error = "Action failed"
            raise

        state.status = ActionStatus.ABORTED if state.aborted else ActionStatus.COMPLETE

    async def _run_file_action(self, action: FileAction) -> None:
        if self.link.is_ready():
            try:
                await mirror_file(self.link, action.file_path, action.content)
            except Exception as e:
                logger.warning(f"Sandbox write failed for {action.file_path}: {e}")
        else:
            logger.warning("Sandbox not connected - file will only be stored locally")

        await self.store.add(action.file_path, action.content)
        logger.debug(f"File written to local store: {action.file_path}")

    async def _run_shell_action(self, action: ShellAction) -> None:
        if not self.link.is_ready():
            logger.info(f"Shell command (sandbox not connected, not run): {action.command}")
            return

        logger.info(f"Executing shell command in sandbox: {action.command}")
        await self.link.run_command(action.command)

    def _mark_running(self, action_id: str) -> None:
        state = self._actions.get(action_id)
        if state is not None and state.status is ActionStatus.PENDING:
            state.status = ActionStatus.RUNNING
