"""Entry point for the action producer: turns, actions and conversations."""

import logging
from dataclasses import dataclass

from .action_executor import ActionExecutor
from .actions import FileAction, ShellAction
from .filesystem import VirtualFileStore
from .modifications import FileModification, compute_file_modifications
from .reconciler import Reconciler, ReconcileResult
from .sandbox_link import SandboxLink

logger = logging.getLogger(__name__)


class ArtifactNotFoundError(Exception):
    """Producer referenced a turn that was never added."""


@dataclass
class ArtifactState:
    id: str
    title: str
    closed: bool
    executor: ActionExecutor


class Workbench:
    """
    Routes producer events to one ActionExecutor per turn.

    The file store and sandbox link are shared by every turn.
    """

    def __init__(self, store: VirtualFileStore, link: SandboxLink):
        self.store = store
        self.link = link
        self.artifacts: dict[str, ArtifactState] = {}
        self.artifact_ids: list[str] = []
        self._executors: dict[str, ActionExecutor] = {}
        self.reconciler = Reconciler(self._executors, store, link)

    @property
    def first_artifact(self) -> ArtifactState | None:
        if not self.artifact_ids:
            return None
        return self.artifacts.get(self.artifact_ids[0])

    @property
    def files_count(self) -> int:
        return self.store.files_count

    def add_artifact(self, turn_id: str, title: str = "", artifact_id: str | None = None) -> ArtifactState:
        """Open a turn. Adding an existing turn returns it unchanged."""
        artifact = self.artifacts.get(turn_id)
        if artifact is not None:
            return artifact

        executor = ActionExecutor(turn_id, self.store, self.link)
        artifact = ArtifactState(id=artifact_id or turn_id, title=title, closed=False, executor=executor)
        self.artifacts[turn_id] = artifact
        self._executors[turn_id] = executor
        self.artifact_ids.append(turn_id)

        logger.debug(f"Added artifact {turn_id} ({title})")
        return artifact

    def update_artifact(self, turn_id: str, *, title: str | None = None, closed: bool | None = None) -> None:
        artifact = self.artifacts.get(turn_id)
        if artifact is None:
            return
        if title is not None:
            artifact.title = title
        if closed is not None:
            artifact.closed = closed

    def add_action(self, turn_id: str, action_id: str, action: FileAction | ShellAction) -> None:
        self._executor(turn_id).register(action_id, action)

    def run_action(self, turn_id: str, action_id: str, action: FileAction | ShellAction | None = None) -> None:
        self._executor(turn_id).submit(action_id, action)

    async def reconcile(self, turn_id: str) -> ReconcileResult:
        return await self.reconciler.reconcile(turn_id)

    async def set_conversation(self, conversation_id: str | None) -> None:
        """Switch the file store to ``conversation_id``; ``None`` also drops turns."""
        await self.store.set_active_conversation(conversation_id)
        if not conversation_id:
            self._clear_artifacts()

    def reset_for_new_conversation(self) -> None:
        self.store.reset()
        self._clear_artifacts()

    def file_modifications(self) -> dict[str, FileModification]:
        return compute_file_modifications(self.store.files, self.store.modifications())

    def reset_file_modifications(self) -> None:
        self.store.clear_modifications()

    def abort_all_actions(self) -> None:
        for artifact in self.artifacts.values():
            artifact.executor.abort_all()

    def _executor(self, turn_id: str) -> ActionExecutor:
        executor = self._executors.get(turn_id)
        if executor is None:
            raise ArtifactNotFoundError(f"Artifact {turn_id} not found")
        return executor

    def _clear_artifacts(self) -> None:
        self.artifacts.clear()
        self._executors.clear()
        self.artifact_ids.clear()
