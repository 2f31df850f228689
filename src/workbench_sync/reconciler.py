"""Repair pass for file actions whose effect never reached the file store."""

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .action_executor import ActionExecutor
from .actions import FileAction
from .filesystem import VirtualFileStore
from .paths import to_local_path
from .sandbox_link import SandboxLink, mirror_file

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    synced: int = 0
    total: int = 0
    missing: list[str] = field(default_factory=list)


class Reconciler:
    """Re-applies recorded file actions that are missing from the store."""

    def __init__(
        self,
        executors: Mapping[str, ActionExecutor],
        store: VirtualFileStore,
        link: SandboxLink,
    ):
        self.executors = executors
        self.store = store
        self.link = link

    async def reconcile(self, turn_id: str) -> ReconcileResult:
        """Sync every file action of ``turn_id`` that has no File in the store.

        A failure on one path is logged and the pass continues. Running it
        twice without intervening changes syncs nothing the second time.
        """
        executor = self.executors.get(turn_id)
        if executor is None:
            logger.warning(f"Turn not found for reconciliation: {turn_id}")
            return ReconcileResult()

        file_actions = [
            state.action for state in executor.actions.values() if isinstance(state.action, FileAction)
        ]
        result = ReconcileResult(total=len(file_actions))

        self.link.set_syncing(True)
        try:
            for action in file_actions:
                if self.store.get(to_local_path(action.file_path)) is not None:
                    continue

                result.missing.append(action.file_path)
                logger.info(f"Missing file detected: {action.file_path}")

                try:
                    await self.store.add(action.file_path, action.content)
                    if self.link.is_ready():
                        await mirror_file(self.link, action.file_path, action.content)
                except Exception as e:
                    logger.error(f"Failed to sync file {action.file_path}: {e}")
                    continue

                result.synced += 1
        finally:
            self.link.set_syncing(False)

        if result.synced:
            logger.info(f"Synced {result.synced} missing files for turn {turn_id}")
        elif not result.missing:
            logger.info(f"All files of turn {turn_id} are already in the store")

        return result
