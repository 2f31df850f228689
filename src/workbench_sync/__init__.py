"""Workbench Sync - action execution and sandbox synchronization engine."""

from .action_executor import ActionExecutor, ActionNotFoundError
from .actions import ActionState, ActionStatus, FileAction, ShellAction
from .blob_store import InMemoryBlobStore, PostgresBlobStore
from .filesystem import File, Folder, VirtualFileStore
from .reconciler import Reconciler, ReconcileResult
from .sandbox_link import ConnectionState, SandboxDriver, SandboxLink, SandboxResetError
from .workbench import ArtifactNotFoundError, Workbench

__all__ = [
    "ActionExecutor",
    "ActionNotFoundError",
    "ActionState",
    "ActionStatus",
    "ArtifactNotFoundError",
    "ConnectionState",
    "File",
    "FileAction",
    "Folder",
    "InMemoryBlobStore",
    "PostgresBlobStore",
    "ReconcileResult",
    "Reconciler",
    "SandboxDriver",
    "SandboxLink",
    "SandboxResetError",
    "ShellAction",
    "VirtualFileStore",
    "Workbench",
]
__version__ = "0.1.0"
