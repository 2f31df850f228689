"""Path conventions for the local workspace and the remote sandbox.

Local virtual paths live under ``WORK_DIR``; sandbox paths live under
``SANDBOX_HOME``. Both normalizations strip an existing matching root before
re-applying it, so they are idempotent.
"""

import os

WORK_DIR = os.getenv("WORKBENCH_WORK_DIR", "/project").rstrip("/") or "/project"
SANDBOX_HOME = os.getenv("WORKBENCH_SANDBOX_HOME", "/home/user").rstrip("/") or "/home/user"


def _relative_to(root: str, path: str) -> str:
    if path == root:
        return ""
    if path.startswith(root + "/"):
        path = path[len(root) :]
    return path.strip("/")


def _rooted(root: str, path: str) -> str:
    relative = _relative_to(root, path)
    return f"{root}/{relative}" if relative else root


def to_local_path(path: str) -> str:
    """Root ``path`` under WORK_DIR."""
    return _rooted(WORK_DIR, path)


def to_sandbox_path(path: str) -> str:
    """Root ``path`` under SANDBOX_HOME."""
    return _rooted(SANDBOX_HOME, path)


def _ancestors(path: str) -> list[str]:
    parts = [part for part in path.split("/") if part]
    return ["/" + "/".join(parts[:i]) for i in range(1, len(parts))]


def local_parent_folders(path: str) -> list[str]:
    """Folders strictly below WORK_DIR that contain ``path``, outermost first."""
    prefix = WORK_DIR + "/"
    return [p for p in _ancestors(to_local_path(path)) if p.startswith(prefix)]


def sandbox_parent_dirs(path: str) -> list[str]:
    """Directories at or below SANDBOX_HOME that contain ``path``, outermost first."""
    return [
        p
        for p in _ancestors(to_sandbox_path(path))
        if p == SANDBOX_HOME or p.startswith(SANDBOX_HOME + "/")
    ]
