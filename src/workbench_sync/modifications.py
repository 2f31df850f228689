"""Change payload between the modification baseline and the current files."""

import difflib
from typing import Literal, Mapping, TypedDict

from .filesystem import Dirent, File


class FileModification(TypedDict):
    type: Literal["diff", "file"]
    content: str


def compute_file_modifications(
    files: Mapping[str, Dirent],
    baseline: Mapping[str, str],
) -> dict[str, FileModification]:
    """Describe what changed for each baselined path.

    A unified diff is returned unless it would be larger than the new content,
    in which case the full content is sent instead. Unchanged paths, binary
    files and paths that no longer hold a file are omitted.
    """
    modifications: dict[str, FileModification] = {}

    for path, original in baseline.items():
        dirent = files.get(path)
        if not isinstance(dirent, File) or dirent.is_binary:
            continue

        if dirent.content == original:
            continue

        diff = "".join(
            difflib.unified_diff(
                original.splitlines(keepends=True),
                dirent.content.splitlines(keepends=True),
                fromfile=path,
                tofile=path,
            )
        )

        if len(diff) >= len(dirent.content):
            modifications[path] = {"type": "file", "content": dirent.content}
        else:
            modifications[path] = {"type": "diff", "content": diff}

    return modifications
