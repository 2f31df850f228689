"""In-memory virtual filesystem for the active conversation.

The store mirrors what the model believes exists in the workspace:
- One map of absolute path -> File | Folder per conversation
- A pre-edit baseline recorded the first time a path is overwritten
- Persistence of the whole map to a blob store after every write
"""

import logging
from types import MappingProxyType
from typing import Annotated, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .blob_store import BlobStore
from .paths import local_parent_folders, to_local_path

logger = logging.getLogger(__name__)

STORAGE_KEY_PREFIX = "workbench_files_"


class File(BaseModel):
    """File entry with text content."""

    model_config = ConfigDict(frozen=True)

    type: Literal["file"] = "file"
    content: str
    is_binary: bool = False


class Folder(BaseModel):
    """Folder entry. Only makes intermediate directories visible."""

    model_config = ConfigDict(frozen=True)

    type: Literal["folder"] = "folder"


Dirent = Annotated[Union[File, Folder], Field(discriminator="type")]
FileMap = dict[str, Dirent]

_file_map_adapter: TypeAdapter[FileMap] = TypeAdapter(FileMap)


def storage_key(conversation_id: str) -> str:
    return f"{STORAGE_KEY_PREFIX}{conversation_id}"


class VirtualFileStore:
    """Per-conversation file map with first-touch modification tracking.

    Only one conversation is in scope at a time. Switching conversations
    drops the in-memory state and reloads it from the blob store.
    """

    def __init__(self, blob_store: BlobStore):
        """Initialize file store.

        Args:
            blob_store: Persistence backend, keyed by conversation id
        """
        self.blob_store = blob_store
        self._conversation_id: str | None = None
        self._files: FileMap = {}
        self._modified: dict[str, str] = {}
        self._size = 0

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def files_count(self) -> int:
        """Number of File entries (folders excluded)."""
        return self._size

    @property
    def files(self) -> Mapping[str, Dirent]:
        """Read-only snapshot of the current file map."""
        return MappingProxyType(dict(self._files))

    async def set_active_conversation(self, conversation_id: str | None) -> None:
        """Swap the in-scope file map to the one stored for ``conversation_id``.

        Calling with the active id is a no-op. ``None`` leaves the store empty.
        If loading fails, no conversation is active afterwards, so nothing is
        persisted over the stored map and the switch can be retried.
        """
        if conversation_id == self._conversation_id:
            return

        self._conversation_id = None
        self._clear()

        if conversation_id:
            await self._load(conversation_id)

        self._conversation_id = conversation_id

    def get(self, path: str) -> File | None:
        """Return the entry at ``path`` only if it is a File."""
        dirent = self._files.get(path)
        if isinstance(dirent, File):
            return dirent
        return None

    async def write(self, path: str, content: str) -> None:
        """Upsert ``path`` as a File and persist the map.

        The content held before the first write since the last reset is kept
        as the baseline for ``path``; later writes leave it untouched.
        """
        self._upsert(path, content)
        await self._persist()

        logger.info(f"File updated: {path}")

    async def add(self, path: str, content: str) -> None:
        """Add a file rooted under WORK_DIR, creating missing parent folders."""
        normalized = to_local_path(path)

        for folder in local_parent_folders(normalized):
            if folder not in self._files:
                self._files[folder] = Folder()

        self._upsert(normalized, content)
        await self._persist()

        logger.info(f"File added: {normalized}")

    def modifications(self) -> Mapping[str, str]:
        """Read-only snapshot of path -> content before the first touch."""
        return MappingProxyType(dict(self._modified))

    def clear_modifications(self) -> None:
        self._modified.clear()

    def reset(self) -> None:
        """Drop all entries and forget the active conversation."""
        self._clear()
        self._conversation_id = None

    def _upsert(self, path: str, content: str) -> None:
        previous = self.get(path)

        if previous is not None and path not in self._modified:
            self._modified[path] = previous.content

        if previous is None:
            self._size += 1

        self._files[path] = File(content=content)

    def _clear(self) -> None:
        self._files = {}
        self._modified.clear()
        self._size = 0

    async def _load(self, conversation_id: str) -> None:
        stored = await self.blob_store.get(storage_key(conversation_id))
        if not stored:
            logger.debug(f"No stored files for conversation {conversation_id}")
            return

        self._files = _file_map_adapter.validate_json(stored)
        self._size = sum(1 for dirent in self._files.values() if isinstance(dirent, File))

        logger.info(f"Loaded {self._size} files for conversation {conversation_id}")

    async def _persist(self) -> None:
        if not self._conversation_id:
            return

        payload = _file_map_adapter.dump_json(self._files).decode()
        await self.blob_store.set(storage_key(self._conversation_id), payload)
