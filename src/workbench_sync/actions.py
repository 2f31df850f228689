"""Action payloads emitted by the model and their execution state."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class FileAction(BaseModel):
    """Write ``content`` to ``file_path`` in the workspace."""

    type: Literal["file"] = "file"
    file_path: str = Field(description="Path relative to the workspace root, or absolute")
    content: str = ""


class ShellAction(BaseModel):
    """Run ``command`` in the sandbox terminal."""

    type: Literal["shell"] = "shell"
    command: str


Action = Annotated[Union[FileAction, ShellAction], Field(discriminator="type")]


class ActionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class ActionState:
    """Mutable execution record for one action of one turn.

    ``turn_id`` and ``action_id`` never change. ``action`` may be amended
    until ``executed`` is set.
    """

    turn_id: str
    action_id: str
    action: FileAction | ShellAction
    status: ActionStatus = ActionStatus.PENDING
    executed: bool = False
    error: str | None = None
    abort_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()
