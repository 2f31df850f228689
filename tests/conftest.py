import asyncio
import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from workbench_sync.blob_store import InMemoryBlobStore
from workbench_sync.filesystem import VirtualFileStore
from workbench_sync.sandbox_link import SandboxLink


class RecordingDriver:
    """Sandbox driver that records every call in order.

    ``delays`` maps a path or command to seconds to sleep before completing;
    ``failing`` holds paths or commands that raise.
    """

    def __init__(self, terminal_id: str | None = "term-1"):
        self.calls: list[tuple] = []
        self.delays: dict[str, float] = {}
        self.failing: set[str] = set()
        self.terminal_id = terminal_id
        self.created = 0

    async def _perform(self, kind: str, target: str, *extra) -> None:
        delay = self.delays.get(target, 0)
        if delay:
            await asyncio.sleep(delay)
        self.calls.append((kind, target, *extra))
        if target in self.failing:
            raise RuntimeError(f"{kind} failed for {target}")

    async def write_file(self, path: str, content: str) -> bool:
        await self._perform("write", path, content)
        return True

    async def make_directory(self, path: str) -> bool:
        await self._perform("mkdir", path)
        return True

    async def run_command(self, command: str) -> None:
        await self._perform("run", command)

    async def send_terminal_input(self, terminal_id: str, data: str) -> None:
        self.calls.append(("input", terminal_id, data))

    async def create_sandbox(self):
        self.created += 1
        return {"sandbox_id": f"sbx-{self.created}"}

    def get_active_terminal_id(self) -> str | None:
        return self.terminal_id

    def kinds(self, kind: str) -> list[str]:
        return [call[1] for call in self.calls if call[0] == kind]


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def store(blob_store):
    return VirtualFileStore(blob_store)


@pytest.fixture
def link():
    return SandboxLink()


@pytest.fixture
def driver():
    return RecordingDriver()


@pytest.fixture
async def connected_link(link, driver):
    """Link with a registered driver in the connected state."""
    link.set_connected(True, "sbx-test")
    await link.register_callbacks(driver)
    return link
