"""
Replay a recorded action log through a Workbench, local-only.

The log is a JSON list of {"turn_id", "action_id", "action"} events, where
"action" is a file or shell action payload. Files are persisted to PostgreSQL
when POSTGRES_HOST is set, in memory otherwise.

Run this example:
    python examples/replay_actions.py actions.json conversation_123
"""

import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import TypeAdapter

from workbench_sync import InMemoryBlobStore, PostgresBlobStore, SandboxLink, VirtualFileStore, Workbench
from workbench_sync.actions import Action

_action_adapter: TypeAdapter = TypeAdapter(Action)


async def main(log_path: str, conversation_id: str):
    """Replay every event and reconcile each turn afterwards."""
    load_dotenv()
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    if os.getenv("POSTGRES_HOST"):
        blob_store = await PostgresBlobStore.from_env()
    else:
        blob_store = InMemoryBlobStore()

    workbench = Workbench(VirtualFileStore(blob_store), SandboxLink())
    await workbench.set_conversation(conversation_id)

    with open(log_path) as f:
        events = json.load(f)

    for event in events:
        action = _action_adapter.validate_python(event["action"])
        workbench.add_artifact(event["turn_id"])
        workbench.add_action(event["turn_id"], event["action_id"], action)
        workbench.run_action(event["turn_id"], event["action_id"], action)

    for turn_id in workbench.artifact_ids:
        await workbench.artifacts[turn_id].executor.join()
        result = await workbench.reconcile(turn_id)
        print(f"{turn_id}: {result.total} file actions, {result.synced} re-synced")

    print(f"\n{workbench.files_count} files in workspace:")
    for path in sorted(workbench.store.files):
        print(f"  {path}")


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2]))
