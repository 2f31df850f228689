"""
Tests for the per-turn action executor.

Covers ordering, failure isolation, exactly-once execution, cooperative
abort and the local-only fallback when no sandbox is available.
"""

import asyncio

import pytest

from workbench_sync.action_executor import ActionExecutor, ActionNotFoundError
from workbench_sync.actions import ActionStatus, FileAction, ShellAction


@pytest.fixture
def executor(store, link):
    return ActionExecutor("turn-1", store, link)


def _register_and_submit(executor, action_id, action):
    executor.register(action_id, action)
    executor.submit(action_id, action)


async def test_executes_in_submission_order(store, connected_link, driver):
    """A slow sandbox call never lets a later action overtake it."""
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.delays["/home/user/slow.txt"] = 0.05
    driver.delays["npm test"] = 0.02

    _register_and_submit(executor, "1", FileAction(file_path="slow.txt", content="s"))
    _register_and_submit(executor, "2", ShellAction(command="npm test"))
    _register_and_submit(executor, "3", FileAction(file_path="fast.txt", content="f"))
    await executor.join()

    ordered = [call[1] for call in driver.calls if call[0] in ("write", "run")]
    assert ordered == ["/home/user/slow.txt", "npm test", "/home/user/fast.txt"]
    assert all(state.status is ActionStatus.COMPLETE for state in executor.actions.values())


async def test_registration_order_does_not_decide_execution_order(store, connected_link, driver):
    executor = ActionExecutor("turn-1", store, connected_link)
    first = FileAction(file_path="first.txt", content="1")
    second = FileAction(file_path="second.txt", content="2")

    executor.register("b", second)
    executor.register("a", first)
    executor.submit("a", first)
    executor.submit("b", second)
    await executor.join()

    assert driver.kinds("write") == ["/home/user/first.txt", "/home/user/second.txt"]


async def test_failed_action_does_not_stall_later_actions(store, connected_link, driver):
    """The chain continues past a failure by design."""
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.failing.add("exit 1")

    _register_and_submit(executor, "1", FileAction(file_path="a.txt", content="a"))
    _register_and_submit(executor, "2", ShellAction(command="exit 1"))
    _register_and_submit(executor, "3", FileAction(file_path="b.txt", content="b"))
    await executor.join()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert executor.get("2").status is ActionStatus.FAILED
    assert executor.get("2").error == "Action failed"
    assert executor.get("3").status is ActionStatus.COMPLETE
    assert store.get("/project/b.txt").content == "b"


async def test_sandbox_write_failure_still_writes_locally(store, connected_link, driver):
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.failing.add("/home/user/a.txt")

    _register_and_submit(executor, "1", FileAction(file_path="a.txt", content="a"))
    await executor.join()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert store.get("/project/a.txt").content == "a"


async def test_submit_executes_exactly_once(store, connected_link, driver):
    executor = ActionExecutor("turn-1", store, connected_link)
    action = FileAction(file_path="a.txt", content="v1")

    _register_and_submit(executor, "1", action)
    executor.submit("1", FileAction(file_path="a.txt", content="v2"))
    await executor.join()

    assert driver.kinds("write") == ["/home/user/a.txt"]
    assert store.get("/project/a.txt").content == "v1"
    assert executor.get("1").action.content == "v1"


async def test_content_amended_before_submit(executor, store):
    executor.register("1", FileAction(file_path="a.txt", content=""))
    executor.submit("1", FileAction(file_path="a.txt", content="final"))
    await executor.join()

    assert store.get("/project/a.txt").content == "final"


async def test_register_is_idempotent(executor):
    first = executor.register("1", FileAction(file_path="a.txt", content="a"))
    again = executor.register("1", FileAction(file_path="other.txt", content="b"))

    assert again is first
    assert first.action.file_path == "a.txt"
    assert first.executed is False


async def test_registered_action_becomes_running(executor):
    state = executor.register("1", ShellAction(command="ls"))
    assert state.status is ActionStatus.PENDING

    await asyncio.sleep(0)
    assert state.status is ActionStatus.RUNNING
    assert state.executed is False


async def test_submit_unknown_action(executor):
    with pytest.raises(ActionNotFoundError):
        executor.submit("missing")


async def test_local_only_when_disconnected(executor, store, link):
    _register_and_submit(executor, "1", FileAction(file_path="src/a.ts", content="a"))
    _register_and_submit(executor, "2", ShellAction(command="npm run dev"))
    await executor.join()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert executor.get("2").status is ActionStatus.COMPLETE
    assert store.get("/project/src/a.ts").content == "a"
    assert link.pending_count == 0


async def test_connecting_sandbox_does_not_hold_back_local_write(store, link, driver):
    link.set_connecting(True)
    executor = ActionExecutor("turn-1", store, link)

    _register_and_submit(executor, "1", FileAction(file_path="a.txt", content="a"))
    await executor.join()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert store.get("/project/a.txt").content == "a"
    assert link.pending_count == 2

    await link.register_callbacks(driver)
    assert driver.kinds("write") == ["/home/user/a.txt"]


async def test_abort_during_execution(store, connected_link, driver):
    """Abort is cooperative: the in-flight write still lands."""
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.delays["/home/user/a.txt"] = 0.05

    _register_and_submit(executor, "1", FileAction(file_path="a.txt", content="a"))
    await asyncio.sleep(0.01)
    executor.abort("1")
    assert executor.get("1").status is ActionStatus.ABORTED

    await executor.join()

    assert executor.get("1").status is ActionStatus.ABORTED
    assert driver.kinds("write") == ["/home/user/a.txt"]
    assert store.get("/project/a.txt") is not None


async def test_abort_before_execution_still_writes(store, connected_link, driver):
    """Abort only changes the final status; the queued write still lands."""
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.delays["/home/user/first.txt"] = 0.05

    _register_and_submit(executor, "1", FileAction(file_path="first.txt", content="1"))
    _register_and_submit(executor, "2", FileAction(file_path="second.txt", content="2"))
    executor.abort("2")
    await executor.join()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert executor.get("2").status is ActionStatus.ABORTED
    assert store.get("/project/second.txt").content == "2"
    assert driver.kinds("write") == ["/home/user/first.txt", "/home/user/second.txt"]


async def test_abort_all_leaves_finished_actions(executor):
    _register_and_submit(executor, "1", ShellAction(command="ls"))
    await executor.join()
    executor.register("2", ShellAction(command="pwd"))

    executor.abort_all()

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert executor.get("2").status is ActionStatus.ABORTED


async def test_abort_does_not_rewrite_settled_status(store, connected_link, driver):
    executor = ActionExecutor("turn-1", store, connected_link)
    driver.failing.add("exit 1")

    _register_and_submit(executor, "1", FileAction(file_path="a.txt", content="a"))
    _register_and_submit(executor, "2", ShellAction(command="exit 1"))
    await executor.join()

    executor.abort("1")
    executor.abort("2")

    assert executor.get("1").status is ActionStatus.COMPLETE
    assert executor.get("1").aborted is False
    assert executor.get("2").status is ActionStatus.FAILED
