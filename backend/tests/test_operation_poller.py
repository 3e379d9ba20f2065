import asyncio
from unittest.mock import AsyncMock

import pytest

from codegen_versions.clients.poller import OperationPoller
from codegen_versions.errors import ExternalServiceError, OperationTimeoutError
from codegen_versions.models.neon import OperationStatus


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def scripted(statuses_by_op):
    """Status fetcher that replays a per-operation script, repeating the last entry."""
    calls: dict[str, int] = {}

    async def fetch(project_ref, operation_id):
        script = statuses_by_op[operation_id]
        index = calls.get(operation_id, 0)
        calls[operation_id] = index + 1
        item = script[min(index, len(script) - 1)]
        if isinstance(item, Exception):
            raise item
        return item

    return fetch, calls


@pytest.mark.asyncio
async def test_finished_on_first_poll_returns_without_sleeping():
    clock = FakeClock()
    fetch = AsyncMock(return_value=OperationStatus.FINISHED)
    poller = OperationPoller(fetch, sleep=clock.sleep, clock=clock)

    status = await poller.wait_for_one("proj_1", "op_1")

    assert status is OperationStatus.FINISHED
    assert clock.sleeps == []
    fetch.assert_awaited_once_with("proj_1", "op_1")


@pytest.mark.asyncio
async def test_polls_at_interval_until_settled_and_reports_updates():
    clock = FakeClock()
    fetch, calls = scripted(
        {"op_1": [OperationStatus.SCHEDULING, OperationStatus.RUNNING, OperationStatus.FINISHED]}
    )
    seen: list[tuple[str, OperationStatus]] = []
    poller = OperationPoller(fetch, poll_interval=2.0, sleep=clock.sleep, clock=clock)

    status = await poller.wait_for_one(
        "proj_1", "op_1", on_update=lambda op, st: seen.append((op, st))
    )

    assert status is OperationStatus.FINISHED
    assert clock.sleeps == [2.0, 2.0]
    assert calls["op_1"] == 3
    assert [st for _, st in seen] == [
        OperationStatus.SCHEDULING,
        OperationStatus.RUNNING,
        OperationStatus.FINISHED,
    ]


@pytest.mark.asyncio
async def test_failed_status_is_returned_not_raised():
    clock = FakeClock()
    fetch, _ = scripted({"op_1": [OperationStatus.RUNNING, OperationStatus.FAILED]})
    poller = OperationPoller(fetch, sleep=clock.sleep, clock=clock)

    assert await poller.wait_for_one("proj_1", "op_1") is OperationStatus.FAILED


@pytest.mark.asyncio
async def test_never_settling_operation_times_out_with_last_status():
    clock = FakeClock()
    fetch, calls = scripted({"op_1": [OperationStatus.SCHEDULING, OperationStatus.RUNNING]})
    poller = OperationPoller(fetch, poll_interval=5.0, timeout=12.0, sleep=clock.sleep, clock=clock)

    with pytest.raises(OperationTimeoutError) as excinfo:
        await poller.wait_for_one("proj_1", "op_1")

    assert excinfo.value.operation_id == "op_1"
    assert excinfo.value.last_status == "running"
    assert excinfo.value.timeout == 12.0
    assert calls["op_1"] == 4


@pytest.mark.asyncio
async def test_last_sleep_is_capped_at_the_deadline():
    clock = FakeClock()
    fetch, calls = scripted({"op_1": [OperationStatus.RUNNING]})
    poller = OperationPoller(fetch, poll_interval=5.0, timeout=12.0, sleep=clock.sleep, clock=clock)

    with pytest.raises(OperationTimeoutError):
        await poller.wait_for_one("proj_1", "op_1")

    assert clock.sleeps == [5.0, 5.0, 2.0]
    assert clock.now == 12.0
    assert calls["op_1"] == 4


@pytest.mark.asyncio
async def test_per_call_options_override_defaults():
    clock = FakeClock()
    fetch, _ = scripted({"op_1": [OperationStatus.RUNNING]})
    poller = OperationPoller(fetch, poll_interval=5.0, timeout=300.0, sleep=clock.sleep, clock=clock)

    with pytest.raises(OperationTimeoutError):
        await poller.wait_for_one("proj_1", "op_1", poll_interval=1.0, timeout=3.0)

    assert set(clock.sleeps) == {1.0}


@pytest.mark.asyncio
async def test_wait_for_many_returns_status_per_operation():
    clock = FakeClock()
    fetch, _ = scripted(
        {
            "unarchive": [OperationStatus.RUNNING, OperationStatus.FINISHED],
            "create_branch": [OperationStatus.FINISHED],
            "suspend": [OperationStatus.SCHEDULING, OperationStatus.SKIPPED],
        }
    )
    poller = OperationPoller(fetch, sleep=clock.sleep, clock=clock)

    statuses = await poller.wait_for_many("proj_1", ["unarchive", "create_branch", "suspend"])

    assert statuses == {
        "unarchive": OperationStatus.FINISHED,
        "create_branch": OperationStatus.FINISHED,
        "suspend": OperationStatus.SKIPPED,
    }


@pytest.mark.asyncio
async def test_wait_for_many_lets_siblings_finish_before_raising():
    clock = FakeClock()
    fetch, calls = scripted(
        {
            "broken": [ExternalServiceError("neon", "get_operation", 500, "boom")],
            "slow": [OperationStatus.RUNNING, OperationStatus.RUNNING, OperationStatus.FINISHED],
        }
    )
    poller = OperationPoller(fetch, sleep=clock.sleep, clock=clock)

    with pytest.raises(ExternalServiceError):
        await poller.wait_for_many("proj_1", ["broken", "slow"])

    assert calls["slow"] == 3


@pytest.mark.asyncio
async def test_wait_for_many_with_no_operations_is_empty():
    fetch = AsyncMock()
    poller = OperationPoller(fetch)

    assert await poller.wait_for_many("proj_1", []) == {}
    fetch.assert_not_awaited()
