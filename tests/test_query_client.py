import asyncio

import pytest

from src.query.query_client import Mutation, QueryClient


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Flaky:
    """Async callable failing `failures` times before returning `value`."""

    def __init__(self, failures: int, value="ok", error=RuntimeError("boom")) -> None:
        self.failures = failures
        self.value = value
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


@pytest.mark.asyncio
async def test_fresh_data_is_served_from_cache_until_stale(sleep):
    clock = FakeClock()
    qc = QueryClient(sleep=sleep, clock=clock)
    fn = Flaky(0, value=[1, 2])

    assert await qc.fetch_query(("allForms",), fn, stale_time=10) == [1, 2]
    clock.now += 5
    assert await qc.fetch_query(("allForms",), fn, stale_time=10) == [1, 2]
    assert fn.calls == 1

    clock.now += 6
    await qc.fetch_query(("allForms",), fn, stale_time=10)
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_stale_time_zero_always_refetches(query_client):
    fn = Flaky(0)
    await query_client.fetch_query("isAdmin", fn)
    await query_client.fetch_query("isAdmin", fn)
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_request(query_client):
    release = asyncio.Event()
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await release.wait()
        return "data"

    first = asyncio.ensure_future(query_client.fetch_query(("siteContent",), slow))
    second = asyncio.ensure_future(query_client.fetch_query(("siteContent",), slow))
    await asyncio.sleep(0)
    assert query_client.is_fetching("siteContent") == 1

    release.set()
    assert await asyncio.gather(first, second) == ["data", "data"]
    assert calls == 1
    assert query_client.is_fetching() == 0


@pytest.mark.asyncio
async def test_int_retry_uses_default_backoff(query_client, sleep):
    fn = Flaky(2, value=42)

    assert await query_client.fetch_query("visitorCount", fn, retry=3) == 42

    state = query_client.get_query_state("visitorCount")
    assert fn.calls == 3
    assert state.fetch_attempts == 3
    assert state.failure_count == 0
    assert state.status == "success"
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_record_error_and_raise(query_client):
    fn = Flaky(10, error=ValueError("nope"))

    with pytest.raises(ValueError):
        await query_client.fetch_query("appSettings", fn, retry=2, retry_delay=0.25)

    state = query_client.get_query_state("appSettings")
    assert fn.calls == 3
    assert state.status == "error"
    assert state.failure_count == 3
    assert str(state.error) == "nope"


@pytest.mark.asyncio
async def test_retry_false_makes_a_single_attempt(query_client, sleep):
    fn = Flaky(1)
    with pytest.raises(RuntimeError):
        await query_client.fetch_query(("currentUserProfile", "p"), fn, retry=False)
    assert fn.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retry_predicate_sees_zero_based_failure_count(query_client, sleep):
    seen = []

    def retry(failure_count, error):
        seen.append(failure_count)
        return failure_count < 1

    def delay(attempt_index, error):
        return 0.5 * (attempt_index + 1)

    with pytest.raises(RuntimeError):
        await query_client.fetch_query("isPrimaryAdmin", Flaky(5), retry=retry, retry_delay=delay)

    assert seen == [0, 1]
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_invalidate_marks_stale_without_dropping_data(query_client):
    fn = Flaky(0, value="v1")
    await query_client.fetch_query(("currentUserProfile", "a"), fn, stale_time=60)
    await query_client.fetch_query(("currentUserProfile", "b"), fn, stale_time=60)

    assert query_client.invalidate_queries("currentUserProfile") == 2
    assert query_client.get_query_data(("currentUserProfile", "a")) == "v1"

    fn.value = "v2"
    assert await query_client.fetch_query(("currentUserProfile", "a"), fn, stale_time=60) == "v2"
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_set_query_data_accepts_updater(query_client):
    query_client.set_query_data("visitorCount", 1)
    assert query_client.set_query_data("visitorCount", lambda old: old + 1) == 2
    assert query_client.get_query_state("visitorCount").status == "success"


@pytest.mark.asyncio
async def test_remove_and_clear(query_client):
    query_client.set_query_data(("allForms",), [])
    query_client.set_query_data(("allForms", 3), None)
    query_client.set_query_data(("admins",), [])

    query_client.remove_queries("allForms")
    assert query_client.get_query_state(("allForms",)) is None
    assert query_client.get_query_state(("allForms", 3)) is None
    assert query_client.get_query_state(("admins",)) is not None

    query_client.clear()
    assert query_client.get_query_state(("admins",)) is None


@pytest.mark.asyncio
async def test_remove_lets_running_fetch_finish_uncached(query_client):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow():
        started.set()
        await release.wait()
        return ["row"]

    pending = asyncio.ensure_future(query_client.fetch_query(("allForms",), slow))
    await started.wait()
    assert query_client.remove_queries("allForms") == 1
    release.set()

    assert await pending == ["row"]
    assert query_client.get_query_state(("allForms",)) is None


@pytest.mark.asyncio
async def test_idle_entries_are_collected_when_a_fetch_starts(sleep):
    clock = FakeClock()
    qc = QueryClient(sleep=sleep, clock=clock, gc_time=60)
    qc.set_query_data(("isAdmin", "old-caller"), True)
    await qc.fetch_query(("allForms",), Flaky(0, value=[]))

    clock.now += 30
    await qc.fetch_query(("allForms",), Flaky(0, value=[]))
    assert qc.get_query_state(("isAdmin", "old-caller")) is not None

    clock.now += 31
    await qc.fetch_query(("allForms",), Flaky(0, value=[]))
    assert qc.get_query_state(("isAdmin", "old-caller")) is None
    assert qc.get_query_data(("allForms",)) == []


@pytest.mark.asyncio
async def test_mutation_callbacks_run_in_order(query_client):
    events = []

    async def fn(variables):
        events.append(("fn", variables))
        return variables * 2

    mutation = Mutation(
        fn,
        on_mutate=lambda v: events.append(("mutate", v)) or "ctx",
        on_success=lambda data, v, ctx: events.append(("success", data, ctx)),
        on_error=lambda err, v, ctx: events.append(("error",)),
        on_settled=lambda data, err, v, ctx: events.append(("settled", data, err)),
    )

    assert await query_client.mutate(mutation, 21) == 42
    assert events == [("mutate", 21), ("fn", 21), ("success", 42, "ctx"), ("settled", 42, None)]


@pytest.mark.asyncio
async def test_failed_mutation_runs_error_and_settled_then_raises(query_client):
    events = []

    async def fn(_):
        raise RuntimeError("write failed")

    async def on_error(err, variables, context):
        events.append(("error", str(err), context))

    mutation = Mutation(
        fn,
        on_mutate=lambda v: {"previous": 1},
        on_error=on_error,
        on_settled=lambda data, err, v, ctx: events.append(("settled", data, type(err).__name__)),
    )

    with pytest.raises(RuntimeError):
        await query_client.mutate(mutation)
    assert events == [("error", "write failed", {"previous": 1}), ("settled", None, "RuntimeError")]
