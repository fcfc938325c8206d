"""
Process-wide request cache for backend reads and writes.

Keys are tuples, e.g. ("allForms",) or ("currentUserProfile", "<principal>").
Every operation that takes a key prefix applies to all keys starting with it.

Fetch semantics:
- fresh data (younger than `stale_time`, not invalidated) is returned as-is
- concurrent fetches of one key share a single in-flight task
- failures are retried per `retry` / `retry_delay`, then recorded on the
  query state and re-raised

`retry` may be:
- an int: retry while the number of failures so far is below it
- a bool: always / never
- a predicate `(failure_count, error) -> bool`, `failure_count` counting the
  failures before the current one (0 on the first failure)

`retry_delay` may be seconds or `(attempt_index, error) -> seconds`.

Entries nobody has read or written for `gc_time` seconds are dropped the next
time a fetch starts, so per-caller keys do not accumulate.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]
RetryPolicy = Union[bool, int, Callable[[int, BaseException], bool]]
RetryDelay = Union[float, Callable[[int, BaseException], float]]

DEFAULT_RETRY = 3
DEFAULT_GC_TIME = 5 * 60.0


def default_retry_delay(attempt_index: int, error: BaseException) -> float:
    return min(1.0 * (2 ** attempt_index), 30.0)


def _as_key(key: Union[str, QueryKey]) -> QueryKey:
    return (key,) if isinstance(key, str) else tuple(key)


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class QueryState:
    data: Any = None
    error: Optional[BaseException] = None
    data_updated_at: Optional[float] = None
    error_updated_at: Optional[float] = None
    fetch_attempts: int = 0
    failure_count: int = 0
    is_invalidated: bool = False
    last_used_at: Optional[float] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.data_updated_at is not None:
            return "success"
        return "pending"


@dataclass
class Mutation:
    """A write plus its cache side effects.

    Callbacks may be plain functions or coroutines:
    - on_mutate(variables) -> context
    - on_success(data, variables, context)
    - on_error(error, variables, context)
    - on_settled(data, error, variables, context)
    """

    fn: Callable[[Any], Awaitable[Any]]
    on_mutate: Optional[Callable[[Any], Any]] = None
    on_success: Optional[Callable[[Any, Any, Any], Any]] = None
    on_error: Optional[Callable[[BaseException, Any, Any], Any]] = None
    on_settled: Optional[Callable[[Any, Optional[BaseException], Any, Any], Any]] = None


class QueryClient:
    def __init__(
        self,
        *,
        default_retry: RetryPolicy = DEFAULT_RETRY,
        default_retry_delay: RetryDelay = default_retry_delay,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        gc_time: float = DEFAULT_GC_TIME,
    ) -> None:
        self.default_retry = default_retry
        self.default_retry_delay = default_retry_delay
        self.gc_time = gc_time
        self._sleep = sleep
        self._clock = clock
        self._states: Dict[QueryKey, QueryState] = {}
        self._inflight: Dict[QueryKey, asyncio.Task] = {}

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def fetch_query(
        self,
        key: Union[str, QueryKey],
        fn: Callable[[], Awaitable[Any]],
        *,
        retry: Optional[RetryPolicy] = None,
        retry_delay: Optional[RetryDelay] = None,
        stale_time: float = 0.0,
        force: bool = False,
    ) -> Any:
        key = _as_key(key)
        state = self._states.get(key)
        if state is not None:
            state.last_used_at = self._clock()
        if not force and state is not None and self._is_fresh(state, stale_time):
            return state.data

        task = self._inflight.get(key)
        if task is None:
            self.collect_garbage()
            task = asyncio.ensure_future(
                self._run(
                    key,
                    fn,
                    self.default_retry if retry is None else retry,
                    self.default_retry_delay if retry_delay is None else retry_delay,
                )
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget_task(k, t))
        return await asyncio.shield(task)

    def _is_fresh(self, state: QueryState, stale_time: float) -> bool:
        if state.data_updated_at is None or state.is_invalidated or state.error is not None:
            return False
        return (self._clock() - state.data_updated_at) < stale_time

    def _forget_task(self, key: QueryKey, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Retrieve the exception so an unawaited failure is not reported as lost.
        if not task.cancelled():
            task.exception()

    @staticmethod
    def _should_retry(retry: RetryPolicy, failure_count: int, error: BaseException) -> bool:
        if isinstance(retry, bool):
            return retry
        if isinstance(retry, int):
            return failure_count < retry
        return bool(retry(failure_count, error))

    @staticmethod
    def _delay_for(retry_delay: RetryDelay, attempt_index: int, error: BaseException) -> float:
        if callable(retry_delay):
            return float(retry_delay(attempt_index, error))
        return float(retry_delay)

    async def _run(
        self,
        key: QueryKey,
        fn: Callable[[], Awaitable[Any]],
        retry: RetryPolicy,
        retry_delay: RetryDelay,
    ) -> Any:
        state = self._states.setdefault(key, QueryState())
        state.last_used_at = self._clock()
        failure_count = 0
        state.fetch_attempts = 0

        while True:
            state.fetch_attempts += 1
            try:
                data = await fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if not self._should_retry(retry, failure_count, exc):
                    state.failure_count = failure_count + 1
                    state.error = exc
                    state.error_updated_at = self._clock()
                    logger.warning(
                        "Query %s failed after %s attempt(s): %s", key, state.fetch_attempts, exc
                    )
                    raise
                delay = self._delay_for(retry_delay, failure_count, exc)
                failure_count += 1
                state.failure_count = failure_count
                logger.debug("Query %s attempt %s failed, retrying in %.2fs: %s", key, failure_count, delay, exc)
                await self._sleep(delay)
                continue

            state.data = data
            state.error = None
            state.failure_count = 0
            state.is_invalidated = False
            state.data_updated_at = self._clock()
            return data

    def get_query_state(self, key: Union[str, QueryKey]) -> Optional[QueryState]:
        return self._states.get(_as_key(key))

    def get_query_data(self, key: Union[str, QueryKey]) -> Any:
        state = self._states.get(_as_key(key))
        return state.data if state is not None else None

    def set_query_data(self, key: Union[str, QueryKey], updater: Any) -> Any:
        """Write data directly; `updater` may be a value or `old -> new`."""
        key = _as_key(key)
        state = self._states.setdefault(key, QueryState())
        data = updater(state.data) if callable(updater) else updater
        state.data = data
        state.error = None
        state.is_invalidated = False
        state.data_updated_at = state.last_used_at = self._clock()
        return data

    def is_fetching(self, prefix: Union[str, QueryKey] = ()) -> int:
        prefix = _as_key(prefix)
        return sum(1 for key in self._inflight if _matches(key, prefix))

    # ------------------------------------------------------------------ #
    # Cache maintenance
    # ------------------------------------------------------------------ #
    def _keys(self, prefix: QueryKey) -> List[QueryKey]:
        return [key for key in self._states if _matches(key, prefix)]

    def invalidate_queries(self, prefix: Union[str, QueryKey]) -> int:
        """Mark matching queries stale. The next read refetches them."""
        keys = self._keys(_as_key(prefix))
        for key in keys:
            self._states[key].is_invalidated = True
        return len(keys)

    async def cancel_queries(self, prefix: Union[str, QueryKey]) -> None:
        prefix = _as_key(prefix)
        tasks = [task for key, task in self._inflight.items() if _matches(key, prefix)]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def remove_queries(self, prefix: Union[str, QueryKey]) -> int:
        """Drop matching entries. Fetches already running finish for their own awaiters but are not cached."""
        keys = self._keys(_as_key(prefix))
        for key in keys:
            del self._states[key]
        return len(keys)

    def collect_garbage(self) -> int:
        """Drop entries idle for `gc_time` seconds that have no fetch running."""
        now = self._clock()
        idle = [
            key
            for key, state in self._states.items()
            if key not in self._inflight
            and state.last_used_at is not None
            and now - state.last_used_at >= self.gc_time
        ]
        for key in idle:
            del self._states[key]
        if idle:
            logger.debug("Dropped %s idle query entries", len(idle))
        return len(idle)

    def clear(self) -> None:
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()
        self._states.clear()

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    async def mutate(self, mutation: Mutation, variables: Any = None) -> Any:
        context = None
        if mutation.on_mutate is not None:
            context = await _maybe_await(mutation.on_mutate(variables))

        try:
            data = await mutation.fn(variables)
        except Exception as exc:
            if mutation.on_error is not None:
                await _maybe_await(mutation.on_error(exc, variables, context))
            if mutation.on_settled is not None:
                await _maybe_await(mutation.on_settled(None, exc, variables, context))
            raise

        if mutation.on_success is not None:
            await _maybe_await(mutation.on_success(data, variables, context))
        if mutation.on_settled is not None:
            await _maybe_await(mutation.on_settled(data, None, variables, context))
        return data
