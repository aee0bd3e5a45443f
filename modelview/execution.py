"""
Execution of model view instances over record sequences.

The execution contract:

    NOT_STARTED -> (PRE) -> ITERATING -> (POST) -> DONE
                                      \\-> FAILED

- collection, sequential: ``context = pre(args)`` (an empty dict without
  pre), ``each(context, record, index)`` for every record in order, result is
  ``post(context)`` or the final context.
- collection, not sequential: records are split into partitions that run
  independently, possibly concurrently. Every partition gets its own
  ``pre(args)`` context and ``post(contexts)`` reduces the contexts, which
  arrive in completion order. post must therefore be commutative and
  associative over its input list. Without post the list of contexts is the
  result.
- record: ``each(record, index, args)`` for every record. A non-None return
  value replaces the record. The result is the list of records in input order
  whether or not execution was sequential.

A failure in a sequential run aborts it. A failure in a partition either
aborts the run (``on_partition_error='raise'``) or drops that partition's
context (``'skip'``); post never sees a context from a failed partition.
"""

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Any, Callable, List, MutableMapping, Optional, Sequence, Tuple

from .definition import COLLECTION
from .errors import ExecutionError
from .hooks import HookRegistry
from .ident import stable_id
from .instance import ModelViewInstance

logger = logging.getLogger(__name__)

DEFAULT_PARTITION_SIZE = 1000

PARTITION_ERROR_POLICIES = ('raise', 'skip')


class ExecutionState(Enum):
    """States of a single model view execution."""
    NOT_STARTED = 'not_started'
    PRE = 'pre'
    ITERATING = 'iterating'
    POST = 'post'
    DONE = 'done'
    FAILED = 'failed'


def partition_records(count: int, size: int) -> List[List[int]]:
    """
    Split record positions into contiguous partitions.

    Args:
        count: Number of records
        size: Maximum partition size

    Returns:
        List of index lists. Always at least one partition, possibly empty,
        so that pre and post run for an empty record sequence.
    """
    if size < 1:
        raise ExecutionError(f"partition size must be positive, got {size}")
    partitions = [list(range(start, min(start + size, count))) for start in range(0, count, size)]
    return partitions or [[]]


class ViewExecution:
    """
    A single run of a model view instance over a record sequence.

    Args:
        instance: Model view instance to run
        records: Record sequence
        partitions: Explicit partitions as lists of record indexes, used when
            the view is not sequential. Partitions need not be contiguous.
        partition_size: Size of contiguous partitions when partitions is not given
        max_workers: Thread pool size for non-sequential runs
        on_partition_error: 'raise' or 'skip'
        hooks: Hook registry notified of state changes
    """

    def __init__(self,
                 instance: ModelViewInstance,
                 records: Sequence[Any],
                 *,
                 partitions: Optional[Sequence[Sequence[int]]] = None,
                 partition_size: Optional[int] = None,
                 max_workers: Optional[int] = None,
                 on_partition_error: str = 'raise',
                 hooks: Optional[HookRegistry] = None):
        if on_partition_error not in PARTITION_ERROR_POLICIES:
            raise ExecutionError(f"unknown partition error policy {on_partition_error}")

        self.instance = instance
        self.records = list(records)
        self.max_workers = max_workers
        self.on_partition_error = on_partition_error
        self.hooks = hooks if hooks is not None else instance.definition.registry.hooks
        self.state = ExecutionState.NOT_STARTED
        self.failed_partitions: List[int] = []

        if partitions is None:
            partitions = partition_records(len(self.records), partition_size or DEFAULT_PARTITION_SIZE)
        self.partitions = self._check_partitions(partitions)

    def _check_partitions(self, partitions: Sequence[Sequence[int]]) -> List[List[int]]:
        """Partitions must cover every record position exactly once."""
        seen = set()
        for partition in partitions:
            for index in partition:
                if not 0 <= index < len(self.records):
                    raise ExecutionError(f"partition index {index} out of range")
                if index in seen:
                    raise ExecutionError(f"record {index} appears in more than one partition")
                seen.add(index)

        if len(seen) != len(self.records):
            missing = sorted(set(range(len(self.records))) - seen)
            raise ExecutionError(f"records {missing} are not in any partition")
        return [list(partition) for partition in partitions]

    def _transition(self, state: ExecutionState) -> None:
        logger.debug(f"{self.instance.name} {self.state.value} -> {state.value}")
        self.state = state
        self.hooks.trigger('execution.state', self, state)

    async def _atransition(self, state: ExecutionState) -> None:
        logger.debug(f"{self.instance.name} {self.state.value} -> {state.value}")
        self.state = state
        await self.hooks.trigger_async('execution.state', self, state)

    def _call(self, fn: Callable, *args) -> Any:
        result = fn(*args)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise ExecutionError(
                f"model view {self.instance.name} callback returned an awaitable; use execute_async"
            )
        return result

    async def _acall(self, fn: Callable, *args) -> Any:
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _initial_context(self) -> Any:
        if self.instance.pre is None:
            return {}
        return self._call(self.instance.pre, self.instance.args)

    def _finish(self, result: Any) -> Any:
        self._transition(ExecutionState.DONE)
        self.hooks.trigger('execution.completed', self, result)
        return result

    async def _afinish(self, result: Any) -> Any:
        await self._atransition(ExecutionState.DONE)
        await self.hooks.trigger_async('execution.completed', self, result)
        return result

    def _partition_failed(self, number: int, error: BaseException) -> None:
        """Re-raise under the 'raise' policy, otherwise record the skip."""
        if self.on_partition_error == 'raise':
            raise error
        logger.warning(f"{self.instance.name} partition {number} failed, skipping: {error}")
        self.failed_partitions.append(number)

    # =========================================================================
    # Blocking execution
    # =========================================================================

    def run(self) -> Any:
        """
        Run the view and return its result.

        Raises:
            ExecutionError: If a callback returns an awaitable
        """
        try:
            if self.instance.type == COLLECTION:
                if self.instance.sequential:
                    return self._run_sequential()
                return self._run_partitioned()
            return self._run_records()
        except BaseException:
            self._transition(ExecutionState.FAILED)
            raise

    def _run_sequential(self) -> Any:
        instance = self.instance

        if instance.pre is not None:
            self._transition(ExecutionState.PRE)
        context = self._initial_context()

        self._transition(ExecutionState.ITERATING)
        for index, record in enumerate(self.records):
            self._call(instance.each, context, record, index)

        if instance.post is None:
            return self._finish(context)
        self._transition(ExecutionState.POST)
        return self._finish(self._call(instance.post, context))

    def _run_partition(self, partition: List[int]) -> Any:
        context = self._initial_context()
        for index in partition:
            self._call(self.instance.each, context, self.records[index], index)
        return context

    def _run_partitioned(self) -> Any:
        self._transition(ExecutionState.ITERATING)
        contexts = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {
                pool.submit(self._run_partition, partition): number
                for number, partition in enumerate(self.partitions)
            }
            try:
                for future in as_completed(futures):
                    try:
                        contexts.append(future.result())
                    except ExecutionError:
                        raise
                    except Exception as e:
                        self._partition_failed(futures[future], e)
                        self.hooks.trigger('execution.partition_failed', self, futures[future], e)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        return self._merge(contexts)

    def _merge(self, contexts: List[Any]) -> Any:
        if self.instance.post is None:
            return self._finish(contexts)
        self._transition(ExecutionState.POST)
        return self._finish(self._call(self.instance.post, contexts))

    def _run_record(self, index: int) -> Any:
        record = self.records[index]
        result = self._call(self.instance.each, record, index, self.instance.args)
        return record if result is None else result

    def _run_records(self) -> List[Any]:
        self._transition(ExecutionState.ITERATING)
        indexes = range(len(self.records))

        if self.instance.sequential:
            results = [self._run_record(index) for index in indexes]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [pool.submit(self._run_record, index) for index in indexes]
                try:
                    results = [future.result() for future in futures]
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        return self._finish(results)

    # =========================================================================
    # Async execution
    # =========================================================================

    async def run_async(self) -> Any:
        """Run the view, awaiting callbacks and hooks that return awaitables."""
        try:
            if self.instance.type == COLLECTION:
                if self.instance.sequential:
                    return await self._run_sequential_async()
                return await self._run_partitioned_async()
            return await self._run_records_async()
        except BaseException:
            await self._atransition(ExecutionState.FAILED)
            raise

    @staticmethod
    async def _cancel(tasks: List['asyncio.Future']) -> None:
        """Cancel tasks and wait until none of them is still running."""
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _initial_context_async(self) -> Any:
        if self.instance.pre is None:
            return {}
        return await self._acall(self.instance.pre, self.instance.args)

    async def _run_sequential_async(self) -> Any:
        instance = self.instance

        if instance.pre is not None:
            await self._atransition(ExecutionState.PRE)
        context = await self._initial_context_async()

        await self._atransition(ExecutionState.ITERATING)
        for index, record in enumerate(self.records):
            await self._acall(instance.each, context, record, index)

        if instance.post is None:
            return await self._afinish(context)
        await self._atransition(ExecutionState.POST)
        return await self._afinish(await self._acall(instance.post, context))

    async def _run_partition_async(self, number: int, partition: List[int]) -> Tuple[int, Any, Optional[Exception]]:
        try:
            context = await self._initial_context_async()
            for index in partition:
                await self._acall(self.instance.each, context, self.records[index], index)
        except Exception as e:
            return number, None, e
        return number, context, None

    async def _run_partitioned_async(self) -> Any:
        await self._atransition(ExecutionState.ITERATING)
        contexts = []

        tasks = [
            asyncio.ensure_future(self._run_partition_async(number, partition))
            for number, partition in enumerate(self.partitions)
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                number, context, error = await next_done
                if error is not None:
                    self._partition_failed(number, error)
                    await self.hooks.trigger_async('execution.partition_failed', self, number, error)
                else:
                    contexts.append(context)
        except BaseException:
            await self._cancel(tasks)
            raise

        if self.instance.post is None:
            return await self._afinish(contexts)
        await self._atransition(ExecutionState.POST)
        return await self._afinish(await self._acall(self.instance.post, contexts))

    async def _run_record_async(self, index: int) -> Any:
        record = self.records[index]
        result = await self._acall(self.instance.each, record, index, self.instance.args)
        return record if result is None else result

    async def _run_records_async(self) -> List[Any]:
        await self._atransition(ExecutionState.ITERATING)
        indexes = range(len(self.records))

        if self.instance.sequential:
            results = [await self._run_record_async(index) for index in indexes]
        else:
            tasks = [asyncio.ensure_future(self._run_record_async(index)) for index in indexes]
            try:
                results = list(await asyncio.gather(*tasks))
            except BaseException:
                await self._cancel(tasks)
                raise

        return await self._afinish(results)


def _cache_lookup_key(instance: ModelViewInstance,
                      cache: Optional[MutableMapping[str, Any]],
                      cache_key: Any) -> Optional[str]:
    if not instance.cache or cache is None or cache_key is None:
        return None
    return stable_id({'instance_id': instance.instance_id, 'records': cache_key})


def execute(instance: ModelViewInstance,
            records: Sequence[Any],
            *,
            cache: Optional[MutableMapping[str, Any]] = None,
            cache_key: Any = None,
            **options) -> Any:
    """
    Run a model view instance over records.

    Args:
        instance: Model view instance
        records: Record sequence
        cache: Optional mapping of cached results
        cache_key: Identity of the record sequence (e.g. a query id). Results
            are only cached when both cache and cache_key are given and the
            view allows caching.
        **options: ViewExecution options (partitions, partition_size,
            max_workers, on_partition_error, hooks)

    Returns:
        The view result

    Example:
        >>> execute(total_price('price'), [{'price': 1}, {'price': 2}])
        3
    """
    key = _cache_lookup_key(instance, cache, cache_key)
    execution = ViewExecution(instance, records, **options)

    if key is not None and key in cache:
        logger.debug(f"Cache hit for {instance.name} ({key})")
        execution.hooks.trigger('execution.cache_hit', instance, key)
        return cache[key]

    result = execution.run()
    if key is not None:
        cache[key] = result
    return result


async def execute_async(instance: ModelViewInstance,
                        records: Sequence[Any],
                        *,
                        cache: Optional[MutableMapping[str, Any]] = None,
                        cache_key: Any = None,
                        **options) -> Any:
    """
    Run a model view instance over records, awaiting async callbacks.

    Same arguments as execute. Partitions of non-sequential views run as
    concurrent tasks. Lifecycle hooks are awaited, so coroutine hooks run
    too. On failure the remaining tasks are cancelled and awaited before the
    error propagates.
    """
    key = _cache_lookup_key(instance, cache, cache_key)
    execution = ViewExecution(instance, records, **options)

    if key is not None and key in cache:
        logger.debug(f"Cache hit for {instance.name} ({key})")
        await execution.hooks.trigger_async('execution.cache_hit', instance, key)
        return cache[key]

    result = await execution.run_async()
    if key is not None:
        cache[key] = result
    return result
