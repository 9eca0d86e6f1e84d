"""Serialized operation queue for mutations against the entity store."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from pydantic import BaseModel

from ..errors import InvalidArgument, OperationFailure


class OperationKind(str, Enum):
    """Kinds of mutating work accepted by the queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"


@dataclass
class Operation:
    """A unit of work submitted to the queue."""

    kind: OperationKind
    execute: Callable[[], Awaitable[Any]]
    collection: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def label(self) -> str:
        target = f" {self.collection}" if self.collection else ""
        return f"{self.kind.value}{target} [{self.id}]"


class QueueStats(BaseModel):
    """Snapshot of queue activity."""

    running: bool
    closed: bool
    pending: int
    processing: bool
    processed: int
    failed: int


_QueueItem = Optional[Tuple[Operation, "asyncio.Future[Any]"]]


class OperationQueue:
    """Single-consumer FIFO queue; at most one operation executes at a time.

    ``enqueue`` never blocks and returns a future that resolves with the
    operation's result or is rejected with :class:`OperationFailure`. A
    failing operation never stops the worker and is never retried.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._queue: Optional["asyncio.Queue[_QueueItem]"] = None
        self._worker: Optional["asyncio.Task[None]"] = None
        self._current: Optional[Operation] = None
        self._closed = False
        self._processed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task on the running event loop."""
        if self._closed:
            raise OperationFailure("Operation queue is closed")
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = loop.create_task(self._run(), name="operation-queue-worker")
        self.logger.debug("Operation queue worker started")

    def enqueue(self, operation: Operation) -> "asyncio.Future[Any]":
        """Append ``operation`` to the tail and return its completion handle."""
        if not isinstance(operation, Operation):
            raise InvalidArgument(f"Expected an Operation, got {type(operation).__name__}")
        if self._closed:
            raise OperationFailure("Operation queue is closed")

        self.start()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((operation, future))
        self.logger.debug(f"Queued operation {operation.label} ({self.pending} pending)")
        return future

    async def submit(
        self,
        kind: Union[OperationKind, str],
        execute: Callable[[], Awaitable[Any]],
        **fields: Any,
    ) -> Any:
        """Build an operation, enqueue it and wait for its result."""
        operation = Operation(kind=OperationKind(kind), execute=execute, **fields)
        return await self.enqueue(operation)

    @property
    def pending(self) -> int:
        if self._queue is None:
            return 0
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every queued operation has completed."""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                operation, future = item
                await self._execute(operation, future)
            finally:
                self._queue.task_done()

    async def _execute(self, operation: Operation, future: "asyncio.Future[Any]") -> None:
        self._current = operation
        try:
            try:
                body = asyncio.ensure_future(operation.execute())
            except Exception as e:
                self._reject(operation, future, e)
                return

            # Body runs in its own task; CancelledError from wait() means the worker was cancelled
            try:
                await asyncio.wait({body})
            except asyncio.CancelledError:
                body.cancel()
                if not future.done():
                    future.set_exception(
                        OperationFailure(f"Operation {operation.label} cancelled: worker stopped")
                    )
                raise

            try:
                result = body.result()
            except (Exception, asyncio.CancelledError) as e:
                self._reject(operation, future, e)
                return

            self._processed += 1
            if not future.done():
                future.set_result(result)
        finally:
            self._current = None

    def _reject(self, operation: Operation, future: "asyncio.Future[Any]", error: BaseException) -> None:
        self._failed += 1
        reason = str(error) or type(error).__name__
        self.logger.error(f"Operation {operation.label} failed: {reason}")
        if not future.done():
            future.set_exception(
                OperationFailure(f"Operation {operation.label} failed: {reason}", cause=error)
            )

    async def close(self) -> None:
        """Stop accepting work, reject pending operations, finish the current one."""
        if self._closed:
            return
        self._closed = True

        if self._queue is not None:
            rejected = 0
            while not self._queue.empty():
                item = self._queue.get_nowait()
                self._queue.task_done()
                if item is None:
                    continue
                operation, future = item
                if not future.done():
                    future.set_exception(
                        OperationFailure(f"Operation {operation.label} cancelled: queue shut down")
                    )
                rejected += 1
            if rejected:
                self.logger.warning(f"Rejected {rejected} pending operation(s) on shutdown")

            if self.is_running:
                self._queue.put_nowait(None)

        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            await worker
        self.logger.debug("Operation queue closed")

    def stats(self) -> QueueStats:
        return QueueStats(
            running=self.is_running,
            closed=self._closed,
            pending=self.pending,
            processing=self._current is not None,
            processed=self._processed,
            failed=self._failed,
        )
