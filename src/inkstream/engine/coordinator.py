"""Render tree coordination: chunk arena, document order and flushing.

Every chunk handle writes into a record owned by one ``RenderTree``. Records
form a forward-only chain in document order; the tree flushes the longest
completed prefix of that chain to the sink whenever a record completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from inkstream.errors import InvalidStateError

if TYPE_CHECKING:
    from .chunk import Chunk

logger = logging.getLogger(__name__)

Sink = Callable[[str], None]


@dataclass
class _ChunkRecord:
    """Storage for one writable unit of output."""

    index: int
    fragments: list[str] = field(default_factory=list)
    next_index: int | None = None
    complete: bool = False
    flushed: bool = False


class RenderTree:
    """Owns the ordered chunk chain for a single render pass."""

    def __init__(self, sink: Sink | None = None, *, name: str | None = None) -> None:
        self.name = name
        self._sink = sink
        self._records: list[_ChunkRecord] = []
        self._output: list[str] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._errors: list[BaseException] = []
        self._head = self._new_record().index
        # Earliest record that has not been flushed yet; None once everything is out.
        self._flush_cursor: int | None = self._head
        self._root_opened = False

    def root(self) -> Chunk:
        """Return the writable root chunk. Only one root exists per tree."""
        from .chunk import Chunk, TransformStack

        if self._root_opened:
            msg = "root chunk was already opened for this render tree."
            raise InvalidStateError(msg)
        self._root_opened = True
        return Chunk(self, self._head, TransformStack())

    # -- record management -------------------------------------------------

    def _new_record(self) -> _ChunkRecord:
        record = _ChunkRecord(index=len(self._records))
        self._records.append(record)
        return record

    def _record(self, index: int) -> _ChunkRecord:
        return self._records[index]

    def _splice_after(self, index: int) -> int:
        anchor = self._record(index)
        record = self._new_record()
        record.next_index = anchor.next_index
        anchor.next_index = record.index
        return record.index

    def append(self, index: int, data: str) -> None:
        record = self._record(index)
        if record.complete:
            msg = f"chunk record {index} is already complete."
            raise InvalidStateError(msg)
        record.fragments.append(data)

    def fork(self, index: int) -> tuple[int, int]:
        """Split a record into ``record -> branch -> continuation``.

        The original record is completed: whatever it holds is final. Returns
        ``(branch_index, continuation_index)``.
        """
        if self._record(index).complete:
            msg = f"cannot fork completed chunk record {index}."
            raise InvalidStateError(msg)
        continuation = self._splice_after(index)
        branch = self._splice_after(index)
        self.complete(index)
        return branch, continuation

    def complete(self, index: int) -> None:
        record = self._record(index)
        if record.complete:
            msg = f"chunk record {index} is already complete."
            raise InvalidStateError(msg)
        record.complete = True
        self._flush()

    def _flush(self) -> None:
        while self._flush_cursor is not None:
            record = self._record(self._flush_cursor)
            if not record.complete:
                return
            for fragment in record.fragments:
                self._emit(fragment)
            record.flushed = True
            record.fragments = []
            self._flush_cursor = record.next_index
        logger.debug("render tree %s fully flushed (%d records)", self.name, len(self._records))

    def _emit(self, fragment: str) -> None:
        if not fragment:
            return
        self._output.append(fragment)
        if self._sink is not None:
            self._sink(fragment)

    # -- async branches ----------------------------------------------------

    def spawn(self, work: Awaitable[object], *, label: str = "branch") -> None:
        """Schedule asynchronous branch work on the running event loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            if asyncio.iscoroutine(work):
                work.close()
            msg = f"asynchronous {label} requires a running event loop."
            raise InvalidStateError(msg) from exc
        task = loop.create_task(self._run(work, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, work: Awaitable[object], label: str) -> None:
        try:
            await work
        except Exception as exc:  # noqa: BLE001 - re-raised from wait()
            logger.debug("asynchronous %s failed: %s", label, exc)
            self._errors.append(exc)

    async def wait(self) -> str:
        """Wait for all branches, then return the complete flushed output."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))
        if self._errors:
            raise self._errors[0]
        if not self.finished:
            pending = sum(1 for record in self._records if not record.complete)
            msg = f"render finished with {pending} incomplete chunk(s); every chunk must be ended."
            raise InvalidStateError(msg)
        return self.output()

    async def drain(self) -> list[BaseException]:
        """Let outstanding branches finish after a failure; return their errors."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))
        for error in self._errors:
            logger.debug("branch error after render failure: %r", error)
        return list(self._errors)

    # -- inspection --------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self._flush_cursor is None

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def output(self) -> str:
        """Return everything flushed so far."""
        return "".join(self._output)

    def document_order(self) -> tuple[int, ...]:
        order: list[int] = []
        index: int | None = self._head
        while index is not None:
            order.append(index)
            index = self._record(index).next_index
        return tuple(order)
