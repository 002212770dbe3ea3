"""In-process dispatcher for background embed-and-index work."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from rag_memory.config import Settings
from rag_memory.core.exceptions import AppException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import Document

logger = get_logger(__name__)

IndexJob = Callable[[], Awaitable["Document | None"]]


@dataclass(frozen=True)
class WorkItem:
    """One unit of work: bring a document to ready.

    ``job`` returns the previously ready version it replaced, if any. It must
    be safe to run more than once.
    """

    namespace: str
    namespace_id: str
    key: str
    document_id: str
    job: IndexJob


@dataclass(frozen=True)
class CompletionEvent:
    """Reported to the completion callback once a work item finishes."""

    namespace: str
    namespace_id: str
    key: str
    document_id: str
    previous_document_id: str | None
    success: bool
    error: str | None = None
    attempts: int = 1


CompletionCallback = Callable[[CompletionEvent], Awaitable[None]]


class IndexingDispatcher:
    """Runs work items with bounded concurrency and at-least-once retry."""

    def __init__(self, settings: Settings, on_complete: CompletionCallback | None = None):
        """Initialize the dispatcher.

        Args:
            settings: Application settings (concurrency and retry policy).
            on_complete: Awaited with a ``CompletionEvent`` per finished item.
        """
        self.settings = settings
        self._on_complete = on_complete
        self._semaphore = asyncio.Semaphore(settings.worker_concurrency)
        self._tasks: set[asyncio.Task[CompletionEvent]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, item: WorkItem) -> asyncio.Task[CompletionEvent]:
        """Schedule ``item``; must be called from a running event loop."""
        task = asyncio.create_task(self._run(item), name=f"index-{item.document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Queued indexing of document %s (%s)", item.document_id, item.key)
        return task

    async def drain(self) -> list[CompletionEvent]:
        """Wait for all submitted work, including work submitted meanwhile."""
        events: list[CompletionEvent] = []
        while self._tasks:
            events.extend(await asyncio.gather(*list(self._tasks)))
        return events

    async def _run(self, item: WorkItem) -> CompletionEvent:
        async with self._semaphore:
            event = await self._run_with_retry(item)
        await self._notify(event)
        return event

    async def _run_with_retry(self, item: WorkItem) -> CompletionEvent:
        max_attempts = self.settings.worker_max_retries + 1
        delay = self.settings.worker_retry_delay
        attempt = 0
        while True:
            attempt += 1
            try:
                previous = await item.job()
            except AppException as e:
                logger.error("Indexing document %s failed: %s", item.document_id, e, exc_info=True)
                return self._event(item, None, success=False, error=e.message, attempts=attempt)
            except Exception as e:
                if attempt >= max_attempts:
                    logger.error(
                        "Indexing document %s failed after %d attempts: %s",
                        item.document_id,
                        attempt,
                        e,
                        exc_info=True,
                    )
                    return self._event(item, None, success=False, error=str(e), attempts=attempt)
                logger.warning(
                    "Indexing document %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    item.document_id,
                    attempt,
                    max_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            logger.info("Indexed document %s (%s)", item.document_id, item.key)
            return self._event(item, previous, success=True, attempts=attempt)

    @staticmethod
    def _event(
        item: WorkItem,
        previous: Document | None,
        *,
        success: bool,
        error: str | None = None,
        attempts: int,
    ) -> CompletionEvent:
        return CompletionEvent(
            namespace=item.namespace,
            namespace_id=item.namespace_id,
            key=item.key,
            document_id=item.document_id,
            previous_document_id=previous.id if previous is not None else None,
            success=success,
            error=error,
            attempts=attempts,
        )

    async def _notify(self, event: CompletionEvent) -> None:
        if self._on_complete is None:
            return
        try:
            await self._on_complete(event)
        except Exception:
            logger.error(
                "Completion callback failed for document %s", event.document_id, exc_info=True
            )
