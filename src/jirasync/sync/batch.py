"""
Per-item processing of fetched issues: transform, then reconcile.

Item isolation: every issue gets exactly one detail on the run, success or
error, and a failing issue never stops its siblings.

Large result sets (more than ``batch_size`` items, memory-efficient mode on)
are walked in chunks of ``batch_size`` so progress can be reported and the
collector nudged between chunks. Chunks are cut from the stream of pages, so
a chunk may span a page boundary. Chunking changes nothing about per-item
outcomes.
"""
import gc
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from jirasync.config import SyncConfig
from jirasync.sync.history import SyncHistory

logger = logging.getLogger(__name__)

ITEM_SUCCESS_OPERATION = "Convert Response by Template"
ITEM_ERROR_OPERATION = "Sync Error"
PROGRESS_OPERATION = "Batch Progress"


@dataclass
class BatchResult:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    chunks: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed


def issue_key(item: Any) -> str:
    if isinstance(item, dict) and item.get("key"):
        return str(item["key"])
    return "unknown"


class BatchProcessor:
    """
    Args:
        transformer: Object with ``transform(raw_item, template_id) -> str``.
        applier: Object with ``apply_changes(canonical_json, history)``.
        config: SyncConfig with the batch and progress settings.
    """

    def __init__(self, transformer, applier, config: SyncConfig):
        self.transformer = transformer
        self.applier = applier
        self.config = config

    def process_all(
        self,
        items: List[Dict[str, Any]],
        template_id: int,
        history: SyncHistory,
        query_name: str = "",
    ) -> BatchResult:
        """Process every item, recording one detail per item on ``history``."""
        return self._process_stream([(items, len(items))], template_id, history, query_name)

    def process_pages(
        self,
        pages: Iterable[Any],
        template_id: int,
        history: SyncHistory,
        query_name: str = "",
    ) -> BatchResult:
        """
        Process the issues of every page as the pages arrive.

        Args:
            pages: Iterable of objects with ``issues`` and ``total`` (SearchPage).
            template_id: ResponseTemplate id for the query.
            history: The running SyncHistory.
            query_name: Used in progress details and logs.

        Returns:
            BatchResult counted across all pages.

        Raises:
            Whatever the page iterable raises. Issues already fetched are
            processed before the error propagates.
        """
        stream = ((page.issues, page.total) for page in pages)
        return self._process_stream(stream, template_id, history, query_name)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _process_stream(
        self,
        stream: Iterable[Tuple[Sequence[Dict[str, Any]], int]],
        template_id: int,
        history: SyncHistory,
        query_name: str,
    ) -> BatchResult:
        size = self.config.batch_size
        result = BatchResult()
        buffer: List[Dict[str, Any]] = []
        chunking = None

        try:
            for issues, total in stream:
                result.total = max(total, result.processed + len(buffer) + len(issues))
                if chunking is None:
                    chunking = self.config.memory_efficient_processing and total > size
                    if chunking:
                        logger.info(
                            "Batch processing %d issues in chunks of %d (query: %s)",
                            total, size, query_name,
                        )

                if not chunking:
                    if issues:
                        self._process_chunk(issues, template_id, history, result)
                        result.chunks = 1
                    continue

                buffer.extend(issues)
                # Keep at least one item back so the last chunk is known at the end
                while len(buffer) > size:
                    chunk = buffer[:size]
                    del buffer[:size]
                    self._finish_chunk(chunk, template_id, history, query_name, result, False)
        except Exception:
            if buffer:
                self._finish_chunk(buffer, template_id, history, query_name, result, True)
            raise

        if buffer:
            self._finish_chunk(buffer, template_id, history, query_name, result, True)
        if chunking:
            logger.info(
                "Batch processing finished: %d issues in %d chunks (query: %s)",
                result.processed, result.chunks, query_name,
            )
        return result

    def _finish_chunk(
        self,
        chunk: Sequence[Dict[str, Any]],
        template_id: int,
        history: SyncHistory,
        query_name: str,
        result: BatchResult,
        last: bool,
    ) -> None:
        self._process_chunk(chunk, template_id, history, result)
        result.chunks += 1
        index = result.chunks

        if self.config.progress_logging_enabled and (
            index % self.config.progress_logging_interval == 0 or last
        ):
            total = max(result.total, result.processed)
            percent = result.processed * 100.0 / total if total else 100.0
            chunk_count = index
            if not last:
                chunk_count = max(index, -(-total // self.config.batch_size))
            message = (
                f"Progress [{query_name}]: {result.processed}/{total} issues "
                f"({percent:.1f}%), chunk {index}/{chunk_count}"
            )
            logger.info(message)
            history.add_success(PROGRESS_OPERATION, message)

        if index % self.config.memory_release_interval == 0:
            gc.collect()

    def _process_chunk(
        self,
        chunk: Sequence[Dict[str, Any]],
        template_id: int,
        history: SyncHistory,
        result: BatchResult,
    ) -> None:
        for item in chunk:
            if self._process_item(item, template_id, history):
                result.succeeded += 1
            else:
                result.failed += 1

    def _process_item(self, item: Dict[str, Any], template_id: int, history: SyncHistory) -> bool:
        key = issue_key(item)
        try:
            canonical = self.transformer.transform(item, template_id)
            self.applier.apply_changes(canonical, history)
        except Exception as exc:
            logger.exception("Issue %s failed to sync", key)
            history.add_error(ITEM_ERROR_OPERATION, f"Issue sync error [{key}]: {exc}")
            return False

        history.add_success(ITEM_SUCCESS_OPERATION, canonical)
        return True
