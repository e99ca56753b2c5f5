"""Usage Ledger - consumption writes with a single level of undo.

Invariants:
    - Metric and spool ids are validated before any write is issued
    - A batch writes every entry even if some fail; the result names each failed id
    - The undo buffer only ever holds the last fully successful batch, together with
      its metric; a failed batch leaves it untouched
    - undo() is single-shot: a second call raises NothingToUndoError
    - Batches and undos are serialized by one lock

Design Decisions:
    - Writes run in parallel on a thread pool: entries are independent by spool id,
      and every cache update goes through the cache's own lock
    - A partially failed undo keeps only the entries that were not undone, so a retry
      undoes exactly the remainder
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping

from pydantic import ValidationError as SchemaValidationError

from spoolsync.core.collaborator_protocols import InventoryEndpoint, StatisticsListener
from spoolsync.core.domain_types import UsageMetric, parse_usage_metric
from spoolsync.core.entity_cache import EntityCache
from spoolsync.core.errors import NetworkError, NothingToUndoError, ProtocolError, UnknownSpoolError
from spoolsync.core.operation_result import OperationResult
from spoolsync.schemas.inventory import SpoolRecord

logger = logging.getLogger(__name__)


class UsageLedger:
    def __init__(
        self,
        cache: EntityCache,
        api: InventoryEndpoint,
        listener: StatisticsListener | None = None,
        max_workers: int = 4,
    ):
        self.cache = cache
        self.api = api
        self.listener = listener
        self.max_workers = max(1, max_workers)
        self._lock = threading.Lock()
        self._undo_buffer: dict[int, float] = {}
        self._last_usage_metric: UsageMetric | None = None

    @property
    def undo_available(self) -> bool:
        return bool(self._undo_buffer)

    @property
    def last_usage_metric(self) -> UsageMetric | None:
        return self._last_usage_metric

    @property
    def undo_buffer(self) -> dict[int, float]:
        return dict(self._undo_buffer)

    def use_batch(self, deltas: Mapping[int, float], metric: "str | UsageMetric") -> OperationResult:
        """Apply `amount` of `metric` to each spool. Negative amounts are corrections."""
        usage_metric = parse_usage_metric(metric)
        deltas = dict(deltas)
        with self._lock:
            missing = self.cache.missing_spools(deltas.keys())
            if missing:
                raise UnknownSpoolError(missing)

            result = self._apply(deltas, usage_metric)
            if result.has_failed:
                logger.warning(
                    f"Usage batch failed for spools {result.failed_ids}; undo buffer kept",
                )
                return result

            self._notify(list(deltas))
            self._undo_buffer = deltas
            self._last_usage_metric = usage_metric if deltas else None
            return result

    def undo(self) -> OperationResult:
        """Replay the last successful batch with every amount negated."""
        with self._lock:
            if not self._undo_buffer:
                raise NothingToUndoError()
            buffer = self._undo_buffer
            metric = self._last_usage_metric
            result = self._apply({i: -amount for i, amount in buffer.items()}, metric)

            if result.has_failed:
                self._undo_buffer = {i: a for i, a in buffer.items() if i in result.failed_ids}
                logger.warning(
                    f"Undo failed for spools {result.failed_ids}; they stay undoable",
                )
            else:
                self._undo_buffer = {}
                self._last_usage_metric = None

            undone = [i for i in buffer if i in result.succeeded_ids]
            if undone:
                self._notify(undone)
            return result

    def clear_undo(self) -> None:
        with self._lock:
            self._undo_buffer = {}
            self._last_usage_metric = None

    def _apply(self, deltas: dict[int, float], metric: UsageMetric) -> OperationResult:
        result = OperationResult()
        if not deltas:
            return result
        workers = min(self.max_workers, len(deltas))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="usage-write") as pool:
            futures = {
                spool_id: pool.submit(self.api.use_spool, spool_id, metric.value, amount)
                for spool_id, amount in deltas.items()
            }
            for spool_id, future in futures.items():
                try:
                    record = future.result()
                except (NetworkError, ProtocolError) as e:
                    logger.error(
                        f"Failed to use {metric.value} on spool {spool_id}: {e.message}",
                        extra={"spool_id": spool_id, "error_code": e.code},
                    )
                    result.add_error(f"Failed to update spool {spool_id}: {e.message}", spool_id)
                    continue
                self._store(spool_id, record)
                result.add_success(spool_id)
        return result

    def _store(self, spool_id: int, record: dict) -> None:
        try:
            update = SpoolRecord.model_validate(record).to_update()
        except SchemaValidationError:
            logger.warning(
                f"Spool {spool_id} was updated but the server response is malformed; "
                f"cached counters are stale until the next refresh",
                extra={"spool_id": spool_id},
            )
            return
        self.cache.upsert_spool(update)

    def _notify(self, spool_ids: list[int]) -> None:
        if self.listener is not None and spool_ids:
            self.listener.update_spool_statistics(spool_ids)
