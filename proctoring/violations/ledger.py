"""
Violation Ledger - Central authority for proctoring violations

Records every violation of a session, keeps per-kind counters, decides when
to warn and when to auto-submit, and delivers the audit trail to the
assessment server:

- CRITICAL violations are sent immediately, one by one
- everything is queued and flushed in batches every 30 seconds
- whatever fails to deliver is written to local fallback storage

Session lifecycle is INACTIVE -> ACTIVE -> INACTIVE via
start_proctoring() / stop_proctoring().
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from .types import (
    VIOLATION_THRESHOLDS,
    ThresholdConfig,
    Violation,
    ViolationSeverity,
    ViolationType,
)
from ..utils.logging import (
    log_auto_submit,
    log_delivery_failure,
    log_session_end,
    log_session_start,
    log_violation_recorded,
)

logger = logging.getLogger(__name__)


AutoSubmitCallback = Callable[[ViolationType, int], Any]


class ViolationLedger:
    """
    Per-session violation bookkeeping and escalation.

    ``transport`` must provide ``async send_batch(assessment_id, attempt_id,
    violations) -> bool`` and ``async send_immediate(violation) -> bool``.
    ``fallback_store`` must provide ``extend(attempt_id, violations)``.

    ``log_violation`` is synchronous: counting, recording and queueing
    happen without a suspension point. Without a running event loop no
    delivery can be scheduled; CRITICAL violations and the final batch
    then go straight to the fallback store.
    """

    DEFAULT_BATCH_INTERVAL = 30.0

    def __init__(
        self,
        transport,
        fallback_store,
        thresholds: Mapping[ViolationType, ThresholdConfig] = VIOLATION_THRESHOLDS,
        batch_interval: float = DEFAULT_BATCH_INTERVAL
    ):
        missing = [t.value for t in ViolationType if t not in thresholds]
        if missing:
            raise ValueError(f"Threshold policy missing kinds: {', '.join(missing)}")

        self.transport = transport
        self.fallback_store = fallback_store
        self.thresholds = thresholds
        self.batch_interval = batch_interval

        self.is_active = False
        self.assessment_id: Optional[str] = None
        self.attempt_id: Optional[str] = None

        self.violations: List[Violation] = []
        self.violation_counts: Dict[ViolationType, int] = self._empty_counts()
        self._queue: List[Violation] = []
        self._on_auto_submit: Optional[AutoSubmitCallback] = None

        self._batch_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def _empty_counts() -> Dict[ViolationType, int]:
        return {t: 0 for t in ViolationType}

    @property
    def pending_queue(self) -> List[Violation]:
        """Snapshot of violations waiting for batch delivery"""
        return list(self._queue)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start_proctoring(
        self,
        assessment_id: str,
        attempt_id: str,
        on_auto_submit: Optional[AutoSubmitCallback] = None
    ):
        """
        Activate the ledger for an attempt.

        Counters, history and queue are reset. Any batch timer left from a
        previous session is cancelled before the new one is scheduled.
        """
        self._cancel_batch_timer()

        self.assessment_id = assessment_id
        self.attempt_id = attempt_id
        self._on_auto_submit = on_auto_submit
        self.violations = []
        self.violation_counts = self._empty_counts()
        self._queue = []
        self.is_active = True

        self._batch_task = self._spawn(self._batch_loop(), track=False)

        log_session_start(attempt_id, assessment_id)

    def stop_proctoring(self):
        """
        Deactivate the ledger.

        Fires one final batch delivery for anything still queued (not
        awaited) and cancels the periodic timer. Safe to call repeatedly.
        """
        self._cancel_batch_timer()

        if not self.is_active:
            return
        self.is_active = False

        log_session_end(self.attempt_id, len(self.violations), len(self._queue))

        if self._queue:
            # Capture now: a new session may reset the queue before the task runs
            batch = list(self._queue)
            if self._spawn(self._deliver_batch(batch)) is None:
                self._persist_undeliverable("batch", batch)

    async def aclose(self):
        """Stop the session and wait for in-flight deliveries to settle"""
        self.stop_proctoring()
        await self.wait_for_deliveries()

    async def wait_for_deliveries(self):
        """Wait until every spawned send/flush has completed"""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ========================================================================
    # Recording
    # ========================================================================

    def log_violation(
        self,
        violation_type,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ViolationSeverity] = None
    ) -> Optional[Violation]:
        """
        Record a violation.

        Args:
            violation_type: A ViolationType (or its string value)
            details: Free-form context for reviewers
            severity: Optional override of the kind's default severity

        Returns:
            The recorded Violation, or None when the call was dropped
            (ledger inactive or unknown kind)
        """
        if not self.is_active:
            logger.warning(f"[Proctoring] Not active, violation not logged: {violation_type}")
            return None

        kind = ViolationType.parse(violation_type)
        if kind is None:
            logger.error(f"[Proctoring] Unknown violation type: {violation_type}")
            return None

        config = self.thresholds[kind]
        resolved_severity = ViolationSeverity(severity) if severity else config.severity

        new_count = self.violation_counts[kind] + 1
        self.violation_counts[kind] = new_count

        violation = Violation(
            assessment_id=self.assessment_id,
            attempt_id=self.attempt_id,
            type=kind,
            severity=resolved_severity,
            count=new_count,
            details=details or {},
        )

        self.violations.append(violation)
        self._queue.append(violation)

        log_violation_recorded(
            self.attempt_id,
            kind.value,
            new_count,
            config.auto_submit_threshold,
            resolved_severity.value
        )

        # No latch: every call at or past the threshold re-triggers
        if new_count >= config.auto_submit_threshold:
            log_auto_submit(self.attempt_id, kind.value, new_count, config.auto_submit_threshold)
            if self._on_auto_submit is not None:
                self._on_auto_submit(kind, new_count)

        if resolved_severity == ViolationSeverity.CRITICAL:
            if self._spawn(self.send_immediate(violation)) is None:
                self._persist_undeliverable("immediate", [violation])

        return violation

    # ========================================================================
    # Delivery
    # ========================================================================

    async def send_immediate(self, violation: Violation) -> bool:
        """Send one violation now; persist it locally if delivery fails"""
        try:
            delivered = await self.transport.send_immediate(violation)
        except Exception as e:
            logger.error(f"Immediate delivery raised: {e}")
            delivered = False

        if not delivered:
            log_delivery_failure(violation.attempt_id, "immediate", 1)
            self.fallback_store.extend(violation.attempt_id, [violation])
        return delivered

    async def flush(self) -> bool:
        """
        Deliver everything currently queued as one batch.

        Only the entries captured for this batch are removed on success;
        violations queued while the request was in flight stay queued. On
        failure the batch is persisted locally and the queue is left intact
        so the next tick retries it (at-least-once).
        """
        return await self._deliver_batch(list(self._queue))

    async def _deliver_batch(self, batch: List[Violation]) -> bool:
        if not batch:
            return True

        assessment_id = batch[0].assessment_id
        attempt_id = batch[0].attempt_id

        try:
            delivered = await self.transport.send_batch(assessment_id, attempt_id, batch)
        except Exception as e:
            logger.error(f"Batch delivery raised: {e}")
            delivered = False

        if delivered:
            sent_ids = {v.id for v in batch}
            self._queue = [v for v in self._queue if v.id not in sent_ids]
        else:
            log_delivery_failure(attempt_id, "batch", len(batch))
            self.fallback_store.extend(attempt_id, batch)
        return delivered

    async def _batch_loop(self):
        while True:
            await asyncio.sleep(self.batch_interval)
            if self._queue:
                await self.flush()

    def _cancel_batch_timer(self):
        if self._batch_task is not None:
            self._batch_task.cancel()
            self._batch_task = None

    def _spawn(self, coro, track: bool = True) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("[Proctoring] No running event loop, delivery not scheduled")
            return None

        task = loop.create_task(coro)
        if track:
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return task

    def _persist_undeliverable(self, kind: str, violations: List[Violation]):
        """A delivery that could not be scheduled counts as a failed one"""
        log_delivery_failure(self.attempt_id, kind, len(violations))
        self.fallback_store.extend(self.attempt_id, violations)

    # ========================================================================
    # Queries
    # ========================================================================

    def should_show_warning(self, violation_type) -> bool:
        """True while warning_threshold <= count < auto_submit_threshold"""
        kind = ViolationType.parse(violation_type)
        if kind is None:
            return False
        config = self.thresholds[kind]
        count = self.violation_counts[kind]
        return config.warning_threshold <= count < config.auto_submit_threshold

    def should_auto_submit(self) -> bool:
        """True once any kind has reached its auto-submit threshold"""
        return any(
            self.violation_counts[kind] >= config.auto_submit_threshold
            for kind, config in self.thresholds.items()
        )

    def get_violation_summary(self) -> Dict[str, Any]:
        """Totals, per-kind counts against thresholds, and severity buckets"""
        by_severity = {s: 0 for s in ViolationSeverity}
        for violation in self.violations:
            by_severity[violation.severity] += 1

        return {
            "total": len(self.violations),
            "counts": {kind.value: count for kind, count in self.violation_counts.items()},
            "by_type": [
                {
                    "type": kind.value,
                    "count": self.violation_counts[kind],
                    "warning_threshold": self.thresholds[kind].warning_threshold,
                    "threshold": self.thresholds[kind].auto_submit_threshold,
                }
                for kind in ViolationType
            ],
            "critical": by_severity[ViolationSeverity.CRITICAL],
            "high": by_severity[ViolationSeverity.HIGH],
            "medium": by_severity[ViolationSeverity.MEDIUM],
            "low": by_severity[ViolationSeverity.LOW],
            "pending_delivery": len(self._queue),
        }
