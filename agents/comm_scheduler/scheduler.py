"""Trigger clock and run coordinator for scheduled communications.

A ticker thread fires a cycle every ``interval_seconds``; each cycle runs on
its own worker thread. One engine-wide guard lets a single cycle run at a
time: a tick that fires while a cycle is in flight is skipped, not queued.

Per cycle: load active rules, decide due-ness, resolve recipients, dispatch,
then advance ``last_run_at``. Failures are isolated per recipient and per
rule; nothing escapes a cycle.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime, timedelta
from typing import Callable

from backend.core.config import settings
from backend.core.observability import set_tenant_id, set_trace_id
from backend.core.observability.metrics import (
    increment_rules_executed,
    increment_scheduler_cycle_errors,
    increment_scheduler_cycles,
    increment_scheduler_cycles_skipped,
    record_cycle_duration,
)

from .dispatcher import Dispatcher
from .dto import CommunicationRule, CycleReport, RunOutcome, TriggerType
from .resolver import RecipientQueryError, RecipientResolver
from .store import ScheduleStore

logger = logging.getLogger(__name__)


class CommunicationScheduler:
    """Polls schedule rules and fires the due ones.

    Args:
        store: Rule / record / configuration store
        dispatcher: Channel dispatcher
        resolver: Recipient resolver (defaults to one on ``store``)
        interval_seconds: Polling interval
        rerun_hours: Minimum gap between runs of a relative-trigger rule
        clock: Returns the current aware timestamp (for testing)
    """

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: Dispatcher,
        resolver: RecipientResolver | None = None,
        interval_seconds: float | None = None,
        rerun_hours: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.resolver = resolver or RecipientResolver(store)
        self.interval_seconds = (
            settings.SCHEDULER_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self.rerun_window = timedelta(
            hours=settings.SCHEDULER_RELATIVE_RERUN_HOURS if rerun_hours is None else rerun_hours
        )
        self.clock = clock or (lambda: datetime.now(UTC))
        self.last_report: CycleReport | None = None

        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._ticker: threading.Thread | None = None
        self._workers: list[threading.Thread] = []
        self._workers_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """True while a cycle is being evaluated."""
        return self._cycle_lock.locked()

    @property
    def is_started(self) -> bool:
        return self._ticker is not None and self._ticker.is_alive()

    def start(self) -> None:
        """Start the ticker; the first cycle runs immediately."""
        if self.is_started:
            logger.info("scheduler_already_running")
            return

        self._stop_event.clear()
        self._ticker = threading.Thread(target=self._tick_loop, name="comm-scheduler-ticker", daemon=True)
        self._ticker.start()
        logger.info("scheduler_started", extra={"interval_seconds": self.interval_seconds})

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the ticker and let an in-flight cycle finish."""
        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join(timeout)
            self._ticker = None

        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join(timeout)
        logger.info("scheduler_stopped")

    def _tick_loop(self) -> None:
        self._launch_cycle()
        while not self._stop_event.wait(self.interval_seconds):
            self._launch_cycle()

    def _launch_cycle(self) -> None:
        worker = threading.Thread(target=self.run_cycle, name="comm-scheduler-cycle", daemon=True)
        with self._workers_lock:
            self._workers = [w for w in self._workers if w.is_alive()]
            self._workers.append(worker)
        worker.start()

    def run_cycle(self, now: datetime | None = None) -> CycleReport | None:
        """Evaluate all active rules once.

        Returns:
            The cycle report, or None when skipped because a cycle is running
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("scheduler_cycle_skipped", extra={"reason": "previous_cycle_running"})
            increment_scheduler_cycles_skipped()
            return None

        trace_id = set_trace_id()
        now = now or self.clock()
        report = CycleReport(trace_id=trace_id, started_at=now)
        t0 = time.time()
        try:
            logger.info("scheduler_cycle_started", extra={"now": now.isoformat()})
            self.dispatcher.reset_cache()

            rules = self.store.list_active_rules()
            report.rules_loaded = len(rules)

            due_rules = []
            for rule in rules:
                due = self.is_due(rule, now)
                logger.info(
                    "scheduler_rule_evaluated",
                    extra={
                        "rule_id": rule.id,
                        "tenant_id": rule.tenant_id,
                        "trigger_type": rule.trigger_type.value,
                        "last_run_at": rule.last_run_at.isoformat() if rule.last_run_at else None,
                        "due": due,
                    },
                )
                if due:
                    due_rules.append(rule)
            report.rules_due = len(due_rules)

            if not due_rules:
                logger.info("scheduler_no_pending_rules", extra={"rules_loaded": len(rules)})

            for rule in due_rules:
                try:
                    report.outcomes.append(self.execute_rule(rule, now))
                except Exception as e:
                    logger.exception(
                        "scheduler_rule_error",
                        extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "error": str(e)},
                    )
                finally:
                    set_tenant_id(None)
        except Exception as e:
            report.error = str(e)
            increment_scheduler_cycle_errors()
            logger.exception("scheduler_cycle_error", extra={"error": str(e)})
        finally:
            report.duration_ms = (time.time() - t0) * 1000.0
            self.last_report = report
            record_cycle_duration(report.duration_ms)
            increment_scheduler_cycles()
            logger.info(
                "scheduler_cycle_completed",
                extra={
                    "rules_loaded": report.rules_loaded,
                    "rules_due": report.rules_due,
                    "duration_ms": report.duration_ms,
                },
            )
            self._cycle_lock.release()

        return report

    def is_due(self, rule: CommunicationRule, now: datetime) -> bool:
        """Decide whether a rule fires in the cycle starting at ``now``.

        specific_datetime: the scheduled time has passed and the rule has not
        run since it. Relative triggers: never run, or the rerun window has
        elapsed since the last run.
        """
        if not rule.is_active:
            return False

        if rule.trigger_type is TriggerType.SPECIFIC_DATETIME:
            if rule.scheduled_at is None or rule.scheduled_at > now:
                return False
            return rule.last_run_at is None or rule.last_run_at < rule.scheduled_at

        if rule.last_run_at is None:
            return True
        return now - rule.last_run_at >= self.rerun_window

    def execute_rule(self, rule: CommunicationRule, now: datetime) -> RunOutcome:
        """Resolve and dispatch one due rule, then advance its last run."""
        set_tenant_id(rule.tenant_id)
        outcome = RunOutcome(rule_id=rule.id)
        logger.info(
            "scheduler_rule_executing",
            extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "rule_name": rule.name},
        )

        try:
            recipients = self.resolver.resolve(rule, now)
        except RecipientQueryError as e:
            logger.error(
                "scheduler_recipient_query_failed",
                extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "error": str(e.cause)},
            )
            recipients = []

        if not recipients:
            logger.info("scheduler_rule_no_recipients", extra={"rule_id": rule.id, "tenant_id": rule.tenant_id})

        for recipient in recipients:
            outcome.add(self.dispatcher.dispatch(rule, recipient, now))

        self._advance_last_run(rule, now)
        increment_rules_executed(rule.trigger_type.value)
        logger.info(
            "scheduler_rule_completed",
            extra={"tenant_id": rule.tenant_id, "recipients": len(recipients), **outcome.to_dict()},
        )
        return outcome

    def _advance_last_run(self, rule: CommunicationRule, now: datetime) -> None:
        try:
            self.store.persist_last_run(rule.id, now)
        except Exception as e:
            logger.exception(
                "scheduler_persist_last_run_failed",
                extra={"rule_id": rule.id, "tenant_id": rule.tenant_id, "error": str(e)},
            )
            return
        rule.last_run_at = now
