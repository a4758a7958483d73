import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, Literal

from ledger_categorizer.core.settings import AutomationOptions
from ledger_categorizer.domain.backoff import backoff_delay
from ledger_categorizer.domain.schedule import next_occurrence, parse_schedule
from ledger_categorizer.domain.timefmt import format_duration
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    AutoApplyRunSummary,
    AutoApplySettings,
    Transaction,
    utcnow,
)
from ledger_categorizer.services.categorization import CategorizationPipeline
from ledger_categorizer.storage.base import SettingsStore

logger = get_logger(__name__)

Delay = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]
Outcome = Literal["applied", "skipped", "failed"]


class AutoApplyWorker:
    """Applies confident suggestions to unassigned transactions on a schedule.

    One long-lived loop: wait for the next occurrence, run a batch, repeat.
    Transactions in a batch are handled one at a time, oldest first. Every
    wait (the schedule, retry backoff, the error cooldown) goes through
    ``delay``, which by default returns early as soon as ``stop()`` is called.
    """

    def __init__(
        self,
        pipeline: CategorizationPipeline,
        settings: SettingsStore,
        options: AutomationOptions,
        *,
        delay: Delay | None = None,
        clock: Clock | None = None,
    ) -> None:
        if options.schedule:
            # Misconfiguration must fail at startup, not at the first wake-up
            parse_schedule(options.schedule)
        self.pipeline = pipeline
        self.settings = settings
        self.options = options
        self.stop_event = asyncio.Event()
        # One batch at a time, whether scheduled or triggered by hand
        self.run_lock = asyncio.Lock()
        self._delay = delay or self._wait
        self._clock = clock or utcnow
        self.state = "idle"
        self.next_run_at: datetime | None = None
        self.last_summary: AutoApplyRunSummary | None = None

    def stop(self) -> None:
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    @property
    def running(self) -> bool:
        return self.run_lock.locked()

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_run": self.last_summary.model_dump(mode="json") if self.last_summary else None,
        }

    def next_run_time(self, settings: AutoApplySettings, now: datetime) -> datetime:
        schedule = settings.schedule or self.options.schedule
        if schedule:
            return next_occurrence(schedule, now)
        return now + timedelta(minutes=settings.interval_minutes)

    async def run_forever(self) -> None:
        logger.info(
            "[AUTO-APPLY] Worker started (schedule: %s, batch size: %s, max retries: %s)",
            self.options.schedule or "interval",
            self.options.batch_size,
            self.options.max_retries,
        )
        while not self.stopped:
            try:
                settings = await asyncio.to_thread(self.settings.get)
                now = self._clock()
                self.next_run_at = self.next_run_time(settings, now)
                wait_seconds = (self.next_run_at - now).total_seconds()
                logger.info(
                    "[SCHEDULE] Next auto-apply run at %s (in %s)",
                    self.next_run_at.isoformat(),
                    format_duration(wait_seconds),
                )

                self.state = "waiting"
                await self._delay(wait_seconds)
                if self.stopped:
                    break

                await self.run_once()
            except asyncio.CancelledError:
                logger.info("[AUTO-APPLY] Worker cancelled.")
                self.state = "stopped"
                raise
            except Exception:
                logger.exception(
                    "[AUTO-APPLY] Scheduler loop failed; resuming in %s.",
                    format_duration(self.options.cooldown_seconds),
                )
                self.state = "cooldown"
                await self._delay(self.options.cooldown_seconds)

        self.state = "stopped"
        logger.info("[AUTO-APPLY] Worker stopped.")

    async def run_once(self) -> AutoApplyRunSummary:
        async with self.run_lock:
            return await self._run_batch()

    async def _run_batch(self) -> AutoApplyRunSummary:
        settings = await asyncio.to_thread(self.settings.get)
        summary = AutoApplyRunSummary(started_at=self._clock(), enabled=settings.enabled)

        if not settings.enabled:
            logger.info("[AUTO-APPLY] Run skipped: auto-apply is disabled.")
            summary.finished_at = self._clock()
            self.last_summary = summary
            return summary

        self.state = "running"
        confidences: list[float] = []
        try:
            batch = await asyncio.to_thread(
                self.pipeline.transactions.get_unassigned,
                self.options.batch_size,
                settings.account_ids,
            )
            logger.info(
                "[AUTO-APPLY] Processing %s unassigned transactions (threshold: %.4f)",
                len(batch),
                settings.min_confidence,
            )

            for transaction in batch:
                if self.stopped:
                    summary.cancelled = True
                    break

                outcome, confidence = await self._process(transaction, settings)
                if outcome == "applied" and confidence is not None:
                    summary.applied += 1
                    confidences.append(confidence)
                else:
                    summary.skipped += 1
                    if outcome == "failed":
                        summary.failed += 1
        finally:
            self.state = "idle"

        summary.average_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        summary.finished_at = self._clock()
        self.last_summary = summary

        logger.info(
            "[AUTO-APPLY] Run complete: %s applied (avg confidence: %.4f), %s skipped (%s failed)%s",
            summary.applied,
            summary.average_confidence,
            summary.skipped,
            summary.failed,
            " - cancelled" if summary.cancelled else "",
        )
        return summary

    async def _process(
        self,
        transaction: Transaction,
        settings: AutoApplySettings,
    ) -> tuple[Outcome, float | None]:
        last_error: Exception | None = None
        max_retries = self.options.max_retries

        for attempt in range(max_retries + 1):
            try:
                prediction = await self.pipeline.predict(transaction, threshold=settings.min_confidence)
                reason = self.pipeline.auto_approval_reason(
                    transaction.id,
                    prediction,
                    threshold=settings.min_confidence,
                    excluded_category_ids=settings.excluded_category_ids,
                )
                if reason:
                    return "skipped", None

                await asyncio.to_thread(self.pipeline.apply_auto_approval, transaction, prediction)
                return "applied", prediction.confidence
            except Exception as e:
                last_error = e
                if attempt >= max_retries:
                    break
                delay = backoff_delay(attempt)
                logger.warning(
                    "[AUTO-APPLY] Transaction %s failed (attempt %s/%s): %s. Retrying in %s.",
                    transaction.id,
                    attempt + 1,
                    max_retries + 1,
                    e,
                    format_duration(delay),
                )
                await self._delay(delay)
                if self.stopped:
                    break

        logger.error(
            "[AUTO-APPLY] Transaction %s skipped after %s retries.",
            transaction.id,
            max_retries,
            exc_info=last_error,
        )
        return "failed", None
