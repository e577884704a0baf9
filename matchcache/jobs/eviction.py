"""Eviction job: delete pre-cached entries whose game has resolved."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from matchcache.cache import TTLPolicy
from matchcache.models import CacheEntry
from matchcache.storage import BatchDeleteResult, CacheStore
from matchcache.utils.timeutil import format_timestamp, to_utc, utc_now
from .report import JobReport

logger = logging.getLogger(__name__)


class EvictionJob:
    """
    Finds expired entries and batch-deletes them.

    Entries failing integrity checks (no sport, team identity or
    gameStartTime) are kept and flagged. Entries still inside
    their refresh window are never deleted, even when their stored expiresAt
    says otherwise. Running twice without time passing deletes nothing the
    second time.
    """

    job_name = "evict"

    def __init__(
        self,
        store: CacheStore,
        policy: Optional[TTLPolicy] = None,
        sports: Optional[Sequence[str]] = None,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.policy = policy or TTLPolicy()
        self.sports = [s.strip().lower() for s in sports or [] if s and s.strip()]
        self.dry_run = dry_run
        self.clock = clock

    @classmethod
    def from_config(cls, config, store: CacheStore, **kwargs) -> "EvictionJob":
        """Build from a ConfigManager"""
        return cls(
            store=store,
            policy=TTLPolicy.from_hours(config.ttl.expiry_buffer_hours, config.refresh.window_hours),
            **kwargs,
        )

    async def _load_entries(self) -> List[CacheEntry]:
        if not self.sports:
            return await self.store.query([("preCached", True)])
        entries: List[CacheEntry] = []
        for sport in dict.fromkeys(self.sports):
            entries.extend(await self.store.query([("sport", sport), ("preCached", True)]))
        return entries

    def partition(self, entries: Sequence[CacheEntry], now: datetime, report: JobReport) -> Tuple[List[str], int]:
        """Split entries into expired ids and a count of kept ones, reporting integrity problems."""
        expired: List[str] = []
        kept = 0
        for entry in sorted(entries, key=lambda e: e.id):
            missing = entry.integrity_problems()
            if missing:
                logger.warning(f"⚠️ {entry.id} is missing {', '.join(missing)}; keeping it")
                report.skipped(entry.id, "data_integrity", f"missing {', '.join(missing)}")
                kept += 1
                continue

            if self.policy.is_in_refresh_window(entry, now):
                stored = to_utc(entry.expires_at)
                if stored is not None and stored < to_utc(now):
                    logger.warning(
                        f"⚠️ {entry.id} expiresAt {format_timestamp(stored)} already passed but game starts "
                        f"{format_timestamp(entry.game_start_time)}; keeping it"
                    )
                    report.skipped(entry.id, "data_integrity", "expiresAt before game start")
                kept += 1
                continue

            if self.policy.is_expired(entry, now):
                expired.append(entry.id)
            else:
                kept += 1
        return expired, kept

    async def run(self, now: Optional[datetime] = None) -> JobReport:
        report = JobReport(job=self.job_name)
        now = to_utc(now) if now is not None else self.clock()
        logger.info(f"🚀 Starting eviction{' (dry run)' if self.dry_run else ''}")

        entries = await self._load_entries()
        expired, kept = self.partition(entries, now, report)
        report.extra["scanned"] = len(entries)
        report.extra["kept"] = kept
        report.extra["expired"] = len(expired)

        if not expired:
            logger.info("No expired entries.")
            report.extra["deleted"] = 0
        elif self.dry_run:
            logger.info(f"🏁 DRY RUN: would delete {len(expired)} expired entries")
            for entry_id in expired:
                report.skipped(entry_id, "dry_run")
            report.extra["deleted"] = 0
        else:
            result = await self.store.batch_delete(expired)
            self._record_delete(result, report)

        report.finish()
        report.log_summary()
        return report

    @staticmethod
    def _record_delete(result: BatchDeleteResult, report: JobReport) -> None:
        for entry_id in result.deleted_ids:
            report.success(entry_id, "expired")
        for entry_id in result.failed_ids:
            report.error(entry_id, "delete_failed")
        report.extra["deleted"] = result.deleted_count
        report.extra["chunks"] = result.chunks_attempted
        report.extra["chunks_failed"] = result.chunks_failed
        if result.failed_ids:
            report.retry_ids.extend(result.failed_ids)
