"""
Refresh job: re-score pre-cached matchups while their game is upcoming.

Each candidate is processed independently. A scorer failure, timeout or
empty result leaves the stored payload untouched; only a successful,
non-empty result replaces ``analysis.mlPlayerProps``.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from matchcache.analysis import count_by_confidence, rank_props
from matchcache.api_clients import PropsScorer, ScoreRequest, ScoreResult
from matchcache.cache import TTLPolicy, has_started
from matchcache.models import ML_PROPS_PATH, CacheEntry, MLPlayerProps
from matchcache.storage import CacheStore
from matchcache.utils.errors import (
    DataIntegrityError,
    EntryNotFoundError,
    ScorerError,
    ScorerTimeoutError,
    StoreWriteError,
    VersionConflictError,
)
from matchcache.utils.lock import KeyedLockRegistry
from matchcache.utils.timeutil import format_timestamp, to_utc, utc_now
from .report import JobReport

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _scorer_error_detail(message: str, payload: Optional[Dict[str, Any]] = None) -> str:
    if not payload:
        return message
    return f"{message} payload={json.dumps(payload, sort_keys=True, default=str)}"


def refresh_order_key(entry: CacheEntry):
    """Never-refreshed first, then oldest refresh, then earliest game, then id."""
    refreshed = to_utc(entry.last_refreshed_at)
    return (
        refreshed is not None,
        refreshed or _NEVER,
        to_utc(entry.game_start_time) or _NEVER,
        entry.id,
    )


def build_score_request(entry: CacheEntry) -> ScoreRequest:
    return ScoreRequest(
        team1=entry.teams.home or entry.team_ids.team1_id,
        team2=entry.teams.away or entry.team_ids.team2_id,
        sport=entry.sport,
        game_date=entry.game_start_time,
        odds_api_event_id=entry.odds_api_event_id,
        entry_id=entry.id,
    )


def build_props_payload(result: ScoreResult, entry: CacheEntry, refreshed_at: datetime) -> MLPlayerProps:
    """Rank the scorer output and fill in counts the scorer left out."""
    ranked = rank_props(result.top_props)
    high = result.high_confidence_count
    medium = result.medium_confidence_count
    if high is None or medium is None:
        counts = count_by_confidence(ranked)
        high = counts["high"] if high is None else high
        medium = counts["medium"] if medium is None else medium

    total = result.total_props_available
    return MLPlayerProps(
        top_props=ranked,
        goblin_legs=list(result.goblin_legs),
        parlay_stack=result.parlay_stack,
        total_props_available=total if total is not None else len(ranked),
        high_confidence_count=high,
        medium_confidence_count=medium,
        game_time=result.game_time or format_timestamp(entry.game_start_time),
        refreshed_at=refreshed_at,
    )


class RefreshOrchestrator:
    """Selects refresh candidates, scores them with bounded parallelism and merges results back."""

    job_name = "refresh"

    def __init__(
        self,
        store: CacheStore,
        scorer: PropsScorer,
        policy: Optional[TTLPolicy] = None,
        sports: Sequence[str] = ("nba",),
        worker_pool_size: int = 4,
        scorer_timeout_seconds: float = 300,
        run_deadline_seconds: Optional[float] = None,
        store_write_retries: int = 1,
        store_write_backoff_seconds: float = 1.0,
        lock_registry: Optional[KeyedLockRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if worker_pool_size < 1:
            raise ValueError(f"worker_pool_size must be >= 1, got {worker_pool_size}")
        self.store = store
        self.scorer = scorer
        self.policy = policy or TTLPolicy()
        self.sports = [s.strip().lower() for s in sports if s and s.strip()]
        self.worker_pool_size = worker_pool_size
        self.scorer_timeout_seconds = scorer_timeout_seconds
        self.run_deadline_seconds = run_deadline_seconds
        self.store_write_retries = store_write_retries
        self.store_write_backoff_seconds = store_write_backoff_seconds
        self.locks = lock_registry if lock_registry is not None else KeyedLockRegistry()
        self.clock = clock
        self._deadline: Optional[float] = None

    @classmethod
    def from_config(cls, config, store: CacheStore, scorer: PropsScorer, **kwargs) -> "RefreshOrchestrator":
        """Build from a ConfigManager"""
        return cls(
            store=store,
            scorer=scorer,
            policy=TTLPolicy.from_hours(config.ttl.expiry_buffer_hours, config.refresh.window_hours),
            sports=config.refresh.sports,
            worker_pool_size=config.refresh.worker_pool_size,
            scorer_timeout_seconds=config.scorer.timeout_seconds,
            run_deadline_seconds=config.refresh.run_deadline_seconds,
            store_write_retries=config.refresh.store_write_retries,
            store_write_backoff_seconds=config.refresh.store_write_backoff_seconds,
            **kwargs,
        )

    # ========================================================================
    # CANDIDATE SELECTION
    # ========================================================================

    async def collect_candidates(self, now: datetime, report: JobReport) -> List[CacheEntry]:
        """
        Query pre-cached entries per sport and keep the ones inside the refresh window.

        Entries failing integrity checks are reported as skipped. The result is
        in refresh order.
        """
        seen: Dict[str, CacheEntry] = {}
        out_of_window = 0
        for sport in dict.fromkeys(self.sports):
            entries = await self.store.query([("sport", sport), ("preCached", True)])
            logger.info(f"🔎 [{sport}] {len(entries)} pre-cached entries")
            for entry in entries:
                if entry.id in seen:
                    continue
                try:
                    entry.require_integrity()
                except DataIntegrityError as e:
                    logger.warning(f"⚠️ {e}")
                    report.skipped(entry.id, "data_integrity", str(e))
                    continue
                decision = self.policy.refresh_decision(entry, now)
                if not decision.should_refresh:
                    logger.debug(f"{entry.id}: {decision.reason}")
                    out_of_window += 1
                    continue
                seen[entry.id] = entry

        candidates = sorted(seen.values(), key=refresh_order_key)
        report.extra["candidates"] = len(candidates)
        report.extra["out_of_window"] = out_of_window
        return candidates

    # ========================================================================
    # RUN
    # ========================================================================

    async def run(self, now: Optional[datetime] = None) -> JobReport:
        report = JobReport(job=self.job_name)
        now = to_utc(now) if now is not None else self.clock()
        logger.info(
            f"🚀 Starting refresh for {', '.join(self.sports)} "
            f"(window {self.policy.refresh_window_hours}h, {self.worker_pool_size} workers)"
        )

        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.run_deadline_seconds if self.run_deadline_seconds else None

        candidates = await self.collect_candidates(now, report)
        if not candidates:
            logger.info("No entries in the refresh window.")
        else:
            logger.info(f"🔄 Refreshing {len(candidates)} entries")
            semaphore = asyncio.Semaphore(self.worker_pool_size)

            async def _worker(entry: CacheEntry) -> None:
                async with semaphore:
                    await self.refresh_entry(entry, report)

            await asyncio.gather(*(_worker(entry) for entry in candidates))

        report.finish()
        report.log_summary()
        return report

    def _deadline_passed(self) -> bool:
        if self._deadline is None:
            return False
        return asyncio.get_running_loop().time() >= self._deadline

    async def refresh_entry(self, entry: CacheEntry, report: JobReport) -> None:
        """Score one entry and merge the result. Never raises for entry-level failures."""
        if self._deadline_passed():
            report.skipped(entry.id, "deadline_exceeded")
            return

        try:
            result = await asyncio.wait_for(
                self.scorer.score(build_score_request(entry)),
                timeout=self.scorer_timeout_seconds,
            )
        except (asyncio.TimeoutError, ScorerTimeoutError):
            report.skipped(
                entry.id, "scorer_timeout", f"no result within {self.scorer_timeout_seconds}s", level=logging.WARNING
            )
            return
        except ScorerError as e:
            report.skipped(entry.id, "scorer_error", _scorer_error_detail(str(e), e.payload), level=logging.WARNING)
            return
        except Exception as e:
            logger.error(f"❌ Unexpected scorer failure for {entry.id}: {e}", exc_info=True)
            report.error(entry.id, "unexpected_error", str(e))
            return

        if not result.success:
            report.skipped(
                entry.id,
                "scorer_error",
                _scorer_error_detail(result.error or "scorer reported failure"),
                level=logging.WARNING,
            )
            return

        if not result.top_props:
            report.skipped(entry.id, "empty_result")
            return

        refreshed_at = self.clock()
        if has_started(entry, refreshed_at):
            report.skipped(
                entry.id, "game_started", f"game started {format_timestamp(entry.game_start_time)} while scoring"
            )
            return

        payload = build_props_payload(result, entry, refreshed_at)
        await self._write(entry, payload, refreshed_at, report)

    async def _write(self, entry: CacheEntry, payload: MLPlayerProps, refreshed_at: datetime, report: JobReport) -> None:
        attempt = 0
        async with self.locks.hold(entry.id):
            while True:
                try:
                    await self.store.update_nested_field(
                        entry.id,
                        ML_PROPS_PATH,
                        payload.to_dict(),
                        extra_fields={"lastRefreshedAt": format_timestamp(refreshed_at)},
                        expected_version=entry.version,
                    )
                except VersionConflictError as e:
                    report.skipped(entry.id, "concurrent_update", str(e))
                    return
                except EntryNotFoundError as e:
                    report.skipped(entry.id, "entry_missing", str(e))
                    return
                except StoreWriteError as e:
                    if attempt >= self.store_write_retries:
                        report.error(entry.id, "store_write_failed", str(e))
                        report.retry_ids.append(entry.id)
                        return
                    attempt += 1
                    backoff = self.store_write_backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(f"⚠️ Write failed for {entry.id}, retry {attempt} in {backoff:.1f}s: {e}")
                    await asyncio.sleep(backoff)
                    continue

                logger.debug(f"✅ {entry.id}: {len(payload.top_props)} props written")
                report.success(entry.id)
                return
