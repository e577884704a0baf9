"""Duplicate detection for pre-cached matchups stored under more than one id."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from matchcache.models import CacheEntry, matchup_key
from matchcache.storage import CacheStore
from matchcache.utils.timeutil import to_utc
from .report import JobReport

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)

MatchupKey = Tuple[str, Tuple[str, ...]]


@dataclass
class DuplicateGroup:
    key: MatchupKey
    keeper_id: str
    duplicate_ids: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        sport, ids = self.key
        return f"{sport}:{'-'.join(ids)}"


def choose_keeper(entries: Sequence[CacheEntry]) -> CacheEntry:
    """
    Most recently refreshed entry wins; never-refreshed counts as oldest.

    Ties go to the later gameStartTime, then to the entry stored under its
    canonical derived id, then to the lexicographically smallest id.
    """
    by_id = sorted(entries, key=lambda e: e.id)
    ranked = sorted(
        by_id,
        key=lambda e: (
            to_utc(e.last_refreshed_at) or _NEVER,
            to_utc(e.game_start_time) or _NEVER,
            e.id == e.canonical_id,
        ),
        reverse=True,
    )
    return ranked[0]


class DedupDetector:
    """Groups pre-cached entries by (sport, sorted team ids) and reports groups with more than one entry."""

    job_name = "dedup"

    def __init__(self, store: CacheStore, sports: Optional[Sequence[str]] = None, auto_delete: bool = False):
        self.store = store
        self.sports = [s.strip().lower() for s in sports or [] if s and s.strip()]
        self.auto_delete = auto_delete

    @classmethod
    def from_config(cls, config, store: CacheStore, **kwargs) -> "DedupDetector":
        """Build from a ConfigManager"""
        kwargs.setdefault("auto_delete", config.dedup.auto_delete)
        return cls(store=store, **kwargs)

    async def _load_entries(self) -> List[CacheEntry]:
        if not self.sports:
            return await self.store.query([("preCached", True)])
        entries: List[CacheEntry] = []
        for sport in dict.fromkeys(self.sports):
            entries.extend(await self.store.query([("sport", sport), ("preCached", True)]))
        return entries

    def group(self, entries: Sequence[CacheEntry], report: Optional[JobReport] = None) -> List[DuplicateGroup]:
        buckets: Dict[MatchupKey, List[CacheEntry]] = {}
        for entry in entries:
            missing = entry.integrity_problems()
            if not entry.team_ids.is_complete() and "team identity" not in missing:
                missing.append("team ids")
            if missing:
                logger.warning(f"⚠️ {entry.id} is missing {', '.join(missing)}; cannot check for duplicates")
                if report is not None:
                    report.skipped(entry.id, "data_integrity", f"missing {', '.join(missing)}")
                continue
            key = matchup_key(entry.sport, entry.team_ids.as_tuple())
            buckets.setdefault(key, []).append(entry)

        groups = []
        for key in sorted(buckets):
            members = buckets[key]
            if len(members) < 2:
                continue
            keeper = choose_keeper(members)
            duplicates = sorted(e.id for e in members if e.id != keeper.id)
            groups.append(DuplicateGroup(key=key, keeper_id=keeper.id, duplicate_ids=duplicates))
        return groups

    async def find_duplicates(self, report: Optional[JobReport] = None) -> List[DuplicateGroup]:
        entries = await self._load_entries()
        groups = self.group(entries, report)
        for g in groups:
            logger.info(f"🔁 {g.label}: keep {g.keeper_id}, duplicates {', '.join(g.duplicate_ids)}")
        return groups

    async def delete_duplicates(self, groups: Sequence[DuplicateGroup], report: Optional[JobReport] = None):
        ids = [dup for g in groups for dup in g.duplicate_ids]
        result = await self.store.batch_delete(ids)
        if report is not None:
            for entry_id in result.deleted_ids:
                report.success(entry_id, "duplicate_deleted")
            for entry_id in result.failed_ids:
                report.error(entry_id, "delete_failed")
            report.retry_ids.extend(result.failed_ids)
            report.extra["deleted"] = result.deleted_count
        return result

    async def run(self, delete: bool = False) -> JobReport:
        """Report duplicate groups; delete non-keepers only when asked to or auto_delete is on."""
        report = JobReport(job=self.job_name)
        logger.info("🚀 Starting duplicate detection")
        groups = await self.find_duplicates(report)
        report.extra["groups"] = len(groups)
        report.extra["duplicates"] = sum(len(g.duplicate_ids) for g in groups)
        report.extra["duplicate_groups"] = [
            {"key": g.label, "keeper": g.keeper_id, "duplicates": list(g.duplicate_ids)} for g in groups
        ]

        if groups and (delete or self.auto_delete):
            await self.delete_duplicates(groups, report)
        else:
            for g in groups:
                for dup in g.duplicate_ids:
                    report.skipped(dup, "duplicate_reported")
            report.extra["deleted"] = 0

        report.finish()
        report.log_summary()
        return report
