"""Per-entry outcomes and run summaries shared by all jobs"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SUCCESS = "success"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class EntryOutcome:
    entry_id: str
    outcome: str  # success | skipped | error
    reason: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.entry_id, "outcome": self.outcome, "reason": self.reason}
        if self.detail:
            out["detail"] = self.detail
        return out


@dataclass
class JobReport:
    """
    Result of one job run.

    Entry-level failures never abort a run; they are recorded here and the
    CLI still exits 0. ``retry_ids`` lists entries whose write failed and
    should be picked up first by the next run.
    """

    job: str
    outcomes: List[EntryOutcome] = field(default_factory=list)
    retry_ids: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    def record(
        self,
        entry_id: str,
        outcome: str,
        reason: Optional[str] = None,
        detail: Optional[str] = None,
        level: Optional[int] = None,
    ) -> EntryOutcome:
        item = EntryOutcome(entry_id=entry_id, outcome=outcome, reason=reason, detail=detail)
        self.outcomes.append(item)
        if level is None:
            level = logging.WARNING if outcome == ERROR else logging.INFO
        logger.log(level, f"entry_outcome {json.dumps(item.to_dict(), sort_keys=True)}")
        return item

    def success(self, entry_id: str, reason: Optional[str] = None) -> EntryOutcome:
        return self.record(entry_id, SUCCESS, reason)

    def skipped(
        self, entry_id: str, reason: str, detail: Optional[str] = None, level: Optional[int] = None
    ) -> EntryOutcome:
        return self.record(entry_id, SKIPPED, reason, detail, level)

    def error(self, entry_id: str, reason: str, detail: Optional[str] = None) -> EntryOutcome:
        return self.record(entry_id, ERROR, reason, detail)

    def _count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return self._count(SUCCESS)

    @property
    def skipped_count(self) -> int:
        return self._count(SKIPPED)

    @property
    def error_count(self) -> int:
        return self._count(ERROR)

    def ids_with(self, outcome: str, reason: Optional[str] = None) -> List[str]:
        return [
            o.entry_id for o in self.outcomes
            if o.outcome == outcome and (reason is None or o.reason == reason)
        ]

    def outcome_for(self, entry_id: str) -> Optional[EntryOutcome]:
        for item in reversed(self.outcomes):
            if item.entry_id == entry_id:
                return item
        return None

    @property
    def duration_s(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    def finish(self) -> "JobReport":
        self.finished_at = time.monotonic()
        return self

    def to_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "job": self.job,
            "processed": self.processed,
            "success": self.success_count,
            "skipped": self.skipped_count,
            "errors": self.error_count,
            "duration_s": round(self.duration_s, 2),
        }
        if self.retry_ids:
            summary["retry_ids"] = list(self.retry_ids)
        summary.update(self.extra)
        return summary

    def log_summary(self) -> str:
        # Structured summary log line
        line = (
            f"job_summary job={self.job} processed={self.processed} success={self.success_count} "
            f"skipped={self.skipped_count} errors={self.error_count} duration_s={self.duration_s:.2f}"
        )
        for key, value in self.extra.items():
            if isinstance(value, (int, float, str, bool)):
                line += f" {key}={value}"
        logger.info(line)
        return line
