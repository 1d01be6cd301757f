"""
Research job data models.

A Job groups the research stages started for one run. Jobs are persisted
between invocations as JSON; two schema generations exist:

- version 1: a single implicit deep-research request (``request_id``/``query``)
- version 2: an explicit ``stages`` list

``upgrade_job_record`` converts version 1 records on load so that every
stage operation only ever sees version 2.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from scout.config.settings import normalize_mode
from scout.research.stages import PROVIDER_PERPLEXITY, SCOUT_CONFIG_VERSION

JOB_SCHEMA_VERSION = 2
LEGACY_STAGE_ID = "perplexity-legacy"

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

STAGE_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_run_id(ts: Optional[datetime] = None) -> str:
    """Run id derived from the start time, e.g. 2026-01-05T09-00-00Z."""
    ts = ts or utc_now()
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


@dataclass(frozen=True)
class SourceRecord:
    """A single search hit. Identity is the URL."""
    title: str
    url: str
    stage_id: str
    date: Optional[str] = None
    snippet: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {"title": self.title, "url": self.url, "stage_id": self.stage_id}
        if self.date:
            d["date"] = self.date
        if self.snippet:
            d["snippet"] = self.snippet
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any], stage_id: Optional[str] = None) -> "SourceRecord":
        return cls(
            title=str(data.get("title") or data.get("url") or ""),
            url=str(data.get("url") or ""),
            stage_id=str(stage_id or data.get("stage_id") or "unknown"),
            date=data.get("date") or None,
            snippet=data.get("snippet") or None,
        )


@dataclass
class Stage:
    """
    One research request within a job.

    ``sources`` is set exactly when the stage is completed; every transition
    goes through ``mark_completed``/``mark_failed``/``mark_in_progress``.
    """
    stage_id: str
    provider: str
    query: str
    status: str = STATUS_PENDING
    request_handle: Optional[str] = None
    sources: Optional[List[SourceRecord]] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_in_progress(self) -> None:
        if not self.is_terminal:
            self.status = STATUS_IN_PROGRESS

    def mark_completed(self, sources: List[SourceRecord], summary: str = "",
                       now: Optional[datetime] = None) -> None:
        self.status = STATUS_COMPLETED
        self.sources = list(sources)
        self.summary = summary or ""
        self.error = None
        self.completed_at = isoformat_utc(now or utc_now())

    def mark_failed(self, error: str, now: Optional[datetime] = None) -> None:
        self.status = STATUS_FAILED
        self.sources = None
        self.summary = None
        self.error = error or "unknown error"
        self.completed_at = isoformat_utc(now or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "stage_id": self.stage_id,
            "provider": self.provider,
            "status": self.status,
            "query": self.query,
        }
        if self.request_handle:
            d["request_handle"] = self.request_handle
        if self.status == STATUS_COMPLETED:
            d["sources"] = [s.to_dict() for s in (self.sources or [])]
            d["summary"] = self.summary or ""
        if self.error:
            d["error"] = self.error
        if self.completed_at:
            d["completed_at"] = self.completed_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stage":
        status = data.get("status", STATUS_PENDING)
        if status not in STAGE_STATUSES:
            raise ValueError(f"Invalid stage status for {data.get('stage_id')}: {status}")

        stage_id = str(data["stage_id"])
        sources = None
        if status == STATUS_COMPLETED:
            sources = [SourceRecord.from_dict(s, stage_id) for s in (data.get("sources") or [])]

        return cls(
            stage_id=stage_id,
            provider=str(data.get("provider", "")),
            query=str(data.get("query", "")),
            status=status,
            request_handle=data.get("request_handle") or None,
            sources=sources,
            summary=data.get("summary") if status == STATUS_COMPLETED else None,
            error=data.get("error") or None,
            completed_at=data.get("completed_at") or None,
        )


@dataclass
class Job:
    """A research run: its parameters, finalize bookkeeping and stages."""
    run_id: str
    created_at: str
    stages: List[Stage] = field(default_factory=list)
    within_days: int = 7
    target_count: int = 10
    search_limit: int = 20
    mode: str = "speculative"
    config_version: int = SCOUT_CONFIG_VERSION
    finalize_attempts: int = 0
    last_finalize_at: Optional[str] = None

    @property
    def all_terminal(self) -> bool:
        return all(s.is_terminal for s in self.stages)

    def open_stages(self) -> List[Stage]:
        return [s for s in self.stages if not s.is_terminal]

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        for stage in self.stages:
            if stage.stage_id == stage_id:
                return stage
        return None

    def status_counts(self) -> Dict[str, int]:
        counts = {status: 0 for status in STAGE_STATUSES}
        for stage in self.stages:
            counts[stage.status] = counts.get(stage.status, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "version": JOB_SCHEMA_VERSION,
            "run_id": self.run_id,
            "created_at": self.created_at,
            "finalize_attempts": self.finalize_attempts,
            "within_days": self.within_days,
            "target_count": self.target_count,
            "search_limit": self.search_limit,
            "mode": self.mode,
            "config_version": self.config_version,
            "stages": [s.to_dict() for s in self.stages],
        }
        if self.last_finalize_at:
            d["last_finalize_at"] = self.last_finalize_at
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Load a persisted job of any schema generation."""
        data = upgrade_job_record(data)
        return cls(
            run_id=str(data["run_id"]),
            created_at=str(data.get("created_at", "")),
            stages=[Stage.from_dict(s) for s in data.get("stages", [])],
            within_days=int(data.get("within_days", 7)),
            target_count=int(data.get("target_count", 10)),
            search_limit=int(data.get("search_limit", 20)),
            mode=normalize_mode(data.get("mode")),
            config_version=int(data.get("config_version", SCOUT_CONFIG_VERSION)),
            finalize_attempts=int(data.get("finalize_attempts", 0)),
            last_finalize_at=data.get("last_finalize_at") or None,
        )


def upgrade_job_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a persisted job record to the version 2 layout.

    Version 1 records carried one deep-research request directly on the job;
    it becomes a single pending stage that is polled like any other.
    Version 2 records are returned unchanged.

    Raises:
        ValueError: On an unsupported schema version
    """
    version = int(data.get("version", 1 if "request_id" in data else JOB_SCHEMA_VERSION))

    if version == JOB_SCHEMA_VERSION:
        return data
    if version != 1:
        raise ValueError(f"Unsupported job schema version: {version}")

    request_id = str(data.get("request_id") or "").strip()
    legacy_stage: Dict[str, Any] = {
        "stage_id": LEGACY_STAGE_ID,
        "provider": PROVIDER_PERPLEXITY,
        "status": STATUS_PENDING,
        "query": data.get("query", ""),
    }
    if request_id:
        legacy_stage["request_handle"] = request_id
    else:
        legacy_stage["status"] = STATUS_FAILED
        legacy_stage["error"] = "version 1 job has no request id"

    upgraded = {
        "version": JOB_SCHEMA_VERSION,
        "run_id": data["run_id"],
        "created_at": data.get("created_at", ""),
        "finalize_attempts": data.get("finalize_attempts", 0),
        "within_days": data.get("within_days", 7),
        "target_count": data.get("find", 10),
        "search_limit": data.get("search_limit", 20),
        "mode": data.get("mode", "speculative"),
        "config_version": data.get("scout_config_version", 1),
        "stages": [legacy_stage],
    }
    if data.get("last_finalize_at"):
        upgraded["last_finalize_at"] = data["last_finalize_at"]
    return upgraded
