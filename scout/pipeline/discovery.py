"""
Discovery run: finalize a research job and publish what it found.

Steps:
1. Finalize the job (pending -> stop, blocked -> JobBlockedError)
2. Filter aggregated sources to the recency window and search limit
3. If nothing is left, run the synchronous fallback search
4. Extract candidates, validate them, drop out-of-window items
5. Merge into the live dataset and publish snapshot + manifest

A run that finds nothing still publishes (zero-yield), so the manifest
always reflects the latest completed run.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from scout.config.settings import ScoutConfig
from scout.pipeline.extractor import ClaudeExtractor
from scout.pipeline.merger import merge, within_window
from scout.pipeline.models import dump_dataset
from scout.pipeline.validator import rank_candidates, validate_candidates
from scout.research.job_state import (
    FINALIZE_BLOCKED,
    JobBlockedError,
    JobStateMachine,
)
from scout.research.models import Job, SourceRecord, utc_now
from scout.research.providers.base import StageRequest, SyncProvider
from scout.research.retry import retry_call
from scout.research.stages import build_research_query, native_handle_stage_ids
from scout.store.dataset_store import DatasetStore

logger = logging.getLogger(__name__)

RUN_PENDING = "pending"
RUN_PUBLISHED = "published"

FALLBACK_STAGE_ID = "fallback-search"


@dataclass
class RunReport:
    run_id: str
    status: str
    finalize_attempts: int = 0
    source_count: int = 0
    used_fallback: bool = False
    candidate_count: int = 0
    accepted_count: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    out_of_window: int = 0
    duplicate_count: int = 0
    added_ids: List[str] = field(default_factory=list)
    dataset_count: int = 0
    snapshot_url: Optional[str] = None
    manifest_url: Optional[str] = None
    audit_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def added_count(self) -> int:
        return len(self.added_ids)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["added_count"] = self.added_count
        return d


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def filter_sources(sources: List[SourceRecord], within_days: int, search_limit: int,
                   today: date) -> List[SourceRecord]:
    """
    Keep http(s) sources inside the recency window, up to search_limit.

    Undated sources are kept; within_days of 0 disables the date filter.
    """
    cutoff = today - timedelta(days=within_days) if within_days > 0 else None
    kept = []
    for s in sources:
        if not s.url.lower().startswith(("http://", "https://")):
            continue
        d = _parse_date(s.date)
        if cutoff and d and d < cutoff:
            continue
        kept.append(s)
    return kept[:search_limit]


def trusted_handle_urls(job: Job) -> Set[str]:
    """URLs returned by native-handle search stages of the job."""
    native = set(native_handle_stage_ids())
    urls: Set[str] = set()
    for stage in job.stages:
        if stage.stage_id in native:
            urls.update(s.url for s in (stage.sources or []))
    return urls


class DiscoveryRun:
    """
    Finalize-to-publish orchestration for one job.

    Args:
        machine: Job state machine
        dataset_store: Dataset persistence
        extractor: Candidate extractor
        config: Scout configuration
        fallback_provider: Synchronous search used when a job yields no sources
        clock: Current-time function (injectable for tests)
    """

    def __init__(
        self,
        machine: JobStateMachine,
        dataset_store: DatasetStore,
        extractor: ClaudeExtractor,
        config: Optional[ScoutConfig] = None,
        fallback_provider: Optional[SyncProvider] = None,
        clock: Callable = utc_now,
    ):
        self.machine = machine
        self.dataset_store = dataset_store
        self.extractor = extractor
        self.config = config or ScoutConfig()
        self.fallback_provider = fallback_provider
        self.clock = clock

    def run(self, job: Optional[Job] = None) -> RunReport:
        """
        Finalize the (latest) job and publish its case studies when ready.

        Raises:
            JobBlockedError: The finalize budget is exhausted
            BlobExistsError: This run was already published
        """
        outcome = self.machine.finalize(job)
        job = outcome.job
        report = RunReport(run_id=job.run_id, status=RUN_PENDING, finalize_attempts=job.finalize_attempts)

        if outcome.status == FINALIZE_BLOCKED:
            raise JobBlockedError(job.run_id, job.finalize_attempts, self.config.max_finalize_attempts)
        if not outcome.is_ready:
            return report

        today = self.clock().date()
        sources = filter_sources(outcome.sources, job.within_days, job.search_limit, today)
        summary = outcome.summary

        if not sources and self.config.fallback_search and self.fallback_provider is not None:
            fallback = self._fallback_search(job)
            if fallback is not None:
                report.used_fallback = True
                sources = filter_sources(fallback.sources, job.within_days, job.search_limit, today)
                summary = "\n\n".join(p for p in (summary, f"--- {FALLBACK_STAGE_ID} ---\n{fallback.summary}") if p)

        report.source_count = len(sources)

        candidates: List[Any] = []
        if sources:
            candidates = retry_call(
                lambda: self.extractor.extract(sources, summary, job.target_count, job.mode),
                self.config.retry, "extract", self.machine.sleep,
            )
        else:
            logger.warning(f"Job {job.run_id} produced no sources; publishing without additions")
        report.candidate_count = len(candidates)

        existing = self.dataset_store.read_dataset()
        existing_ids = {cs.id for cs in existing}
        validation = validate_candidates(
            rank_candidates(candidates),
            allowed_urls={s.url for s in sources},
            mode=job.mode,
            fallback_date=today.isoformat(),
            existing_ids=existing_ids,
            url_snippets={s.url: s.snippet for s in sources if s.snippet},
            trusted_handle_urls=trusted_handle_urls(job),
        )
        report.accepted_count = len(validation.accepted)
        report.rejected = validation.rejection_counts()

        in_window = [cs for cs in validation.accepted if within_window(cs, today, job.within_days)]
        report.out_of_window = len(validation.accepted) - len(in_window)

        merged = merge(existing, in_window, max_new=job.target_count)
        report.duplicate_count = merged.duplicate_urls + merged.duplicate_products
        report.added_ids = merged.added_ids
        report.dataset_count = len(merged.dataset)
        report.status = RUN_PUBLISHED

        audits = {
            "providers": job.to_dict(),
            "extractor": {"mode": job.mode, "candidates": candidates, "warnings": validation.warnings},
            "run": report.to_dict(),
            "added": dump_dataset(merged.added),
        }
        published = self.dataset_store.publish(job.run_id, merged.dataset, merged.added, audits)
        report.snapshot_url = published.snapshot_url
        report.manifest_url = published.manifest_url
        report.audit_errors = published.audit_errors

        logger.info(
            f"Run {job.run_id} published: {report.added_count} added, "
            f"{report.dataset_count} total ({report.candidate_count} candidates, "
            f"{sum(report.rejected.values())} rejected)"
        )
        return report

    def _fallback_search(self, job: Job):
        request = StageRequest(
            stage_id=FALLBACK_STAGE_ID,
            query=build_research_query(job.within_days),
            within_days=job.within_days,
            search_limit=job.search_limit,
        )
        try:
            return retry_call(
                lambda: self.fallback_provider.run_sync(request), self.config.retry, "fallback search",
                self.machine.sleep,
            )
        except Exception as e:
            logger.error(f"Fallback search failed for {job.run_id}: {e}")
            return None
