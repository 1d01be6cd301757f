"""
Research job state machine.

A job is started in one invocation and finalized in later ones. Between
invocations all state lives in the blob store:

- ``scout-jobs/<run_id>.json``: written once at start, never replaced
- ``scout-jobs/latest.json``: the current state of the most recent job

Stage lifecycle::

    pending -> in_progress -> completed | failed
    pending -> completed | failed

Finalize is budgeted: every call records an attempt before doing any work,
and once the budget is spent the job is reported as blocked.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from scout.config.settings import ScoutConfig
from scout.research.aggregator import aggregate
from scout.research.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    Job,
    SourceRecord,
    Stage,
    isoformat_utc,
    make_run_id,
    utc_now,
)
from scout.research.providers.base import (
    REMOTE_COMPLETED,
    REMOTE_FAILED,
    REMOTE_IN_PROGRESS,
    AsyncProvider,
    StageRequest,
    SyncProvider,
)
from scout.research.retry import retry_call
from scout.research.stages import SCOUT_CONFIG_VERSION, StageDefinition, build_stage_query, stage_priority_map
from scout.store.blob_store import BlobStore, BlobStoreError

logger = logging.getLogger(__name__)

JOBS_PREFIX = "scout-jobs"
LATEST_JOB_PATH = f"{JOBS_PREFIX}/latest.json"

FINALIZE_PENDING = "pending"
FINALIZE_READY = "ready"
FINALIZE_BLOCKED = "blocked"

Provider = Union[SyncProvider, AsyncProvider]


class JobNotFoundError(Exception):
    """Raised when no persisted job exists."""
    pass


class JobBlockedError(Exception):
    """Raised when a job has used up its finalize budget."""
    def __init__(self, run_id: str, attempts: int, budget: int):
        self.run_id = run_id
        self.attempts = attempts
        self.budget = budget
        super().__init__(f"Job {run_id} blocked after {attempts} finalize attempts (budget {budget})")


@dataclass
class JobParams:
    """Run parameters recorded on a job."""
    within_days: int = 7
    target_count: int = 10
    search_limit: int = 20
    mode: str = "speculative"

    @classmethod
    def from_config(cls, config: ScoutConfig) -> "JobParams":
        return cls(
            within_days=config.within_days,
            target_count=config.target_count,
            search_limit=config.search_limit,
            mode=config.mode,
        )


@dataclass
class FinalizeResult:
    status: str
    job: Job
    sources: List[SourceRecord] = field(default_factory=list)
    summary: str = ""

    @property
    def is_ready(self) -> bool:
        return self.status == FINALIZE_READY


class JobStore:
    """Persists jobs in a blob store."""

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    @staticmethod
    def run_path(run_id: str) -> str:
        return f"{JOBS_PREFIX}/{run_id}.json"

    def save_new(self, job: Job) -> str:
        """Write the run object (create-only) and point latest at it."""
        url = self.blob_store.write_json_immutable(self.run_path(job.run_id), job.to_dict())
        self.blob_store.write_json_pointer(LATEST_JOB_PATH, job.to_dict())
        return url

    def update(self, job: Job) -> str:
        return self.blob_store.write_json_pointer(LATEST_JOB_PATH, job.to_dict())

    def load_latest(self) -> Job:
        return self._load(LATEST_JOB_PATH)

    def load(self, run_id: str) -> Job:
        """Latest state of run_id if it is the current job, else its start record."""
        try:
            latest = self.load_latest()
            if latest.run_id == run_id:
                return latest
        except JobNotFoundError:
            pass
        return self._load(self.run_path(run_id))

    def _load(self, path: str) -> Job:
        if not self.blob_store.exists(path):
            raise JobNotFoundError(f"No job at {path}")
        try:
            data = self.blob_store.read_json(self.blob_store.url_for(path))
        except BlobStoreError as e:
            raise JobNotFoundError(f"Unreadable job at {path}: {e}") from e
        return Job.from_dict(data)


class JobStateMachine:
    """
    Starts, polls and finalizes research jobs.

    Args:
        store: Job persistence
        providers: Provider adapters keyed by provider name
        config: Scout configuration (finalize budget, backoff, retry policy)
        sleep: Sleep function (injectable for tests)
        clock: Current-time function (injectable for tests)
    """

    def __init__(
        self,
        store: JobStore,
        providers: Dict[str, Provider],
        config: Optional[ScoutConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.providers = providers
        self.config = config or ScoutConfig()
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def start_job(self, stage_definitions: List[StageDefinition], params: Optional[JobParams] = None) -> Job:
        """
        Create a job, run its synchronous stages and submit its asynchronous ones.

        A stage whose provider call fails is recorded as failed; the other
        stages are unaffected.
        """
        params = params or JobParams.from_config(self.config)
        now = self.clock()
        job = Job(
            run_id=make_run_id(now),
            created_at=isoformat_utc(now),
            within_days=params.within_days,
            target_count=params.target_count,
            search_limit=params.search_limit,
            mode=params.mode,
            config_version=SCOUT_CONFIG_VERSION,
        )

        for definition in stage_definitions:
            stage = Stage(
                stage_id=definition.stage_id,
                provider=definition.provider,
                query=build_stage_query(definition, params.within_days),
            )
            job.stages.append(stage)
            request = StageRequest(
                stage_id=definition.stage_id,
                query=stage.query,
                query_focus=definition.query_focus,
                within_days=params.within_days,
                search_limit=params.search_limit,
            )
            self._start_stage(stage, request, definition.is_async)

        self.store.save_new(job)
        counts = job.status_counts()
        logger.info(
            f"Started job {job.run_id}: {len(job.stages)} stages "
            f"({counts['completed']} completed, {counts['pending']} pending, {counts['failed']} failed)"
        )
        return job

    def _start_stage(self, stage: Stage, request: StageRequest, is_async: bool) -> None:
        provider = self.providers.get(stage.provider)
        label = f"{stage.stage_id} ({stage.provider})"

        try:
            if is_async:
                if not isinstance(provider, AsyncProvider):
                    raise ValueError(f"no asynchronous provider configured for {stage.provider}")
                stage.request_handle = retry_call(
                    lambda: provider.start_async(request), self.config.retry, f"start {label}", self.sleep
                )
            else:
                if not isinstance(provider, SyncProvider):
                    raise ValueError(f"no synchronous provider configured for {stage.provider}")
                result = retry_call(
                    lambda: provider.run_sync(request), self.config.retry, f"run {label}", self.sleep
                )
                stage.mark_completed(result.sources, result.summary, self.clock())
        except Exception as e:
            logger.error(f"Stage {label} failed to start: {e}")
            stage.mark_failed(str(e), self.clock())

    # ------------------------------------------------------------------
    # poll
    # ------------------------------------------------------------------

    def poll_job(self, job: Job) -> Job:
        """
        Query every non-terminal stage once.

        Terminal stages are never touched. Poll errors fail the stage rather
        than propagating.
        """
        for stage in job.open_stages():
            self._poll_stage(stage)
        return job

    def _poll_stage(self, stage: Stage) -> None:
        provider = self.providers.get(stage.provider)
        if not stage.request_handle:
            stage.mark_failed("missing request handle", self.clock())
            return
        if not isinstance(provider, AsyncProvider):
            stage.mark_failed(f"no asynchronous provider configured for {stage.provider}", self.clock())
            return

        try:
            result = provider.poll_async(stage.request_handle, stage.stage_id)
        except Exception as e:
            logger.warning(f"Poll failed for stage {stage.stage_id}: {e}")
            stage.mark_failed(str(e), self.clock())
            return

        if result.status == REMOTE_COMPLETED and result.result is not None:
            stage.mark_completed(result.result.sources, result.result.summary, self.clock())
            logger.info(f"Stage {stage.stage_id} completed with {len(stage.sources or [])} sources")
        elif result.status in (REMOTE_FAILED, REMOTE_COMPLETED):
            stage.mark_failed(result.error or "remote job returned no result", self.clock())
            logger.warning(f"Stage {stage.stage_id} failed: {stage.error}")
        elif result.status == REMOTE_IN_PROGRESS:
            stage.mark_in_progress()

    # ------------------------------------------------------------------
    # finalize
    # ------------------------------------------------------------------

    def finalize(self, job: Optional[Job] = None) -> FinalizeResult:
        """
        Record an attempt, then try to bring every stage to a terminal state.

        The attempt is persisted before any polling, so a crash mid-finalize
        still consumes budget. Once attempts exceed the budget the job is
        blocked and no provider is contacted.
        """
        job = job or self.store.load_latest()
        budget = self.config.max_finalize_attempts

        job.finalize_attempts += 1
        job.last_finalize_at = isoformat_utc(self.clock())
        self.store.update(job)

        if job.finalize_attempts > budget:
            logger.error(
                f"Job {job.run_id} blocked: finalize attempt {job.finalize_attempts} exceeds budget {budget}"
            )
            return FinalizeResult(status=FINALIZE_BLOCKED, job=job)

        self.poll_job(job)
        if not job.all_terminal:
            logger.info(
                f"{len(job.open_stages())} stage(s) still running; "
                f"polling again in {self.config.finalize_backoff_seconds}s"
            )
            self.sleep(self.config.finalize_backoff_seconds)
            self.poll_job(job)

        self.store.update(job)

        if not job.all_terminal:
            logger.info(f"Job {job.run_id} still pending after attempt {job.finalize_attempts}/{budget}")
            return FinalizeResult(status=FINALIZE_PENDING, job=job)

        sources, summary = aggregate(job.stages, stage_priority_map())
        counts = job.status_counts()
        logger.info(
            f"Job {job.run_id} ready: {counts[STATUS_COMPLETED]} completed, "
            f"{counts[STATUS_FAILED]} failed, {len(sources)} sources"
        )
        return FinalizeResult(status=FINALIZE_READY, job=job, sources=sources, summary=summary)


def job_status_report(job: Job) -> str:
    """Human-readable job state for the CLI."""
    lines = [
        f"Run: {job.run_id} (created {job.created_at}, mode {job.mode})",
        f"Finalize attempts: {job.finalize_attempts}"
        + (f" (last {job.last_finalize_at})" if job.last_finalize_at else ""),
    ]
    for stage in job.stages:
        detail = ""
        if stage.status == STATUS_COMPLETED:
            detail = f" - {len(stage.sources or [])} sources"
        elif stage.status == STATUS_FAILED:
            detail = f" - {stage.error}"
        lines.append(f"  {stage.stage_id:<20} {stage.provider:<11} {stage.status}{detail}")
    return "\n".join(lines)
