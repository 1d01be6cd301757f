"""Abstract interfaces for research providers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from scout.research.models import SourceRecord
from scout.research.retry import ProviderError

logger = logging.getLogger(__name__)

# Remote async job states
REMOTE_PENDING = "pending"
REMOTE_IN_PROGRESS = "in_progress"
REMOTE_COMPLETED = "completed"
REMOTE_FAILED = "failed"


def build_session() -> requests.Session:
    """Session with transport-level retry for idempotent requests."""
    retry = Retry(total=1, allowed_methods=["GET"], backoff_factor=1, status_forcelist=[502, 503, 504])
    session = requests.Session()
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


def check_response(response: requests.Response, provider: str, action: str) -> Dict[str, Any]:
    """
    Raise ProviderError on a non-2xx response, otherwise return the JSON body.

    Rate limits and server errors are retryable; other client errors are not.
    """
    if not response.ok:
        body = (response.text or "")[:500]
        retryable = response.status_code == 429 or response.status_code >= 500
        raise ProviderError(provider, f"{action} failed: {response.status_code} {body}", retryable=retryable)
    try:
        payload = response.json()
    except ValueError as e:
        raise ProviderError(provider, f"{action} returned invalid JSON", e, retryable=False) from e
    if not isinstance(payload, dict):
        raise ProviderError(provider, f"{action} returned a non-object payload", retryable=False)
    return payload


@dataclass
class StageRequest:
    """What a provider needs to run one stage."""
    stage_id: str
    query: str
    query_focus: str = ""
    within_days: int = 7
    search_limit: int = 20


@dataclass
class SearchResult:
    """Output of a completed search."""
    sources: List[SourceRecord] = field(default_factory=list)
    summary: str = ""
    raw: Any = None


@dataclass
class PollResult:
    """State of a remote asynchronous request."""
    status: str
    result: Optional[SearchResult] = None
    error: Optional[str] = None


class SyncProvider(ABC):
    """Provider whose stages complete within the call."""

    name: str = "sync"

    @abstractmethod
    def run_sync(self, request: StageRequest) -> SearchResult:
        """
        Run the search.

        Raises:
            ProviderError on failure
        """
        pass


class AsyncProvider(ABC):
    """Provider that accepts a request and is polled for the result."""

    name: str = "async"

    @abstractmethod
    def start_async(self, request: StageRequest) -> str:
        """
        Submit the request.

        Returns:
            Remote request handle

        Raises:
            ProviderError on failure
        """
        pass

    @abstractmethod
    def poll_async(self, handle: str, stage_id: str) -> PollResult:
        """
        Query a submitted request.

        Raises:
            ProviderError when the status cannot be read
        """
        pass
