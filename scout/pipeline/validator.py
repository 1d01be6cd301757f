"""
Candidate validation and normalization.

Extractor output is untrusted. ``normalize_candidate`` admits a candidate
only if it passes, in order:

1. structural check (non-empty title, summary, description)
2. proof-source hygiene (labelled http(s) URLs from the search results,
   or non-social product links)
3. tiered source trust (Tier 3 dropped, Tier 2 kept only when corroborated)
4. excerpt backfill from search snippets
5. monetary evidence (currency token, no fundraising context)
6. status assignment (verified needs 2+ sources and a currency excerpt)
7. self-published blog corroboration (2+ registrable domains)
8. title money injection (title must end up with a currency token)
9. id assignment (``<date>-<slug>``, suffixed -2, -3, ... on collision)

Rejections are silent (None); ``validate_candidates`` collects the reasons
as warnings for the run report.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from scout.pipeline.models import (
    DEFAULT_PROFIT_MECHANISM,
    STATUS_SPECULATIVE,
    STATUS_VERIFIED,
    CaseStudy,
    ProofSource,
)
from scout.pipeline.money import find_currency_token, find_money_token, mentions_funding
from scout.pipeline.source_policy import (
    TIER_1,
    TIER_2,
    TIER_3,
    distinct_domains,
    hostname,
    is_self_published_blog,
    is_social,
    is_tier1_platform,
    is_x_url,
    source_tier,
)

logger = logging.getLogger(__name__)

MODE_STRICT = "strict"
MODE_SPECULATIVE = "speculative"

MAX_SLUG_LENGTH = 90

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)

# Rejection reasons
REJECT_NOT_OBJECT = "not_an_object"
REJECT_MISSING_FIELDS = "missing_required_fields"
REJECT_NO_PROOF_SOURCES = "no_usable_proof_sources"
REJECT_UNTRUSTED_SOURCES = "no_trusted_sources"
REJECT_FUNDING_CONTEXT = "funding_or_valuation_context"
REJECT_NO_MONEY_EXCERPT = "no_currency_excerpt"
REJECT_NO_MONEY_SIGNAL = "no_money_signal"
REJECT_UNCORROBORATED = "insufficient_corroboration"
REJECT_SELF_BLOG = "uncorroborated_self_published_blog"
REJECT_NO_TITLE_AMOUNT = "title_without_amount"


def slugify(text: str) -> str:
    """Lowercase, '$' spelled out, non-alphanumerics collapsed to '-', max 90 chars."""
    slug = text.lower().replace("$", " dollars ")
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


def coerce_iso_date(value: Any, fallback: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    return text if _ISO_DATE_RE.match(text) else fallback


def assign_id(date: str, title: str, existing_ids: Set[str]) -> str:
    """
    Unique id for a case study, registered in existing_ids.

    The same (date, title) against the same existing ids always yields the
    same id.
    """
    slug = slugify(title) or hashlib.sha1(title.encode("utf-8")).hexdigest()[:8]
    base = f"{date}-{slug}"
    candidate = base
    n = 2
    while candidate in existing_ids:
        candidate = f"{base}-{n}"
        n += 1
    existing_ids.add(candidate)
    return candidate


def _clean_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _hygienic_sources(raw: Any, allowed_urls: Set[str]) -> List[ProofSource]:
    """Proof sources with a label and http(s) URL that came from the search or are non-social links."""
    sources = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        label, url = item.get("label"), item.get("url")
        if not isinstance(label, str) or not isinstance(url, str):
            continue
        label, url = label.strip(), url.strip()
        if not label or not url or not _HTTP_RE.match(url) or not hostname(url):
            continue
        kind = item.get("kind") if isinstance(item.get("kind"), str) else None
        if url not in allowed_urls and kind != "website" and is_social(url):
            continue
        excerpt = _text(item.get("excerpt")) or None
        sources.append(ProofSource(label=label, url=url, kind=kind, excerpt=excerpt))
    return sources


def _handle_search_post(url: str, trusted_handle_urls: Set[str]) -> bool:
    return is_x_url(url) and url in trusted_handle_urls


def _tier2_corroborated(url: str, sources: List[ProofSource], trusted_handle_urls: Set[str]) -> bool:
    if _handle_search_post(url, trusted_handle_urls):
        return True
    return any(s.url != url and source_tier(s.url) == TIER_1 for s in sources)


def _trusted_sources(sources: List[ProofSource], trusted_handle_urls: Set[str]) -> List[ProofSource]:
    trusted = []
    for s in sources:
        tier = source_tier(s.url)
        if tier == TIER_3:
            continue
        if tier == TIER_2 and not _tier2_corroborated(s.url, sources, trusted_handle_urls):
            continue
        trusted.append(s)
    return trusted


def _evaluate(
    candidate: Any,
    allowed_urls: Set[str],
    mode: str,
    fallback_date: str,
    existing_ids: Set[str],
    url_snippets: Dict[str, str],
    trusted_handle_urls: Set[str],
) -> Tuple[Optional[CaseStudy], Optional[str]]:
    """Normalize a candidate; returns (case_study, None) or (None, reason)."""
    if not isinstance(candidate, dict):
        return None, REJECT_NOT_OBJECT

    title = _text(candidate.get("title"))
    summary = _text(candidate.get("summary"))
    description = _text(candidate.get("description"))
    if not title or not summary or not description:
        return None, REJECT_MISSING_FIELDS

    sources = _hygienic_sources(candidate.get("proofSources"), allowed_urls)
    if not sources:
        return None, REJECT_NO_PROOF_SOURCES

    sources = _trusted_sources(sources, trusted_handle_urls)
    if not sources:
        return None, REJECT_UNTRUSTED_SOURCES

    for s in sources:
        if not s.excerpt and url_snippets.get(s.url, "").strip():
            s.excerpt = url_snippets[s.url].strip()

    money_source = next((s for s in sources if s.excerpt and find_currency_token(s.excerpt)), None)
    excerpt_token = find_currency_token(money_source.excerpt) if money_source else None
    text_token = find_money_token(f"{title} {summary} {description}")

    if money_source and mentions_funding(money_source.excerpt):
        return None, REJECT_FUNDING_CONTEXT

    if mode == MODE_STRICT:
        if not money_source:
            return None, REJECT_NO_MONEY_EXCERPT
    else:
        if not (excerpt_token or text_token):
            return None, REJECT_NO_MONEY_SIGNAL
        if not money_source:
            corroborated = (
                any(is_tier1_platform(s.url) for s in sources)
                or any(_handle_search_post(s.url, trusted_handle_urls) for s in sources)
                or len(distinct_domains(s.url for s in sources)) >= 2
            )
            if not corroborated:
                return None, REJECT_UNCORROBORATED

    status = STATUS_VERIFIED if len(sources) >= 2 and money_source else STATUS_SPECULATIVE

    if any(is_self_published_blog(s.url) for s in sources):
        if len(distinct_domains(s.url for s in sources)) < 2:
            return None, REJECT_SELF_BLOG

    if not find_currency_token(title):
        token = excerpt_token or text_token
        if token:
            title = f"{title} - {token}"
    if not find_currency_token(title):
        return None, REJECT_NO_TITLE_AMOUNT

    date = coerce_iso_date(candidate.get("date"), fallback_date)
    mechanisms = _clean_strings(candidate.get("profitMechanisms")) or [DEFAULT_PROFIT_MECHANISM]

    return CaseStudy(
        id=assign_id(date, title, existing_ids),
        date=date,
        title=title,
        summary=summary,
        description=description,
        profit_mechanisms=mechanisms,
        tags=_clean_strings(candidate.get("tags")),
        proof_sources=sources,
        status=status,
    ), None


def normalize_candidate(
    candidate: Any,
    allowed_urls: Set[str],
    mode: str,
    fallback_date: str,
    existing_ids: Set[str],
    url_snippets: Optional[Dict[str, str]] = None,
    trusted_handle_urls: Optional[Set[str]] = None,
) -> Optional[CaseStudy]:
    """
    Admit or reject one extractor candidate.

    Args:
        candidate: Raw extractor output item
        allowed_urls: URLs of the aggregated search results
        mode: 'strict' or 'speculative'
        fallback_date: Date used when the candidate's date is not YYYY-MM-DD
        existing_ids: Ids already taken; the new id is added on acceptance
        url_snippets: Search snippet per URL, used to backfill excerpts
        trusted_handle_urls: URLs returned by native-handle search stages

    Returns:
        CaseStudy, or None if the candidate is rejected
    """
    case_study, _ = _evaluate(
        candidate, allowed_urls, mode, fallback_date, existing_ids,
        url_snippets or {}, trusted_handle_urls or set(),
    )
    return case_study


@dataclass
class ValidationResult:
    accepted: List[CaseStudy] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.warnings)

    def rejection_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for w in self.warnings:
            counts[w["reason"]] = counts.get(w["reason"], 0) + 1
        return counts


def rank_candidates(candidates: List[Any]) -> List[Any]:
    """Candidates the extractor marked verified first; otherwise original order."""
    def claimed_verified(c: Any) -> int:
        return 0 if isinstance(c, dict) and c.get("status") == STATUS_VERIFIED else 1
    return sorted(candidates, key=claimed_verified)


def validate_candidates(
    candidates: List[Any],
    allowed_urls: Set[str],
    mode: str,
    fallback_date: str,
    existing_ids: Set[str],
    url_snippets: Optional[Dict[str, str]] = None,
    trusted_handle_urls: Optional[Set[str]] = None,
) -> ValidationResult:
    """Normalize a batch, recording a warning for each rejected candidate."""
    result = ValidationResult()
    snippets = url_snippets or {}
    trusted = trusted_handle_urls or set()

    for index, candidate in enumerate(candidates):
        case_study, reason = _evaluate(
            candidate, allowed_urls, mode, fallback_date, existing_ids, snippets, trusted
        )
        if case_study is not None:
            result.accepted.append(case_study)
            continue
        title = candidate.get("title") if isinstance(candidate, dict) else None
        result.warnings.append({
            "type": "rejected_candidate",
            "index": index,
            "title": title if isinstance(title, str) else None,
            "reason": reason,
        })

    if candidates:
        logger.info(
            f"Validated {len(candidates)} candidates: {len(result.accepted)} accepted, "
            f"{result.rejected_count} rejected {result.rejection_counts()}"
        )
    return result
