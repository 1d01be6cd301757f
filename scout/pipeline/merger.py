"""
Merge newly accepted case studies into the existing dataset.

A candidate is skipped when it shares any proof URL, or its product name,
with an item already in the dataset or accepted earlier in the same batch.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional, Set

from scout.pipeline.models import CaseStudy

logger = logging.getLogger(__name__)

_REVENUE_VERB_RE = re.compile(r"^(.+?)\s+(?:reaches|hits|makes|earns|generates|gets)\s+\$", re.IGNORECASE)
_LEADING_WORDS_RE = re.compile(r"^([A-Za-z0-9][\w.\-]*(?:\s+[A-Za-z0-9][\w.\-]*){0,2})")


def extract_product_name(title: str) -> str:
    """
    Heuristic product name from a title, lowercased.

    - text before the first colon ("Acme: $5k MRR" -> "acme")
    - else text before a revenue verb followed by '$' ("Acme hits $5k" -> "acme")
    - else the first one to three words
    """
    title = (title or "").strip()
    if ":" in title:
        head = title.split(":", 1)[0].strip()
        if head:
            return head.lower()

    m = _REVENUE_VERB_RE.match(title)
    if m:
        return m.group(1).strip().lower()

    m = _LEADING_WORDS_RE.match(title)
    if m:
        return m.group(1).strip().lower()

    return title[:30].strip().lower()


def sort_dataset(dataset: List[CaseStudy]) -> List[CaseStudy]:
    """Newest first; ties broken by id for a stable order."""
    return sorted(sorted(dataset, key=lambda cs: cs.id), key=lambda cs: cs.date, reverse=True)


def within_window(case_study: CaseStudy, today: date, within_days: int) -> bool:
    """True if the case study date is no older than within_days (0 = no limit)."""
    if within_days <= 0:
        return True
    try:
        cs_date = date.fromisoformat(case_study.date)
    except ValueError:
        return False
    return cs_date >= today - timedelta(days=within_days)


@dataclass
class MergeResult:
    dataset: List[CaseStudy] = field(default_factory=list)
    added: List[CaseStudy] = field(default_factory=list)
    duplicate_urls: int = 0
    duplicate_products: int = 0
    over_limit: int = 0

    @property
    def added_ids(self) -> List[str]:
        return [cs.id for cs in self.added]


def merge(existing: List[CaseStudy], accepted: List[CaseStudy], max_new: Optional[int] = None) -> MergeResult:
    """
    Add accepted case studies that are new by URL and product name.

    Args:
        existing: Current dataset
        accepted: Validated candidates, in preference order
        max_new: Cap on additions (None = no cap)

    Returns:
        MergeResult with the merged dataset sorted newest first
    """
    seen_urls: Set[str] = {url for cs in existing for url in cs.proof_urls}
    seen_products: Set[str] = {extract_product_name(cs.title) for cs in existing}
    result = MergeResult()

    for cs in accepted:
        if max_new is not None and len(result.added) >= max_new:
            result.over_limit += 1
            continue
        if any(url in seen_urls for url in cs.proof_urls):
            result.duplicate_urls += 1
            continue
        product = extract_product_name(cs.title)
        if product and product in seen_products:
            result.duplicate_products += 1
            continue

        result.added.append(cs)
        seen_urls.update(cs.proof_urls)
        if product:
            seen_products.add(product)

    result.dataset = sort_dataset(list(existing) + result.added)
    logger.info(
        f"Merged {len(result.added)} new case studies into {len(existing)} "
        f"(skipped {result.duplicate_urls} by URL, {result.duplicate_products} by product, "
        f"{result.over_limit} over limit)"
    )
    return result
