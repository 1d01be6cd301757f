"""Combine completed stage output into one source list and summary."""

import logging
from typing import Dict, List, Optional, Tuple

from scout.research.models import STATUS_COMPLETED, SourceRecord, Stage
from scout.research.stages import UNKNOWN_STAGE_PRIORITY, stage_priority_map

logger = logging.getLogger(__name__)


def order_stages(stages: List[Stage], priority: Optional[Dict[str, int]] = None) -> List[Stage]:
    """Stages by priority; unknown ids last, ties keep their original order."""
    priority = priority if priority is not None else stage_priority_map()
    return sorted(stages, key=lambda s: priority.get(s.stage_id, UNKNOWN_STAGE_PRIORITY))


def aggregate(stages: List[Stage], priority: Optional[Dict[str, int]] = None) -> Tuple[List[SourceRecord], str]:
    """
    Merge sources and summaries of completed stages.

    Sources are deduplicated by URL, keeping the record from the
    highest-priority stage. Summaries are labelled with their stage id and
    joined by blank lines in the same order.

    Returns:
        Tuple of (sources, summary)
    """
    sources: List[SourceRecord] = []
    seen_urls = set()
    blocks: List[str] = []
    duplicates = 0

    for stage in order_stages(stages, priority):
        if stage.status != STATUS_COMPLETED:
            continue
        for source in stage.sources or []:
            if source.url in seen_urls:
                duplicates += 1
                continue
            seen_urls.add(source.url)
            sources.append(source)
        if stage.summary:
            blocks.append(f"--- {stage.stage_id} ---\n{stage.summary}")

    if duplicates:
        logger.info(f"Aggregated {len(sources)} sources ({duplicates} duplicate URLs dropped)")

    return sources, "\n\n".join(blocks)
