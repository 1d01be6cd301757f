"""
Research stage catalogue and query builders.

Each stage pairs a provider with a query angle. Priority orders stage output
during aggregation (lower = earlier); stage ids not in the catalogue sort last.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

# Bump when default prompts or query logic change; recorded on every job.
SCOUT_CONFIG_VERSION = 2

PROVIDER_GROK = "grok"
PROVIDER_PERPLEXITY = "perplexity"
PROVIDER_YOUTUBE = "youtube"

PROVIDERS = (PROVIDER_GROK, PROVIDER_PERPLEXITY, PROVIDER_YOUTUBE)

# Providers whose stages complete within the start invocation
SYNC_PROVIDERS = frozenset({PROVIDER_GROK, PROVIDER_YOUTUBE})

UNKNOWN_STAGE_PRIORITY = 999


@dataclass(frozen=True)
class StageDefinition:
    """A research stage in the catalogue."""
    stage_id: str
    provider: str
    label: str
    query_focus: str
    priority: int
    enabled: bool = True
    # Results come from the provider's own social-handle index
    native_handle_search: bool = False

    @property
    def is_async(self) -> bool:
        return self.provider not in SYNC_PROVIDERS


DEFAULT_RESEARCH_STAGES: List[StageDefinition] = [
    StageDefinition(
        stage_id="grok-x-search",
        provider=PROVIDER_GROK,
        label="X/Twitter Indies",
        query_focus="AI agent MRR revenue indie maker solopreneur",
        priority=1,
        native_handle_search=True,
    ),
    StageDefinition(
        stage_id="youtube-podcasts",
        provider=PROVIDER_YOUTUBE,
        label="Podcast Interviews",
        query_focus="AI agent revenue interview indie hacker podcast MRR",
        priority=2,
    ),
    StageDefinition(
        stage_id="hackathon",
        provider=PROVIDER_PERPLEXITY,
        label="Contest Winners",
        query_focus="hackathon winner prize bounty AI agent autonomous",
        priority=3,
    ),
    StageDefinition(
        stage_id="indie-revenue",
        provider=PROVIDER_PERPLEXITY,
        label="Indie Makers",
        query_focus="indie maker revenue milestone MRR AI agent solo founder",
        priority=4,
    ),
    StageDefinition(
        stage_id="youtube-case-study",
        provider=PROVIDER_PERPLEXITY,
        label="Creator Content",
        query_focus="AI agent case study tutorial revenue YouTube",
        priority=5,
    ),
    StageDefinition(
        stage_id="news-roundup",
        provider=PROVIDER_PERPLEXITY,
        label="Tech News",
        query_focus="autonomous agent revenue news profit AI",
        priority=6,
    ),
]


def stage_priority_map(stages: Optional[Iterable[StageDefinition]] = None) -> Dict[str, int]:
    """Map stage_id -> priority for the given (or default) catalogue."""
    return {s.stage_id: s.priority for s in (stages or DEFAULT_RESEARCH_STAGES)}


def native_handle_stage_ids(stages: Optional[Iterable[StageDefinition]] = None) -> List[str]:
    return [s.stage_id for s in (stages or DEFAULT_RESEARCH_STAGES) if s.native_handle_search]


def select_stages(
    stage_ids: Optional[List[str]] = None,
    provider: Optional[str] = None,
    catalogue: Optional[List[StageDefinition]] = None,
) -> List[StageDefinition]:
    """
    Pick the stages to run.

    Args:
        stage_ids: Explicit stage ids (order of the catalogue is kept)
        provider: Restrict to one provider
        catalogue: Stage catalogue (defaults to DEFAULT_RESEARCH_STAGES)

    Returns:
        Stage definitions sorted by priority

    Raises:
        ValueError: If a requested stage id is not in the catalogue
    """
    catalogue = catalogue or DEFAULT_RESEARCH_STAGES
    known = {s.stage_id for s in catalogue}

    if stage_ids:
        unknown = [sid for sid in stage_ids if sid not in known]
        if unknown:
            raise ValueError(f"Unknown stage ids: {', '.join(unknown)}")
        wanted = set(stage_ids)
        selected = [s for s in catalogue if s.stage_id in wanted]
    else:
        selected = [s for s in catalogue if s.enabled]

    if provider:
        selected = [s for s in selected if s.provider == provider]

    return sorted(selected, key=lambda s: s.priority)


def _compact(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _window_phrase(within_days: int) -> str:
    if within_days <= 1:
        return "today"
    if within_days <= 7:
        return "the last 7 days (this week)"
    return f"the last {within_days} days"


def build_research_query(within_days: int, stage: Optional[StageDefinition] = None) -> str:
    """Deep-research query for a stage; kept under 600 characters."""
    focus = f"Focus: {stage.query_focus}." if stage else ""
    return _compact(f"""
        Find NEW, specific real-world stories {_window_phrase(within_days)} where an AI agent / agentic workflow made money with an explicit $ amount.
        Include only: revenue/MRR/ARR/profit, prize payouts, bounties, or a sale price.
        Must be about a specific project/company/person (not market size, not trends).
        Keywords: MRR, ARR, revenue, profit, bounty, prize, payout, winner, sold for.
        Agent terms: agent, autonomous, workflow, multi-agent.
        Exclude: fundraising, funding, raised, valuation, capex, market cap, stock, earnings.
        Prefer: hackathon/contest winners pages, Devpost, Kaggle, GitHub releases/README, IndieHackers, YouTube case study videos.
        {focus}
    """)


def build_x_search_query() -> str:
    """Query for native X/Twitter search; the date window is passed separately."""
    return _compact("""
        AI agent made money MRR revenue profit indie maker solopreneur
        "hit $" OR "reached $" OR "made $" OR "earning $" OR "generated $"
        "my AI" OR "I built" OR "solo founder" OR "side project"
    """)


def build_youtube_queries() -> List[str]:
    """Podcast and interview searches for the transcript miner."""
    return [
        "Indie Hackers AI agent revenue interview",
        "My First Million AI startup money",
        "Starter Story founder revenue AI",
        "Lex Fridman AI agent interview",
        "All-In Podcast AI agent",
        "TWIML AI agent business",
        "AI agent made money interview",
        "indie hacker revenue MRR AI",
        "solo founder AI agent profit",
        "AI startup revenue podcast",
        "autonomous agent business interview",
    ]


def build_stage_query(stage: StageDefinition, within_days: int) -> str:
    """Query text recorded on the stage for its provider."""
    if stage.provider == PROVIDER_GROK:
        return build_x_search_query()
    if stage.provider == PROVIDER_YOUTUBE:
        return " | ".join(build_youtube_queries())
    return build_research_query(within_days, stage)
