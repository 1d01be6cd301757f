"""
Tests for candidate validation.

Each case builds a raw extractor candidate and checks whether it is admitted,
how it is normalized, or why it is rejected.
"""

import pytest

from scout.pipeline.models import DEFAULT_PROFIT_MECHANISM, STATUS_SPECULATIVE, STATUS_VERIFIED
from scout.pipeline.validator import (
    MODE_SPECULATIVE,
    MODE_STRICT,
    REJECT_FUNDING_CONTEXT,
    REJECT_MISSING_FIELDS,
    REJECT_NO_MONEY_EXCERPT,
    REJECT_NO_MONEY_SIGNAL,
    REJECT_NO_PROOF_SOURCES,
    REJECT_NOT_OBJECT,
    REJECT_SELF_BLOG,
    REJECT_UNCORROBORATED,
    REJECT_UNTRUSTED_SOURCES,
    assign_id,
    coerce_iso_date,
    normalize_candidate,
    rank_candidates,
    slugify,
    validate_candidates,
)

TODAY = "2026-01-05"


def candidate(title="Acme hits $5k MRR", sources=None, **extra):
    c = {
        "title": title,
        "date": "2026-01-03",
        "summary": "An AI support agent sold to small shops.",
        "description": "The founder built an autonomous support agent and charges a monthly fee.",
        "profitMechanisms": ["SaaS subscription"],
        "tags": ["support"],
        "proofSources": sources if sources is not None else [
            {"label": "Launch video", "url": "https://youtube.com/watch?v=abc", "excerpt": "we hit $5,000 MRR"},
        ],
    }
    c.update(extra)
    return c


def allowed(c):
    return {s["url"] for s in c["proofSources"]}


def reason_for(c, mode=MODE_STRICT, allowed_urls=None):
    if allowed_urls is None:
        allowed_urls = allowed(c)
    result = validate_candidates([c], allowed_urls, mode, TODAY, set())
    return result.warnings[0]["reason"] if result.warnings else None


# ======================================================================
# Helpers
# ======================================================================

class TestHelpers:
    """Tests for slugs, dates and ids."""

    def test_slugify(self):
        """Dollar signs are spelled out and punctuation collapsed."""
        assert slugify("Acme hits $5k MRR!") == "acme-hits-dollars-5k-mrr"

    def test_slug_length_capped(self):
        """Slugs never exceed 90 characters."""
        assert len(slugify("word " * 50)) <= 90

    def test_coerce_iso_date(self):
        """Non-ISO dates fall back."""
        assert coerce_iso_date("2026-01-02", TODAY) == "2026-01-02"
        assert coerce_iso_date("Jan 2, 2026", TODAY) == TODAY
        assert coerce_iso_date(None, TODAY) == TODAY

    def test_assign_id_collision_suffix(self):
        """Colliding ids get -2, -3 suffixes."""
        existing = {"2026-01-03-acme-hits-dollars-5k-mrr"}

        first = assign_id("2026-01-03", "Acme hits $5k MRR", existing)
        second = assign_id("2026-01-03", "Acme hits $5k MRR", existing)

        assert first == "2026-01-03-acme-hits-dollars-5k-mrr-2"
        assert second == "2026-01-03-acme-hits-dollars-5k-mrr-3"

    def test_assign_id_empty_slug(self):
        """Titles without slug characters still get an id."""
        new_id = assign_id("2026-01-03", "!!!", set())
        assert new_id.startswith("2026-01-03-")
        assert len(new_id) > len("2026-01-03-")


# ======================================================================
# Acceptance and status
# ======================================================================

class TestAcceptance:
    """Tests for admitted candidates."""

    def test_single_tier1_source_is_speculative_in_strict_mode(self):
        """Strong evidence from one source is not enough for verified."""
        c = candidate()
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert cs is not None
        assert cs.status == STATUS_SPECULATIVE
        assert cs.id == "2026-01-03-acme-hits-dollars-5k-mrr"

    def test_two_sources_with_money_excerpt_is_verified(self):
        """Two surviving sources and a currency excerpt make a verified case study."""
        c = candidate(sources=[
            {"label": "Video", "url": "https://youtube.com/watch?v=abc", "excerpt": "we hit $5,000 MRR"},
            {"label": "Repo", "url": "https://github.com/acme/agent"},
        ])
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert cs.status == STATUS_VERIFIED

    def test_claimed_status_is_ignored(self):
        """A candidate cannot promote itself to verified."""
        c = candidate(status="verified")
        cs = normalize_candidate(c, allowed(c), MODE_SPECULATIVE, TODAY, set())

        assert cs.status == STATUS_SPECULATIVE

    def test_title_injection_from_excerpt_after_tier3_drop(self):
        """Tier 3 sources are dropped and the excerpt amount is added to the title."""
        c = candidate(title="Solo app reaches 2.3k MRR", sources=[
            {"label": "Interview", "url": "https://youtube.com/watch?v=xyz", "excerpt": "...hit $2,300 MRR..."},
            {"label": "Clip", "url": "https://tiktok.com/@solo/video/1", "excerpt": "$2,300 a month"},
        ])
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert cs is not None
        assert "$2,300" in cs.title
        assert cs.proof_urls == ["https://youtube.com/watch?v=xyz"]
        assert cs.status == STATUS_SPECULATIVE

    def test_title_with_amount_is_unchanged(self):
        """Titles that already carry a $ amount are left alone."""
        c = candidate()
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert cs.title == "Acme hits $5k MRR"

    def test_speculative_shorthand_with_tier1_platform(self):
        """Speculative mode accepts a shorthand amount when a platform source backs it."""
        c = candidate(title="Agent bot earns 100k per year", sources=[
            {"label": "Repo", "url": "https://github.com/acme/bot"},
        ])
        cs = normalize_candidate(c, allowed(c), MODE_SPECULATIVE, TODAY, set())

        assert cs is not None
        assert cs.title.endswith("$100k")
        assert cs.status == STATUS_SPECULATIVE

    def test_speculative_two_domains_corroborate(self):
        """Two distinct domains stand in for a currency excerpt."""
        c = candidate(title="Acme earns 40k MRR", sources=[
            {"label": "Launch", "url": "https://acme.ai/launch"},
            {"label": "News", "url": "https://news.example.com/acme"},
        ])
        cs = normalize_candidate(c, allowed(c), MODE_SPECULATIVE, TODAY, set())

        assert cs is not None
        assert "$40k" in cs.title

    def test_excerpt_backfilled_from_snippet(self):
        """A missing excerpt is filled from the search snippet of its URL."""
        c = candidate(sources=[{"label": "Video", "url": "https://youtube.com/watch?v=abc"}])
        cs = normalize_candidate(
            c, allowed(c), MODE_STRICT, TODAY, set(),
            url_snippets={"https://youtube.com/watch?v=abc": "made $900 in sales"},
        )

        assert cs is not None
        assert cs.proof_sources[0].excerpt == "made $900 in sales"

    def test_defaults_and_date_fallback(self):
        """Missing mechanisms get a default; bad dates use the fallback."""
        c = candidate(date="last week", profitMechanisms=[])
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert cs.date == TODAY
        assert cs.profit_mechanisms == [DEFAULT_PROFIT_MECHANISM]

    def test_tier2_corroborated_by_tier1(self):
        """An X post survives next to a Tier 1 source."""
        c = candidate(sources=[
            {"label": "Post", "url": "https://x.com/acme/status/1", "excerpt": "$5k MRR today"},
            {"label": "Repo", "url": "https://github.com/acme/agent"},
        ])
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set())

        assert "https://x.com/acme/status/1" in cs.proof_urls

    def test_tier2_trusted_by_native_handle_search(self):
        """An X post found by native handle search needs no other corroboration."""
        url = "https://x.com/acme/status/1"
        c = candidate(sources=[{"label": "Post", "url": url, "excerpt": "$5k MRR today"}])
        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set(), trusted_handle_urls={url})

        assert cs is not None
        assert cs.proof_urls == [url]


# ======================================================================
# Rejections
# ======================================================================

class TestRejections:
    """Tests for rejected candidates and their reasons."""

    def test_not_an_object(self):
        """Non-dict items are rejected."""
        assert reason_for("just text", allowed_urls=set()) == REJECT_NOT_OBJECT

    def test_missing_fields(self):
        """Blank descriptions are rejected."""
        assert reason_for(candidate(description="  ")) == REJECT_MISSING_FIELDS

    def test_unlisted_social_url(self):
        """Social URLs not in the search results are dropped by hygiene."""
        c = candidate(sources=[{"label": "Post", "url": "https://x.com/acme/status/9", "excerpt": "$5k"}])
        assert reason_for(c, allowed_urls=set()) == REJECT_NO_PROOF_SOURCES

    def test_non_http_and_unlabelled_sources(self):
        """Sources need a label and an http(s) URL."""
        c = candidate(sources=[
            {"label": "FTP", "url": "ftp://files.acme.ai/report"},
            {"label": "", "url": "https://youtube.com/watch?v=abc", "excerpt": "$5k"},
        ])
        assert reason_for(c) == REJECT_NO_PROOF_SOURCES

    def test_tier3_only(self):
        """Candidates backed only by Tier 3 platforms are rejected."""
        c = candidate(sources=[
            {"label": "Group", "url": "https://facebook.com/groups/makers/1", "excerpt": "$5,000 MRR"},
        ])
        assert reason_for(c) == REJECT_UNTRUSTED_SOURCES

    def test_uncorroborated_tier2(self):
        """A lone X post without corroboration is rejected."""
        c = candidate(sources=[{"label": "Post", "url": "https://x.com/acme/status/1", "excerpt": "$5k MRR"}])
        assert reason_for(c) == REJECT_UNTRUSTED_SOURCES

    def test_series_a_funding(self):
        """Fundraising is not revenue."""
        c = candidate(sources=[
            {"label": "News", "url": "https://youtube.com/watch?v=abc", "excerpt": "raised $5M in a Series A"},
            {"label": "Repo", "url": "https://github.com/acme/agent"},
        ])
        assert reason_for(c) == REJECT_FUNDING_CONTEXT

    @pytest.mark.parametrize("mode", [MODE_STRICT, MODE_SPECULATIVE])
    @pytest.mark.parametrize("excerpt", [
        "Acme closed a $3M seed led by Foo",
        "Acme announced a $12M Series-A today",
    ])
    def test_seed_and_hyphenated_series(self, mode, excerpt):
        """Seed and Series-A money is rejected in both modes."""
        c = candidate(sources=[{"label": "News", "url": "https://youtube.com/watch?v=abc", "excerpt": excerpt}])
        assert reason_for(c, mode=mode) == REJECT_FUNDING_CONTEXT

    def test_url_without_host(self):
        """An http(s) prefix alone does not make a usable URL."""
        c = candidate(sources=[{"label": "x", "url": "https:///", "excerpt": "we made $5,000 last month"}])

        assert normalize_candidate(c, set(), MODE_STRICT, TODAY, set()) is None
        assert reason_for(c, allowed_urls=set()) == REJECT_NO_PROOF_SOURCES

    def test_handle_search_trusts_only_x_posts(self):
        """A Reddit link returned by the X search stage still needs corroboration."""
        url = "https://reddit.com/r/x/comments/1"
        c = candidate(sources=[{"label": "Thread", "url": url, "excerpt": "$5,000 MRR"}])

        cs = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, set(), trusted_handle_urls={url})

        assert cs is None

    def test_speculative_handle_corroboration_needs_x_post(self):
        """Without a money excerpt, a non-X handle-search URL does not corroborate."""
        url = "https://acme.ai/launch"
        c = candidate(title="Acme earns 40k MRR", sources=[{"label": "Launch", "url": url}])
        result = validate_candidates(
            [c], allowed(c), MODE_SPECULATIVE, TODAY, set(), trusted_handle_urls={url},
        )

        assert result.accepted == []
        assert result.warnings[0]["reason"] == REJECT_UNCORROBORATED

    def test_strict_requires_money_excerpt(self):
        """Strict mode ignores free-text amounts."""
        c = candidate(sources=[{"label": "Repo", "url": "https://github.com/acme/agent"}])
        assert reason_for(c, mode=MODE_STRICT) == REJECT_NO_MONEY_EXCERPT

    def test_speculative_requires_some_amount(self):
        """Speculative mode still needs a money signal somewhere."""
        c = candidate(title="Acme agent launches", sources=[{"label": "Repo", "url": "https://github.com/acme/agent"}])
        assert reason_for(c, mode=MODE_SPECULATIVE) == REJECT_NO_MONEY_SIGNAL

    def test_speculative_single_unlisted_domain(self):
        """A shorthand amount on one non-platform domain is not enough."""
        c = candidate(title="Acme earns 40k MRR", sources=[{"label": "Launch", "url": "https://acme.ai/launch"}])
        assert reason_for(c, mode=MODE_SPECULATIVE) == REJECT_UNCORROBORATED

    def test_self_published_blog_alone(self):
        """A single self-published blog post is rejected."""
        c = candidate(sources=[
            {"label": "Post", "url": "https://medium.com/@acme/how-we-hit-5k", "excerpt": "we hit $5,000 MRR"},
        ])
        assert reason_for(c) == REJECT_SELF_BLOG


# ======================================================================
# Batches
# ======================================================================

class TestValidateCandidates:
    """Tests for batch validation."""

    def test_warnings_record_rejections(self):
        """Each rejection adds a warning with index, title and reason."""
        good = candidate()
        bad = candidate(title="Funding news", sources=[
            {"label": "Group", "url": "https://facebook.com/groups/x/1", "excerpt": "$1"},
        ])
        result = validate_candidates(
            [good, bad], allowed(good) | allowed(bad), MODE_STRICT, TODAY, set(),
        )

        assert len(result.accepted) == 1
        assert result.warnings == [{
            "type": "rejected_candidate", "index": 1, "title": "Funding news", "reason": REJECT_UNTRUSTED_SOURCES,
        }]
        assert result.rejection_counts() == {REJECT_UNTRUSTED_SOURCES: 1}

    def test_batch_ids_are_unique(self):
        """Two identical candidates in one batch get distinct ids."""
        c = candidate()
        result = validate_candidates([c, dict(c)], allowed(c), MODE_STRICT, TODAY, set())

        ids = [cs.id for cs in result.accepted]
        assert ids == ["2026-01-03-acme-hits-dollars-5k-mrr", "2026-01-03-acme-hits-dollars-5k-mrr-2"]

    def test_normalization_is_deterministic(self):
        """Same input and existing ids give the same output."""
        c = candidate()
        first = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, {"other"})
        second = normalize_candidate(c, allowed(c), MODE_STRICT, TODAY, {"other"})

        assert first.to_dict() == second.to_dict()

    def test_rank_claimed_verified_first(self):
        """Candidates claiming verified are tried first, otherwise order is kept."""
        a = {"title": "a", "status": "speculative"}
        b = {"title": "b", "status": "verified"}
        c = {"title": "c"}

        assert [x["title"] for x in rank_candidates([a, b, c])] == ["b", "a", "c"]

    @pytest.mark.parametrize("mode", [MODE_STRICT, MODE_SPECULATIVE])
    def test_empty_batch(self, mode):
        """No candidates, no warnings."""
        result = validate_candidates([], set(), mode, TODAY, set())
        assert result.accepted == [] and result.warnings == []
