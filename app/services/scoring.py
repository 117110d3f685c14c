"""Opportunity scoring engine.

Pure functions over one keyword's signals. Three category scorers run
independently and a fixed priority picks the winner:

    content_gap > quick_win > ctr_optimization

A category only wins when its score is the strict positive maximum of the
categories below it in priority, so ties fall through to the lower-priority
category. Datastore reads happen before scoring and arrive here as a
`LedgerSnapshot`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Literal

OpportunityType = Literal["quick_win", "ctr_optimization", "content_gap"]

QUICK_WIN: OpportunityType = "quick_win"
CTR_OPTIMIZATION: OpportunityType = "ctr_optimization"
CONTENT_GAP: OpportunityType = "content_gap"

MAX_SCORE = 100
COVERED_KEYWORD_PENALTY = 30
PAGE_ONE_MAX_POSITION = 10.0
DEFAULT_CLUSTER = "General"

COMPETITION_BANDS = ("LOW", "MEDIUM", "HIGH", "UNKNOWN")

# First match wins; order matters ("best how to guide" is How-To).
TOPIC_CLUSTER_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("How-To", ("how to", "tutorial", "guide", "step")),
    ("Comparison", ("best", "top", "review", "vs")),
    ("Explainer", ("what is", "meaning", "definition")),
    ("Analysis", ("why", "reason", "cause")),
    ("Resource", ("example", "template", "sample")),
    ("Tips", ("tip", "trick", "hack")),
    ("Troubleshooting", ("mistake", "problem", "issue", "fix")),
)

_QUESTION_PREFIXES = ("what", "how", "why", "is ", "can ")


def normalize_keyword(keyword: str) -> str:
    """Case-fold and collapse whitespace; the ledger's identity key."""
    return " ".join(keyword.lower().split())


def normalize_competition(value: str | None) -> str:
    if not value:
        return "UNKNOWN"
    upper = value.strip().upper()
    return upper if upper in COMPETITION_BANDS else "UNKNOWN"


@dataclass(frozen=True, slots=True)
class PriorKeyword:
    """Stored ledger values for a keyword, as of the start of an ingest run."""

    search_volume: int | None = None
    competition: str | None = None
    competition_index: int | None = None
    current_position: float | None = None
    opportunity_score: int = 0


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Read-only view of a site's ledger and article coverage."""

    keywords: Mapping[str, PriorKeyword] = field(default_factory=dict)
    covered_keywords: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        keywords: Mapping[str, PriorKeyword] | None = None,
        covered_keywords: Iterable[str | None] = (),
    ) -> LedgerSnapshot:
        return cls(
            keywords={normalize_keyword(k): v for k, v in (keywords or {}).items()},
            covered_keywords=frozenset(
                normalize_keyword(k) for k in covered_keywords if k
            ),
        )

    def prior(self, keyword: str) -> PriorKeyword | None:
        return self.keywords.get(normalize_keyword(keyword))

    def is_covered(self, keyword: str) -> bool:
        return normalize_keyword(keyword) in self.covered_keywords


@dataclass(frozen=True, slots=True)
class ConsoleSignals:
    """One Search Console query row. `ctr` is a percentage (0-100)."""

    keyword: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float | None = None


@dataclass(frozen=True, slots=True)
class MarketSignals:
    """One keyword-research idea."""

    keyword: str
    search_volume: int
    competition: str = "UNKNOWN"
    competition_index: int = 0


@dataclass(frozen=True, slots=True)
class CategoryScores:
    quick_win: int = 0
    ctr_optimization: int = 0
    content_gap: int = 0


@dataclass(frozen=True, slots=True)
class Opportunity:
    """Scoring result for the console path; every derived field is set."""

    opportunity_type: OpportunityType | None
    score: int
    reasoning: str
    action: str
    topic_cluster: str
    scores: CategoryScores


@dataclass(frozen=True, slots=True)
class MarketReconciliation:
    """Scoring result for the market path.

    `reclassified` is False when the stored score beat the new content-gap
    score: the caller keeps the stored type, reasoning and action.
    """

    content_gap_score: int
    score: int
    reclassified: bool
    reasoning: str | None
    action: str | None
    topic_cluster: str


def score_quick_win(
    position: float | None,
    impressions: int,
    ctr: float,
    clicks: int,
) -> int:
    """Score a term ranking just off the top (positions 5-20).

    Returns 0 when there is no ranking in the striking band.
    """
    if position is None:
        return 0

    if 5 <= position <= 10:
        score = 40
    elif 10 < position <= 15:
        score = 30
    elif 15 < position <= 20:
        score = 20
    else:
        return 0

    if impressions >= 500:
        score += 30
    elif impressions >= 200:
        score += 25
    elif impressions >= 100:
        score += 20
    elif impressions >= 50:
        score += 15
    else:
        score += 5

    if ctr < 2:
        score += 20
    elif ctr < 5:
        score += 10

    if clicks >= 10:
        score += 10
    elif clicks >= 5:
        score += 5

    return min(score, MAX_SCORE)


def score_ctr_optimization(impressions: int, ctr: float, position: float | None) -> int:
    """Score a title/snippet problem: many impressions, few clicks.

    Non-decreasing in impressions and non-increasing in ctr. Zero below 100
    impressions or at a healthy ctr (>= 5%).
    """
    if impressions < 100 or ctr >= 5:
        return 0

    if impressions >= 1000:
        score = 40
    elif impressions >= 500:
        score = 35
    elif impressions >= 200:
        score = 25
    else:
        score = 15

    if ctr < 1:
        score += 35
    elif ctr < 2:
        score += 25
    elif ctr < 3:
        score += 15

    if position is not None:
        if position <= 5:
            score += 25
        elif position <= 10:
            score += 15
        elif position <= 20:
            score += 5

    return min(score, MAX_SCORE)


def score_content_gap(
    search_volume: int,
    competition: str | None,
    competition_index: int | None,
    keyword: str,
) -> int:
    """Score unmet search demand: rises with volume, falls with competition."""
    if search_volume >= 10000:
        score = 30
    elif search_volume >= 5000:
        score = 25
    elif search_volume >= 1000:
        score = 20
    elif search_volume >= 500:
        score = 15
    else:
        score = 10

    band = normalize_competition(competition)
    if band == "LOW":
        score += 30
    elif band == "MEDIUM":
        score += 15
    elif band == "HIGH":
        score += 5
    else:
        score += 20

    index = competition_index or 0
    if index <= 10:
        score += 25
    elif index <= 20:
        score += 20
    elif index <= 30:
        score += 15
    elif index <= 50:
        score += 10
    else:
        score += 5

    kw = keyword.strip().lower()
    if kw.startswith(_QUESTION_PREFIXES) or "?" in kw:
        score += 15

    return min(score, MAX_SCORE)


def select_opportunity(scores: CategoryScores) -> tuple[OpportunityType | None, int]:
    """Pick the winning category by priority with strict-inequality tie-breaks."""
    gap, quick, ctr = scores.content_gap, scores.quick_win, scores.ctr_optimization
    if gap > quick and gap > ctr and gap > 0:
        return CONTENT_GAP, gap
    if quick > ctr and quick > 0:
        return QUICK_WIN, quick
    if ctr > 0:
        return CTR_OPTIMIZATION, ctr
    return None, 0


def apply_covered_penalty(
    score: int,
    covered: bool,
    penalty: int = COVERED_KEYWORD_PENALTY,
) -> int:
    """Deprioritize a keyword an article already targets, never below zero."""
    if not covered:
        return max(score, 0)
    return max(score - penalty, 0)


def classify_topic_cluster(keyword: str) -> str:
    """Assign a topic cluster from keyword text alone."""
    kw = keyword.lower()
    for label, patterns in TOPIC_CLUSTER_RULES:
        if any(pattern in kw for pattern in patterns):
            return label
    return DEFAULT_CLUSTER


def is_content_gap_eligible(position: float | None, prior: PriorKeyword | None) -> bool:
    """A console term is a gap candidate only with known demand and off page one."""
    if prior is None or not prior.search_volume or prior.search_volume <= 0:
        return False
    return position is not None and position > PAGE_ONE_MAX_POSITION


def is_ranking_on_page_one(prior: PriorKeyword | None) -> bool:
    return (
        prior is not None
        and prior.current_position is not None
        and prior.current_position <= PAGE_ONE_MAX_POSITION
    )


def _format_position(position: float | None) -> str:
    if position is None:
        return "n/a"
    return f"{position:g}"


def _describe(
    opportunity_type: OpportunityType | None,
    signals: ConsoleSignals,
    search_volume: int | None,
) -> tuple[str, str]:
    position = _format_position(signals.position)
    if opportunity_type == CONTENT_GAP:
        volume = f"{search_volume or 0:,}"
        return (
            f"{volume} monthly searches, position {position}. High-value content gap: "
            "not ranking on page 1 despite search demand.",
            f'Write a comprehensive article targeting "{signals.keyword}" to capture '
            f"{volume} monthly searches.",
        )
    if opportunity_type == QUICK_WIN:
        return (
            f"Position {position} with {signals.impressions} impressions. "
            "A dedicated article could push this to page 1.",
            f"Write a dedicated article targeting this keyword to move from position "
            f"{position} to top 5.",
        )
    if opportunity_type == CTR_OPTIMIZATION:
        return (
            f"{signals.impressions} impressions but only {signals.ctr:g}% CTR at position "
            f"{position}. Better title/meta could double clicks.",
            "Optimize the title tag and meta description for better CTR.",
        )
    return "", ""


def score_console_keyword(
    signals: ConsoleSignals,
    snapshot: LedgerSnapshot,
    *,
    penalty: int = COVERED_KEYWORD_PENALTY,
) -> Opportunity:
    """Score a Search Console row against the site's ledger snapshot."""
    prior = snapshot.prior(signals.keyword)

    content_gap = 0
    if prior is not None and is_content_gap_eligible(signals.position, prior):
        content_gap = score_content_gap(
            prior.search_volume or 0,
            prior.competition,
            prior.competition_index,
            signals.keyword,
        )

    scores = CategoryScores(
        quick_win=score_quick_win(
            signals.position, signals.impressions, signals.ctr, signals.clicks
        ),
        ctr_optimization=score_ctr_optimization(
            signals.impressions, signals.ctr, signals.position
        ),
        content_gap=content_gap,
    )
    opportunity_type, score = select_opportunity(scores)
    reasoning, action = _describe(
        opportunity_type, signals, prior.search_volume if prior else None
    )

    return Opportunity(
        opportunity_type=opportunity_type,
        score=apply_covered_penalty(score, snapshot.is_covered(signals.keyword), penalty),
        reasoning=reasoning,
        action=action,
        topic_cluster=classify_topic_cluster(signals.keyword),
        scores=scores,
    )


def score_market_keyword(
    signals: MarketSignals,
    snapshot: LedgerSnapshot,
    *,
    penalty: int = COVERED_KEYWORD_PENALTY,
) -> MarketReconciliation | None:
    """Re-score a keyword-research idea as a content gap.

    Returns None when the term already ranks on page one; the caller then
    refreshes market metrics only. The stored score is never lowered.
    """
    prior = snapshot.prior(signals.keyword)
    if is_ranking_on_page_one(prior):
        return None

    gap_score = apply_covered_penalty(
        score_content_gap(
            signals.search_volume,
            signals.competition,
            signals.competition_index,
            signals.keyword,
        ),
        snapshot.is_covered(signals.keyword),
        penalty,
    )
    stored_score = prior.opportunity_score if prior else 0
    reclassified = gap_score > 0 and gap_score >= stored_score

    reasoning = action = None
    if reclassified:
        volume = f"{signals.search_volume:,}"
        band = normalize_competition(signals.competition)
        reasoning = (
            f"{volume} monthly searches, {band} competition. "
            "High-value content gap opportunity."
        )
        action = (
            f'Write a comprehensive article targeting "{signals.keyword}" to capture '
            f"{volume} monthly searches."
        )

    return MarketReconciliation(
        content_gap_score=gap_score,
        score=max(gap_score, stored_score),
        reclassified=reclassified,
        reasoning=reasoning,
        action=action,
        topic_cluster=classify_topic_cluster(signals.keyword),
    )
