"""Tagged pipeline state projected from the site's pipeline columns.

A site carries three nullable columns (`pipeline_step`, `pipeline_keyword_id`,
`pipeline_article_id`). Only a few combinations are legal; this module maps
them onto explicit variants so code never has to reason about the raw
columns.

    Idle                                 step=None
    AwaitingGeneration(keyword_id)       step="awaiting_generation"
    Generating(keyword_id, article_id)   step="generating"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from app.core.exceptions import InvalidPipelineStateError

PipelineStep = Literal["awaiting_generation", "generating"]

AWAITING_GENERATION: PipelineStep = "awaiting_generation"
GENERATING: PipelineStep = "generating"


@dataclass(frozen=True, slots=True)
class Idle:
    """No automated work in flight; the trigger may claim the site."""

    step = None

    def to_columns(self) -> dict[str, str | None]:
        return {
            "pipeline_step": None,
            "pipeline_keyword_id": None,
            "pipeline_article_id": None,
        }


@dataclass(frozen=True, slots=True)
class AwaitingGeneration:
    """A keyword is claimed and waits for a human or system resume."""

    keyword_id: str
    step = AWAITING_GENERATION

    def to_columns(self) -> dict[str, str | None]:
        return {
            "pipeline_step": AWAITING_GENERATION,
            "pipeline_keyword_id": self.keyword_id,
            "pipeline_article_id": None,
        }


@dataclass(frozen=True, slots=True)
class Generating:
    """The article collaborator produced an article for the claimed keyword."""

    keyword_id: str
    article_id: str
    step = GENERATING

    def to_columns(self) -> dict[str, str | None]:
        return {
            "pipeline_step": GENERATING,
            "pipeline_keyword_id": self.keyword_id,
            "pipeline_article_id": self.article_id,
        }


PipelineState = Idle | AwaitingGeneration | Generating


def pipeline_state_from_columns(
    step: str | None,
    keyword_id: str | None,
    article_id: str | None,
) -> PipelineState:
    """Build the variant for persisted columns, rejecting illegal combinations."""
    if step is None:
        if keyword_id is None and article_id is None:
            return Idle()
    elif step == AWAITING_GENERATION:
        if keyword_id is not None and article_id is None:
            return AwaitingGeneration(keyword_id=keyword_id)
    elif step == GENERATING:
        if keyword_id is not None and article_id is not None:
            return Generating(keyword_id=keyword_id, article_id=article_id)
    raise InvalidPipelineStateError(step, keyword_id, article_id)
