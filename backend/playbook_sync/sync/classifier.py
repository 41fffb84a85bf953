"""Classifier — decides how a knowledge entry relates to its best-matching SOP.

Only invoked when the entry's embedding similarity to the document clears
the similarity threshold; below it the entry is orphaned without a call.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from playbook_sync.config import ModelTier, settings
from playbook_sync.llm.layer import LLMResponse
from playbook_sync.models.knowledge import KnowledgeEntry

ClassifiedAction = Literal["enrich", "redundant", "tangential"]

# Documents are truncated before being sent; SOPs are short, this is a ceiling
MAX_DOCUMENT_CHARS = 30_000

SYSTEM_PROMPT = """You maintain a GTM playbook made of short, punchy SOPs.
You are given one knowledge entry captured from a coaching or sales call and
the SOP it is most similar to. Decide what to do with the entry:

- enrich: the entry adds an actionable, non-obvious detail the SOP does not
  already contain. Name the SOP section (its heading text) it belongs in.
- redundant: the SOP already says this, in substance.
- tangential: related to the SOP's topic but does not belong in it.

Be strict. Most entries are redundant or tangential."""


class Classification(BaseModel):
    """LLM output for entry-vs-document classification."""

    action: ClassifiedAction = Field(description="enrich, redundant or tangential")
    rationale: str = Field(default="", description="One sentence explaining the decision")
    target_section: str | None = Field(
        default=None,
        description="Heading of the SOP section to enrich (only for action=enrich)",
    )


class EntryClassifier:
    """Wraps the classification LLM call."""

    def __init__(self, llm, model_tier: ModelTier | None = None) -> None:
        self.llm = llm
        self.model_tier = model_tier or settings.classifier_tier

    async def classify(
        self,
        entry: KnowledgeEntry,
        document_text: str,
        document_title: str,
    ) -> tuple[Classification, LLMResponse]:
        tags = ", ".join(entry.tags or []) or "none"
        user_message = (
            f"## SOP: {document_title}\n\n"
            f"{document_text[:MAX_DOCUMENT_CHARS]}\n\n"
            f"## Knowledge Entry\n"
            f"Category: {entry.category}\n"
            f"Tags: {tags}\n"
            f"Content: {entry.content}\n"
            f"Context: {entry.context or 'N/A'}"
        )
        result, meta = await self.llm.complete_structured(
            messages=[{"role": "user", "content": user_message}],
            model_tier=self.model_tier,
            response_model=Classification,
            system=self.llm.build_cached_system(SYSTEM_PROMPT),
            max_tokens=500,
        )
        if result.action != "enrich":
            result.target_section = None
        return result, meta
