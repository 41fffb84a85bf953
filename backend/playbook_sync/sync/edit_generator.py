"""Edit Synthesizer — one coherent edit per enriched SOP.

All entries that enrich the same document are merged into a single edit so
the document gets one insertion per run instead of a pile of fragments.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from playbook_sync.config import ModelTier, settings
from playbook_sync.llm.layer import LLMResponse
from playbook_sync.models.knowledge import KnowledgeEntry
from playbook_sync.sync.classifier import MAX_DOCUMENT_CHARS

SYSTEM_PROMPT = """You edit SOPs in a GTM playbook. Write like a senior operator
leaving notes for their team: direct, no filler, one sentence per bullet or step.

You will receive an SOP, a target section, and knowledge entries that add
detail to that section. Produce ONE edit:

- insert_after: a line copied verbatim from the SOP (usually the last line of
  the target section or its heading). The new content is inserted right
  after it.
- new_content: Markdown to insert. Match the surrounding format (bullets stay
  bullets, numbered steps continue the numbering). Merge overlapping entries.
  Never repeat what the SOP already says. Wrap any {variable} in backticks.
- summary: one line describing the change, for the commit log."""


class GeneratedEdit(BaseModel):
    """LLM output for an SOP edit. Untrusted: the anchor may not exist verbatim."""

    insert_after: str = Field(description="Line from the SOP after which to insert")
    new_content: str = Field(description="Markdown content to insert")
    summary: str = Field(default="", description="One-line change summary")

    @field_validator("insert_after", "new_content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @property
    def anchor(self) -> str:
        return self.insert_after


class EditGenerator:
    """Wraps the edit-synthesis LLM call."""

    def __init__(self, llm, model_tier: ModelTier | None = None) -> None:
        self.llm = llm
        self.model_tier = model_tier or settings.edit_tier

    async def synthesize_edit(
        self,
        entries: list[KnowledgeEntry],
        document_text: str,
        document_title: str,
        section: str,
    ) -> tuple[GeneratedEdit, LLMResponse]:
        entries_text = "\n\n".join(
            f"[{e.category}] {e.content}\nContext: {e.context or 'N/A'}" for e in entries
        )
        user_message = (
            f"## SOP: {document_title}\n\n"
            f"{document_text[:MAX_DOCUMENT_CHARS]}\n\n"
            f"## Target Section\n{section}\n\n"
            f"## Knowledge Entries ({len(entries)})\n{entries_text}"
        )
        return await self.llm.complete_structured(
            messages=[{"role": "user", "content": user_message}],
            model_tier=self.model_tier,
            response_model=GeneratedEdit,
            system=SYSTEM_PROMPT,
            max_tokens=1500,
        )
