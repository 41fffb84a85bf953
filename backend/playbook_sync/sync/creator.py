"""Orphan Clusterer & new SOP drafting.

Orphans are entries with no sufficiently similar SOP. Once enough of them
accumulate in a run they are grouped by theme, and each cluster becomes a
brand-new SOP drafted from its entries.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from playbook_sync.config import ModelTier, settings
from playbook_sync.llm.layer import LLMResponse
from playbook_sync.models.knowledge import KnowledgeEntry
from playbook_sync.models.playbook import NewDocument, OrphanCluster

logger = logging.getLogger(__name__)

_SOP_COUNTER_RE = re.compile(r"^sop-[\w]+-(\d+)")
_MODULE_NUMBER_RE = re.compile(r"module-(\d+)")
_BRACE_VAR_RE = re.compile(r"(?<!`)\{+([a-zA-Z_][a-zA-Z0-9_]*)\}+(?!`)")

CLUSTER_SYSTEM_PROMPT = """You organize unmatched knowledge entries into topic
clusters. Each cluster must represent one coherent, actionable SOP topic.
Only create clusters of 3 or more entries. Assign each cluster to the best-fit
existing module; propose a new module slug (module-<n>-<topic>) only when no
existing module fits. An entry belongs to at most one cluster. If no viable
cluster exists, return an empty list."""

DRAFT_SYSTEM_PROMPT = """You write short, punchy SOPs for a GTM playbook from
knowledge captured on coaching and sales calls.

Writing style:
- Write like a senior operator leaving notes for their team. No fluff.
- Steps: one sentence each. "Do X", not "It's important to do X because Y".
- Key Lessons and Common Mistakes: one sentence each.
- Overview: two sentences max.
- Never use "It's worth noting", "This is crucial", "In practice",
  "It's important to", "Make sure to".
- 150-300 words excluding front-matter. Shorter is better.
- Extract only actionable, non-obvious insights. If two entries say the same
  thing keep the more specific one. 3 great steps beat 7 mediocre ones.
- MDX: wrap any {variable} in backticks.

The slug must be lowercase-hyphenated (e.g. "linkedin-voice-notes")."""

DRAFT_TEMPLATE = """---
id: {doc_id}
title: "SOP {number}: TITLE"
---

# SOP {number}: TITLE

:::info Auto-Generated
This SOP was created from patterns identified across multiple coaching and sales calls.
:::

## Overview
1-2 sentences. What and why.

## Steps
1. **Step Name** — One sentence.

## Key Lessons
- One sentence per lesson.

## Common Mistakes
- One sentence per mistake."""


class ClusterProposal(BaseModel):
    entry_indices: list[int] = Field(description="Indices of the entries in this cluster")
    suggested_module: str = Field(description="Module slug, e.g. module-3-linkedin-outreach")
    suggested_title: str = Field(description="Working title for the new SOP")


class ClusterPlan(BaseModel):
    """LLM output for orphan clustering."""

    clusters: list[ClusterProposal] = Field(default_factory=list)


class DraftedDocument(BaseModel):
    """LLM output for a new SOP."""

    slug: str = Field(description="lowercase-hyphenated slug")
    title: str = Field(description="Full SOP title")
    content: str = Field(min_length=1, description="Complete Markdown including front-matter")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return re.sub(r"-{2,}", "-", slug)


def sanitize_mdx_content(content: str) -> str:
    """Wrap ``{var}``-style placeholders in backticks so MDX does not parse them as JSX.

    Lines inside code fences and placeholders already inside inline code are
    left alone.
    """
    in_fence = False
    result: list[str] = []
    for line in content.split("\n"):
        if line.strip().startswith("```"):
            in_fence = not in_fence
            result.append(line)
            continue
        if in_fence:
            result.append(line)
            continue

        def _wrap(match: re.Match, line: str = line) -> str:
            if line[: match.start()].count("`") % 2 == 1:
                return match.group(0)  # inside inline code
            return f"`{match.group(0)}`"

        result.append(_BRACE_VAR_RE.sub(_wrap, line))
    return "\n".join(result)


def next_counter_seed(known_ids: list[str], floor: int | None = None) -> int:
    """First counter value above every counter observed in existing SOP ids."""
    seed = settings.new_doc_counter_seed if floor is None else floor
    for doc_id in known_ids:
        match = _SOP_COUNTER_RE.match(doc_id)
        if match:
            seed = max(seed, int(match.group(1)) + 1)
    return seed


def module_number(module: str, known_modules: list[str]) -> str:
    """Numeric part of a module slug; unnumbered modules get the next free number."""
    match = _MODULE_NUMBER_RE.search(module)
    if match:
        return match.group(1)
    return str(len(known_modules))


class OrphanClusterer:
    """Clusters orphans and drafts new SOPs."""

    def __init__(
        self,
        llm,
        known_modules: list[str] | None = None,
        docs_root: str | None = None,
        min_cluster_size: int | None = None,
        cluster_tier: ModelTier | None = None,
        draft_tier: ModelTier | None = None,
    ) -> None:
        self.llm = llm
        self.known_modules = list(known_modules or settings.known_modules)
        self.docs_root = (docs_root or settings.docs_root).strip("/")
        self.min_cluster_size = min_cluster_size or settings.min_orphans_for_clustering
        self.cluster_tier = cluster_tier or settings.cluster_tier
        self.draft_tier = draft_tier or settings.draft_tier

    async def cluster(
        self,
        entries: list[KnowledgeEntry],
        known_modules: list[str] | None = None,
    ) -> tuple[list[OrphanCluster], LLMResponse | None]:
        """Group orphans into themed clusters of at least ``min_cluster_size`` entries."""
        if len(entries) < self.min_cluster_size:
            return [], None
        modules = list(known_modules or self.known_modules)

        entries_text = "\n".join(
            f"[{i}] {e.category} | Tags: {', '.join(e.tags or [])} | {e.content[:200]}"
            for i, e in enumerate(entries)
        )
        user_message = (
            "## Existing Modules\n" + "\n".join(modules) + "\n\n"
            f"## Unmatched Entries\n{entries_text}"
        )
        plan, meta = await self.llm.complete_structured(
            messages=[{"role": "user", "content": user_message}],
            model_tier=self.cluster_tier,
            response_model=ClusterPlan,
            system=CLUSTER_SYSTEM_PROMPT,
            max_tokens=1000,
        )

        clusters: list[OrphanCluster] = []
        claimed: set[int] = set()
        for proposal in plan.clusters:
            indices = [
                i for i in dict.fromkeys(proposal.entry_indices)
                if 0 <= i < len(entries) and i not in claimed
            ]
            module = slugify(proposal.suggested_module)
            if len(indices) < self.min_cluster_size or not module:
                logger.info(
                    "Dropping cluster '%s' (%d valid entries, module '%s')",
                    proposal.suggested_title, len(indices), proposal.suggested_module,
                )
                continue
            claimed.update(indices)
            clusters.append(OrphanCluster(
                entries=[entries[i] for i in indices],
                suggested_module=module,
                suggested_title=proposal.suggested_title.strip() or "Untitled SOP",
            ))
        return clusters, meta

    async def draft_new_document(
        self,
        cluster: OrphanCluster,
        known_ids: list[str],
        counter: int,
    ) -> tuple[NewDocument, LLMResponse]:
        """Draft a complete SOP for a cluster.

        ``counter`` disambiguates the id; it is bumped past any id that
        already exists.
        """
        number = module_number(cluster.suggested_module, self.known_modules)
        prefix = f"sop-{number}-{counter}"

        entries_text = "\n\n".join(
            f"[{e.category}/{e.speaker}] {e.content}\nContext: {e.context or 'N/A'}"
            for e in cluster.entries
        )
        user_message = (
            f"## Template\n```markdown\n"
            f"{DRAFT_TEMPLATE.format(doc_id=f'{prefix}-SLUG', number=f'{number}.{counter}')}\n```\n\n"
            f"## Existing SOP ids (do not reuse)\n{', '.join(known_ids) or 'none'}\n\n"
            f"## Knowledge Entries\n{entries_text}\n\n"
            f"## Suggested Title: {cluster.suggested_title}"
        )
        drafted, meta = await self.llm.complete_structured(
            messages=[{"role": "user", "content": user_message}],
            model_tier=self.draft_tier,
            response_model=DraftedDocument,
            system=DRAFT_SYSTEM_PROMPT,
            max_tokens=2000,
        )

        slug = slugify(drafted.slug) or slugify(drafted.title) or "untitled"
        taken = set(known_ids)
        doc_id = f"{prefix}-{slug}"
        while doc_id in taken:
            counter += 1
            doc_id = f"sop-{number}-{counter}-{slug}"

        content = sanitize_mdx_content(drafted.content)
        # The model was told the prefix; make the front-matter id agree with the path
        content = re.sub(r"(?m)^(id:\s*)(.+)$", lambda m: f"{m.group(1)}{doc_id}", content, count=1)

        document = NewDocument(
            path=f"{self.docs_root}/{cluster.suggested_module}/{doc_id}.md",
            title=drafted.title.strip() or cluster.suggested_title,
            doc_id=doc_id,
            module=cluster.suggested_module,
            content=content,
            index_entry=doc_id,
        )
        return document, meta
