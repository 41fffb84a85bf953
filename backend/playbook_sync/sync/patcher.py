"""Patcher — anchor-based insertion of generated content into an SOP.

Anchors come from a language model working on a possibly stale copy of the
document, so they are not guaranteed to appear verbatim. Strategies, first
success wins:

1. exact substring → insert right after the anchor
2. fuzzy line match → containment either way, else best word-set Jaccard
   score at or above the threshold → insert after that line
3. append to the end of the document
"""

from __future__ import annotations

import logging

from playbook_sync.config import settings
from playbook_sync.sync.edit_generator import GeneratedEdit

logger = logging.getLogger(__name__)


def jaccard(a: set[str], b: set[str]) -> float:
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def find_anchor_line(lines: list[str], anchor: str, threshold: float) -> int | None:
    """Index of the line best matching ``anchor``, or None if nothing qualifies."""
    anchor_lower = anchor.lower().strip()
    if not anchor_lower:
        return None
    anchor_words = set(anchor_lower.split())

    best_score = 0.0
    best_idx: int | None = None
    for i, line in enumerate(lines):
        line_lower = line.lower().strip()
        if not line_lower:
            continue
        if anchor_lower in line_lower or line_lower in anchor_lower:
            return i
        score = jaccard(anchor_words, set(line_lower.split()))
        if score > best_score:
            best_score = score
            best_idx = i

    if best_idx is not None and best_score >= threshold:
        logger.info("Fuzzy anchor match (score %.2f): %s", best_score, lines[best_idx][:80])
        return best_idx
    return None


def insert_content(content: str, anchor: str, new_content: str, fuzzy_threshold: float | None = None) -> str:
    """Insert ``new_content`` after ``anchor`` in ``content`` (see module docstring)."""
    threshold = settings.fuzzy_match_threshold if fuzzy_threshold is None else fuzzy_threshold

    if anchor:
        idx = content.find(anchor)
        if idx != -1:
            point = idx + len(anchor)
            return content[:point] + "\n\n" + new_content + "\n" + content[point:]

    logger.warning("Exact anchor not found, trying fuzzy match: %s", anchor[:80])
    lines = content.split("\n")
    line_idx = find_anchor_line(lines, anchor, threshold)
    if line_idx is not None:
        before = "\n".join(lines[: line_idx + 1])
        after = "\n".join(lines[line_idx + 1:])
        return before + "\n\n" + new_content + "\n" + after

    logger.warning("No suitable anchor found, appending to end")
    return content + "\n\n" + new_content + "\n"


def apply_edit(content: str, edit: GeneratedEdit, fuzzy_threshold: float | None = None) -> str:
    """Apply a generated edit to SOP text."""
    return insert_content(content, edit.anchor, edit.new_content, fuzzy_threshold)
