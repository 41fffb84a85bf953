"""Tests for the classification and edit-synthesis LLM wrappers."""

import os
import sys
import asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

import pytest
from pydantic import ValidationError

from playbook_sync.llm.mock_layer import MockLLMLayer
from playbook_sync.models.knowledge import KnowledgeEntry
from playbook_sync.sync.classifier import MAX_DOCUMENT_CHARS, Classification, EntryClassifier
from playbook_sync.sync.edit_generator import EditGenerator, GeneratedEdit

ENTRY = KnowledgeEntry(category="tip", content="use a 2-line subject", tags=["email"])


# === Classifier ===


def test_classify_returns_model_and_meta():
    llm = MockLLMLayer({
        "opus:Classification": Classification(action="enrich", rationale="new detail", target_section="Subject Line Guidance"),
    })
    result, meta = asyncio.run(EntryClassifier(llm, model_tier="opus").classify(ENTRY, "# Doc", "Subject Lines"))
    assert result.action == "enrich"
    assert result.target_section == "Subject Line Guidance"
    assert meta.cost == 0.001

    call = llm.call_log[0]
    assert call["response_model"] == "Classification"
    assert isinstance(call["system"], list)  # cached system prompt
    content = call["messages"][0]["content"]
    assert "## SOP: Subject Lines" in content
    assert "Category: tip" in content
    assert "Tags: email" in content
    assert "Context: N/A" in content


def test_classify_clears_section_unless_enrich():
    llm = MockLLMLayer({
        "opus:Classification": Classification(action="redundant", rationale="covered", target_section="Steps"),
    })
    result, _ = asyncio.run(EntryClassifier(llm, model_tier="opus").classify(ENTRY, "# Doc", "Doc"))
    assert result.target_section is None


def test_classify_truncates_long_documents():
    llm = MockLLMLayer({"opus:Classification": Classification(action="tangential")})
    long_doc = "x" * (MAX_DOCUMENT_CHARS + 500)
    asyncio.run(EntryClassifier(llm, model_tier="opus").classify(ENTRY, long_doc, "Doc"))
    content = llm.call_log[0]["messages"][0]["content"]
    assert "x" * MAX_DOCUMENT_CHARS in content
    assert "x" * (MAX_DOCUMENT_CHARS + 1) not in content


def test_classification_rejects_unknown_action():
    with pytest.raises(ValidationError):
        Classification(action="orphaned")


# === Edit synthesis ===


def test_generated_edit_rejects_blank_fields():
    with pytest.raises(ValidationError):
        GeneratedEdit(insert_after="  ", new_content="x")
    with pytest.raises(ValidationError):
        GeneratedEdit(insert_after="## Steps", new_content="")


def test_synthesize_edit_sends_all_entries_and_section():
    second = KnowledgeEntry(category="insight", content="longer subjects hurt open rate", context="Q3 test")
    edit = GeneratedEdit(insert_after="## Subject Line Guidance", new_content="- Two lines.", summary="Add subject tips")
    llm = MockLLMLayer({"opus:GeneratedEdit": edit})

    result, _ = asyncio.run(
        EditGenerator(llm, model_tier="opus").synthesize_edit([ENTRY, second], "# Doc", "Subject Lines", "Subject Line Guidance")
    )
    assert result.anchor == "## Subject Line Guidance"

    content = llm.call_log[0]["messages"][0]["content"]
    assert "## Target Section\nSubject Line Guidance" in content
    assert "## Knowledge Entries (2)" in content
    assert "use a 2-line subject" in content
    assert "Context: Q3 test" in content
