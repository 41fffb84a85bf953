"""Tests for the anchor-based patcher."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from playbook_sync.sync.edit_generator import GeneratedEdit
from playbook_sync.sync.patcher import apply_edit, find_anchor_line, insert_content, jaccard

DOC = """# Cold Email

## Subject Lines

- Keep it short.

## Follow-ups

- Wait three days."""


# === Exact anchor ===


def test_exact_anchor_inserts_after_anchor():
    result = insert_content(DOC, "- Keep it short.", "- Use two lines max.")
    assert "- Keep it short.\n\n- Use two lines max.\n\n\n## Follow-ups" in result
    assert result.startswith("# Cold Email")


def test_exact_anchor_mid_line():
    """The anchor need not be a whole line; insertion happens right after it."""
    result = insert_content("alpha beta gamma", "beta", "NEW")
    assert result == "alpha beta\n\nNEW\n gamma"


def test_exact_patch_is_deterministic():
    first = insert_content(DOC, "## Follow-ups", "- Bump once.")
    second = insert_content(DOC, "## Follow-ups", "- Bump once.")
    assert first == second


def test_first_occurrence_wins():
    content = "x\nmarker\ny\nmarker\nz"
    result = insert_content(content, "marker", "NEW")
    assert result == "x\nmarker\n\nNEW\n\ny\nmarker\nz"


# === Fuzzy anchor ===


def test_fuzzy_containment_anchor_in_line():
    """A lowercase anchor contained in a line matches that line."""
    result = insert_content(DOC, "keep it short", "- Two lines.")
    lines = result.split("\n")
    idx = lines.index("- Keep it short.")
    assert lines[idx + 1] == ""
    assert lines[idx + 2] == "- Two lines."


def test_fuzzy_containment_line_in_anchor():
    """A line contained in a longer anchor also matches."""
    result = insert_content(DOC, "## Follow-ups and nudges section", "- Bump once.")
    assert "## Follow-ups\n\n- Bump once.\n" in result


def test_fuzzy_jaccard_at_threshold_accepts():
    # anchor words {a,b} vs line words {a,b,c,d,e}: 2/5 = 0.4
    lines = ["intro", "a b c d e", "outro"]
    assert find_anchor_line(lines, "a b x", 0.4) is None  # 2/6 = 0.33
    assert find_anchor_line(lines, "b a", 0.4) == 1


def test_fuzzy_jaccard_below_threshold_rejects():
    lines = ["a b c d e f"]  # anchor {a, b, z}: 2/7 ≈ 0.29
    assert find_anchor_line(lines, "a z b", 0.4) is None


def test_fuzzy_jaccard_tie_keeps_earlier_line():
    lines = ["red green blue", "red green yellow"]
    assert find_anchor_line(lines, "red green purple", 0.4) == 0


def test_fuzzy_skips_blank_lines():
    assert find_anchor_line(["", "   ", "hello world"], "hello", 0.4) == 2


def test_jaccard_empty_sets():
    assert jaccard(set(), set()) == 0.0
    assert jaccard({"a"}, {"a"}) == 1.0


def test_fuzzy_heading_prefix_inserts_under_that_heading():
    content = "# Guide\n\n## Common mistakes to avoid\n\n- Too long.\n\n## Next\n\n- Wrap up."
    result = insert_content(content, "## Common Mistakes", "- Avoid jargon.")
    assert result == (
        "# Guide\n\n## Common mistakes to avoid\n\n- Avoid jargon.\n\n- Too long.\n\n## Next\n\n- Wrap up."
    )
    assert not result.endswith("- Avoid jargon.\n")


# === Append fallback ===


def test_no_anchor_appends():
    result = insert_content(DOC, "something entirely unrelated here", "- Appended.")
    assert result == DOC + "\n\n- Appended.\n"


def test_blank_anchor_appends():
    result = insert_content("body", "", "tail")
    assert result == "body\n\ntail\n"


def test_threshold_parameter_overrides_default():
    content = "one two three four\nlast line"
    # {one, five} vs {one, two, three, four}: 1/5 = 0.2
    assert insert_content(content, "one five", "X", fuzzy_threshold=0.2) == "one two three four\n\nX\nlast line"
    assert insert_content(content, "one five", "X", fuzzy_threshold=0.5) == content + "\n\nX\n"


def test_apply_edit_uses_generated_anchor():
    edit = GeneratedEdit(insert_after="## Subject Lines", new_content="- Lowercase wins.", summary="tip")
    result = apply_edit(DOC, edit)
    assert "## Subject Lines\n\n- Lowercase wins.\n" in result


def test_successive_edits_never_duplicate_content():
    first = apply_edit(DOC, GeneratedEdit(insert_after="- Keep it short.", new_content="- Two lines max.", summary="a"))
    second = apply_edit(first, GeneratedEdit(insert_after="## Follow-ups", new_content="- Bump once.", summary="b"))
    third = apply_edit(second, GeneratedEdit(insert_after="- Two lines max.", new_content="- No emojis.", summary="c"))

    for line in ("- Keep it short.", "- Two lines max.", "- Bump once.", "- No emojis.", "## Follow-ups"):
        assert third.count(line) == 1
    assert third.index("- Two lines max.") < third.index("- No emojis.") < third.index("## Follow-ups")
    assert third.index("## Follow-ups") < third.index("- Bump once.") < third.index("- Wait three days.")
