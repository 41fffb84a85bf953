"""Tests for the Publisher and commit message."""

import os
import sys
import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from playbook_sync.integrations.github_repo import GithubRepositoryError
from playbook_sync.models.playbook import FileChange
from playbook_sync.sync.publisher import Publisher, build_commit_message, commit_summary

CHANGES = [FileChange(path="a.md", content="A"), FileChange(path="sidebars.js", content="S")]


def test_publish_success_first_try():
    repo = MagicMock()
    repo.commit_files.return_value = "sha1"
    sha, error = asyncio.run(Publisher(repo).publish(CHANGES, "msg"))
    assert (sha, error) == ("sha1", None)
    repo.commit_files.assert_called_once_with(CHANGES, "msg")


def test_publish_retries_once_then_succeeds():
    repo = MagicMock()
    repo.commit_files.side_effect = [GithubRepositoryError("502"), "sha2"]
    sha, error = asyncio.run(Publisher(repo).publish(CHANGES, "msg"))
    assert sha == "sha2"
    assert error is None
    assert repo.commit_files.call_count == 2


def test_publish_second_failure_returns_error():
    repo = MagicMock()
    repo.commit_files.side_effect = GithubRepositoryError("ref update rejected")
    sha, error = asyncio.run(Publisher(repo).publish(CHANGES, "msg"))
    assert sha is None
    assert "ref update rejected" in error
    assert repo.commit_files.call_count == 2


def test_publish_nothing_to_commit():
    repo = MagicMock()
    assert asyncio.run(Publisher(repo).publish([], "msg")) == (None, None)
    repo.commit_files.assert_not_called()


def test_commit_summary():
    assert commit_summary(2, 1) == "2 enrichments, 1 new docs"


def test_commit_message_layout():
    message = build_commit_message(
        entries_processed=5,
        window_start=datetime(2026, 10, 11, tzinfo=timezone.utc),
        enriched={"email-module/subject-lines.md": "Add two-line subject guidance", "b.md": ""},
        created=["docs/sops/module-3-linkedin-outreach/sop-3-100-voice-notes.md"],
        entries_enriched=3,
        entries_redundant=1,
        entries_orphaned=1,
    )
    lines = message.split("\n")
    assert lines[0] == "[playbook-sync] 2 enrichments, 1 new docs"
    assert lines[1] == ""
    assert "Processed 5 knowledge entries (window: 2026-10-11T00:00:00+00:00 to now)" in message
    assert "- Enriched: 3" in lines
    assert "- email-module/subject-lines.md: Add two-line subject guidance" in lines
    assert "- b.md" in lines
    assert "- docs/sops/module-3-linkedin-outreach/sop-3-100-voice-notes.md" in lines


def test_commit_message_without_changelog_sections():
    message = build_commit_message(1, datetime(2026, 1, 1, tzinfo=timezone.utc), {}, [])
    assert "- Enriched: 0" in message
    assert "\nEnriched:\n" not in message
    assert "\nCreated:\n" not in message
