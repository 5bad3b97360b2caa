"""Tests for waymark.snapshot module."""

import json
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from conftest import FakeMetrics
from waymark.errors import WaymarkError, err
from waymark.git import RepoState
from waymark.policy import CheckpointCategory
from waymark.snapshot import (
    LATEST_FILENAME,
    SUMMARY_FILENAME,
    CheckpointRecord,
    archive_key,
    build_record,
    format_timestamp,
    list_archived,
    load_latest,
    load_record,
    save_record,
    write_session_summary,
)

NOW = datetime(2026, 1, 10, 23, 0, 0, tzinfo=UTC)


def _record(**overrides) -> CheckpointRecord:
    fields = {
        "timestamp": "2026-01-10T23:00:00Z",
        "type": "agent",
        "message": "Added planner",
        "commit_hash": "abc1234",
        "branch": "main",
        "v3_progress": {"domains": {"completed": 2}},
        "performance": {"p95": 41.5},
        "security": {"status": "PENDING"},
    }
    fields.update(overrides)
    return CheckpointRecord(**fields)


class TestCheckpointRecord:
    """Serialization of CheckpointRecord."""

    def test_to_dict_uses_external_field_names(self):
        """Keys match the on-disk contract exactly."""
        assert list(_record().to_dict()) == [
            "timestamp",
            "type",
            "message",
            "commitHash",
            "branch",
            "v3Progress",
            "performance",
            "security",
        ]

    def test_from_dict_defaults(self):
        """Missing fields fall back to defaults."""
        record = CheckpointRecord.from_dict({})
        assert record.commit_hash == "unknown"
        assert record.branch == "unknown"
        assert record.v3_progress == {}
        assert record.performance == {}
        assert record.security == {}

    def test_from_dict_null_documents(self):
        """null documents are read as empty objects."""
        record = CheckpointRecord.from_dict({"v3Progress": None, "security": None})
        assert record.v3_progress == {}
        assert record.security == {}

    def test_to_json_is_pretty_printed(self):
        """JSON output is indented and newline-terminated."""
        text = _record().to_json()
        assert text.endswith("}\n")
        assert '\n  "commitHash": "abc1234"' in text


class TestTimestamps:
    """Timestamp and archive-key formatting."""

    def test_format_timestamp_is_utc_z(self):
        local = NOW.astimezone(UTC).astimezone()
        assert format_timestamp(local) == "2026-01-10T23:00:00Z"

    def test_format_timestamp_converts_offsets(self):
        """Non-UTC input is converted to UTC."""
        eastern = NOW.astimezone(timezone(timedelta(hours=-5)))
        assert format_timestamp(eastern) == "2026-01-10T23:00:00Z"

    def test_archive_key_shape(self):
        key = archive_key(NOW)
        assert len(key) == 15
        assert key[8] == "-"
        assert key.replace("-", "").isdigit()


class TestBuildRecord:
    """build_record() captures repository and metrics state."""

    def test_captures_state(self):
        state = RepoState(True, 1, "dev", True, 0, "fff0000")
        metrics = FakeMetrics(performance={"ops": 3})

        record = build_record(CheckpointCategory.PERFORMANCE, "tuned", state, metrics, NOW)

        assert record.timestamp == "2026-01-10T23:00:00Z"
        assert record.type == "performance"
        assert record.message == "tuned"
        assert record.commit_hash == "fff0000"
        assert record.branch == "dev"
        assert record.performance == {"ops": 3}
        assert record.v3_progress == {}
        assert record.security == {}


class TestSaveRecord:
    """save_record() writes latest + archive."""

    def test_writes_latest_and_archive(self, tmp_path: Path):
        result = save_record(_record(), tmp_path, NOW)

        assert result.is_ok()
        archive = result.unwrap()
        latest = tmp_path / LATEST_FILENAME
        assert latest.exists()
        assert archive.name == f"checkpoint-{archive_key(NOW)}.json"
        assert archive.read_bytes() == latest.read_bytes()

    def test_overwrites_latest(self, tmp_path: Path):
        save_record(_record(message="first"), tmp_path, NOW)
        save_record(_record(message="second"), tmp_path, NOW + timedelta(seconds=5))

        assert load_latest(tmp_path).message == "second"
        assert len(list(tmp_path.glob("checkpoint-*.json"))) == 2

    def test_same_second_gets_suffix(self, tmp_path: Path):
        """A second archive in the same second does not overwrite the first."""
        first = save_record(_record(message="a"), tmp_path, NOW).unwrap()
        second = save_record(_record(message="b"), tmp_path, NOW).unwrap()
        third = save_record(_record(message="c"), tmp_path, NOW).unwrap()

        key = archive_key(NOW)
        assert first.name == f"checkpoint-{key}.json"
        assert second.name == f"checkpoint-{key}-1.json"
        assert third.name == f"checkpoint-{key}-2.json"
        assert load_record(first).message == "a"

    def test_creates_directory(self, tmp_path: Path):
        target = tmp_path / "nested" / "checkpoints"
        assert save_record(_record(), target, NOW).is_ok()
        assert (target / LATEST_FILENAME).exists()

    def test_latest_write_failure_skips_archive(self, tmp_path: Path):
        """If latest cannot be written, no archive is attempted."""
        failure = err(WaymarkError(code="ATOMIC_WRITE_FAILED", message="disk full"))
        with patch("waymark.snapshot.atomic_write_text", return_value=failure) as mock_write:
            result = save_record(_record(), tmp_path, NOW)

        assert result.is_err()
        assert result.unwrap_err().code == "ATOMIC_WRITE_FAILED"
        assert mock_write.call_count == 1


class TestReaders:
    """load_latest / load_record / list_archived."""

    def test_round_trip(self, tmp_path: Path):
        """Every field written is recovered exactly."""
        original = _record(message="unicode 世界")
        save_record(original, tmp_path, NOW)

        assert load_latest(tmp_path) == original

    def test_load_latest_missing(self, tmp_path: Path):
        assert load_latest(tmp_path) is None

    def test_load_record_invalid_json(self, tmp_path: Path):
        path = tmp_path / "checkpoint-20260101-000000.json"
        path.write_text("{not json")
        assert load_record(path) is None

    def test_load_record_non_object(self, tmp_path: Path):
        path = tmp_path / "checkpoint-20260101-000000.json"
        path.write_text(json.dumps([1, 2]))
        assert load_record(path) is None

    def test_list_archived_newest_first_with_limit(self, tmp_path: Path):
        for i in range(7):
            save_record(_record(message=f"m{i}"), tmp_path, NOW + timedelta(minutes=i))

        entries = list_archived(tmp_path, limit=5)

        assert [e.record.message for e in entries] == ["m6", "m5", "m4", "m3", "m2"]

    def test_list_archived_ignores_latest_and_strays(self, tmp_path: Path):
        save_record(_record(), tmp_path, NOW)
        (tmp_path / "checkpoint-notes.json").write_text("{}")
        (tmp_path / "checkpoint-20260101-000000.json").write_text("garbage")

        entries = list_archived(tmp_path)

        assert len(entries) == 1
        assert entries[0].path.name != LATEST_FILENAME

    def test_list_archived_zero_limit(self, tmp_path: Path):
        save_record(_record(), tmp_path, NOW)
        assert list_archived(tmp_path, limit=0) == []

    def test_list_archived_missing_dir(self, tmp_path: Path):
        assert list_archived(tmp_path / "nope") == []


class TestSessionSummaryFile:
    def test_write_session_summary(self, tmp_path: Path):
        result = write_session_summary(tmp_path, "Session ended: domains 1/5")

        assert result.is_ok()
        assert (tmp_path / SUMMARY_FILENAME).read_text() == "Session ended: domains 1/5\n"
