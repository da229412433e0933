from __future__ import annotations

import json
import logging

import pytest

from quill.adapters.events import TextDelta, ToolCallEnd
from quill.app import main, read_deltas
from quill.shared.services.snapshot import ABSENT_MARKER


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    monkeypatch.setattr("quill.app.LOG_DIR", tmp_path / "logs")
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _write_jsonl(path, records) -> None:
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")


@pytest.fixture
def recorded_turn(tmp_path):
    path = tmp_path / "turn.jsonl"
    _write_jsonl(
        path,
        [
            {"type": "text", "id": "t1", "delta": "Saving your note."},
            {"kind": "tool-call-start", "identity": "t1", "tool_call_id": "c1", "tool_name": "write"},
            {
                "kind": "tool-call-end",
                "identity": "t1",
                "tool_call_id": "c1",
                "arguments": {"file_path": "hello.md", "content": "hi"},
            },
        ],
    )
    return path


def test_read_deltas(recorded_turn):
    deltas = list(read_deltas(recorded_turn))
    assert deltas[0] == TextDelta(identity="t1", text="Saving your note.")
    assert isinstance(deltas[2], ToolCallEnd)
    assert json.loads(deltas[2].arguments) == {"file_path": "hello.md", "content": "hi"}


def test_read_deltas_reports_bad_line(tmp_path):
    path = tmp_path / "bad.jsonl"
    path.write_text('{"kind": "text"}\n\n[1, 2]\n', encoding="utf-8")
    with pytest.raises(ValueError, match=r"bad.jsonl:3: expected a JSON object"):
        list(read_deltas(path))


def test_replay_auto_approve_then_prune(vault, recorded_turn, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--vault", str(vault),
                "replay", str(recorded_turn),
                "--prompt", "save a note",
                "--auto-approve",
                "--print-transcript",
            ]
        )
    assert excinfo.value.code == 0
    assert (vault / "hello.md").read_text(encoding="utf-8") == "hi"
    out = capsys.readouterr().out
    assert '"tool_call_id": "c1"' in out
    assert '"content": "save a note"' in out

    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "snapshots", "prune"])
    assert excinfo.value.code == 0
    assert "Pruned 1 snapshot(s)." in capsys.readouterr().out

    with pytest.raises(SystemExit):
        main(["--vault", str(vault), "snapshots", "list"])
    assert "No snapshots." in capsys.readouterr().out


def test_replay_auto_reject_leaves_vault(vault, recorded_turn):
    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "replay", str(recorded_turn), "--auto-reject"])
    assert excinfo.value.code == 0
    assert not (vault / "hello.md").exists()


def test_restore_unknown_snapshot(vault, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "snapshots", "restore", "abc123", "x.md"])
    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().out


def test_missing_deltas_file(vault, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "replay", str(tmp_path / "nope.jsonl"), "--auto-approve"])
    assert excinfo.value.code == 1


def test_missing_config_file(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(tmp_path / "nope.yaml"), "snapshots", "list"])
    assert excinfo.value.code == 2


def test_restore_legacy_snapshot_without_path(vault, capsys):
    snapshot_dir = vault / ".quill" / "snapshots"
    snapshot_dir.mkdir(parents=True)
    (snapshot_dir / "legacy1").write_text(ABSENT_MARKER, encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "snapshots", "restore", "legacy1"])
    assert excinfo.value.code == 1
    assert "not restored" in capsys.readouterr().out
    assert vault.is_dir()


def test_restore_outside_vault_is_reported(vault, tmp_path, capsys):
    (tmp_path / "outside.md").write_text("x", encoding="utf-8")
    snapshot_dir = vault / ".quill" / "snapshots"
    snapshot_dir.mkdir(parents=True)
    (snapshot_dir / "legacy2").write_text("old", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["--vault", str(vault), "snapshots", "restore", "legacy2", "../outside.md"])
    assert excinfo.value.code == 1
    assert "escapes the vault" in capsys.readouterr().err
    assert (tmp_path / "outside.md").read_text(encoding="utf-8") == "x"
