"""CLI command tests: non-interactive paths via typer.testing.CliRunner."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from doubletab.cli import _cli
from doubletab.config import DoubleTabConfig, EmbeddingConfig
from doubletab.corpus import OTHER_DATABASES
from doubletab.db import connect, insertKnowledge, insertMemory
from doubletab.errors import SessionCancelled, TransportFailure
from tests.conftest import FakeEmbedder

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path):
    """Redirect CONFIG_DIR / CONFIG_PATH to tmp_path for every test."""
    cfg_dir = tmp_path / ".doubletab"
    cfg_dir.mkdir()
    cfg_path = cfg_dir / "config.json"
    cfg_path.write_text(
        json.dumps({"db_path": str(cfg_dir / "doubletab.db"), "embedding": {"dimensions": 4}})
    )
    with (
        patch("doubletab.config.CONFIG_DIR", cfg_dir),
        patch("doubletab.config.CONFIG_PATH", cfg_path),
    ):
        yield


@pytest.fixture
def store_config(tmp_path: Path) -> DoubleTabConfig:
    return DoubleTabConfig(
        db_path=str(tmp_path / ".doubletab" / "doubletab.db"),
        embedding=EmbeddingConfig(dimensions=4),
    )


# ── config list ──────────────────────────────────────────────


def test_configList_json():
    result = runner.invoke(_cli, ["config", "list", "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["embedding"]["dimensions"] == 4
    assert "chat_model" in data["llm"]
    assert data["memory"]["recall_limit"] == 5
    assert "build_command" in data["build"]


def test_configList_human():
    result = runner.invoke(_cli, ["config", "list"])
    assert result.exit_code == 0
    for section in ("General", "Embedding", "LLM", "Memory", "Build"):
        assert section in result.output


def test_configList_badFormat():
    result = runner.invoke(_cli, ["config", "list", "--format", "xml"])
    assert result.exit_code != 0


# ── config get ───────────────────────────────────────────────


def test_configGet_json():
    result = runner.invoke(_cli, ["config", "get", "llm.chat_model", "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["key"] == "llm.chat_model"
    assert data["value"] == "gpt-4o"
    assert data["type"] == "str"


def test_configGet_optionalType():
    result = runner.invoke(_cli, ["config", "get", "llm.seed", "--format", "json"])
    data = json.loads(result.output)
    assert data["type"] == "int | None"


def test_configGet_missing_json():
    result = runner.invoke(_cli, ["config", "get", "nonexistent.key", "--format", "json"])
    assert result.exit_code == 1
    data = json.loads(result.output)
    assert data["ok"] is False
    assert "error" in data


# ── config set ───────────────────────────────────────────────


def test_configSet_json():
    result = runner.invoke(
        _cli, ["config", "set", "memory.recall_limit", "7", "--format", "json"]
    )
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["ok"] is True
    assert data["value"] == 7

    result = runner.invoke(_cli, ["config", "get", "memory.recall_limit", "--format", "json"])
    assert json.loads(result.output)["value"] == 7


def test_configSet_preservesOtherKeys():
    runner.invoke(_cli, ["config", "set", "llm.code_model", "gpt-4.1", "--format", "json"])
    result = runner.invoke(_cli, ["config", "get", "embedding.dimensions", "--format", "json"])
    assert json.loads(result.output)["value"] == 4


def test_configSet_listValue():
    result = runner.invoke(
        _cli, ["config", "set", "build.build_command", "make build", "--format", "json"]
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["value"] == ["make", "build"]


def test_configSet_noneValue():
    result = runner.invoke(_cli, ["config", "set", "llm.seed", "none", "--format", "json"])
    assert result.exit_code == 0
    assert json.loads(result.output)["value"] is None


def test_configSet_invalid_json():
    result = runner.invoke(
        _cli, ["config", "set", "memory.recall_limit", "not_a_number", "--format", "json"]
    )
    assert result.exit_code == 1
    data = json.loads(result.output)
    assert data["ok"] is False


def test_configSet_unknownKey_json():
    result = runner.invoke(_cli, ["config", "set", "llm.temperature", "0.2", "--format", "json"])
    assert result.exit_code == 1
    assert "Unknown key" in json.loads(result.output)["error"]


# ── API key masking ──────────────────────────────────────────


def test_apiKeyMaskedOnSetAndGet(tmp_path: Path):
    result = runner.invoke(
        _cli, ["config", "set", "llm.api_key", "sk-secret-value", "--format", "json"]
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["value"] == "sk-s…"
    # the file keeps the real key
    saved = json.loads((tmp_path / ".doubletab" / "config.json").read_text())
    assert saved["llm"]["api_key"] == "sk-secret-value"

    result = runner.invoke(_cli, ["config", "get", "llm.api_key", "--format", "json"])
    assert json.loads(result.output)["value"] == "sk-s…"

    result = runner.invoke(_cli, ["config", "get", "llm.api_key"])
    assert result.exit_code == 0
    assert "secret" not in result.output


def test_apiKeyMaskedInSectionAndList():
    runner.invoke(_cli, ["config", "set", "embedding.api_key", "sk-embed-secret"])

    result = runner.invoke(_cli, ["config", "get", "embedding", "--format", "json"])
    assert json.loads(result.output)["value"]["api_key"] == "sk-e…"

    result = runner.invoke(_cli, ["config", "list", "--format", "json"])
    assert json.loads(result.output)["embedding"]["api_key"] == "sk-e…"

    result = runner.invoke(_cli, ["config", "list"])
    assert "secret" not in result.output


# ── memory ───────────────────────────────────────────────────


def test_memoryShow_json(store_config: DoubleTabConfig):
    db = connect(store_config)
    insertMemory(db, "s1", "user", "build a todo api", [1.0, 0.0, 0.0, 0.0])
    insertMemory(db, "s1", "assistant", "which fields?", [0.0, 1.0, 0.0, 0.0])
    insertMemory(db, "s2", "user", "other session", [1.0, 0.0, 0.0, 0.0])
    db.close()

    result = runner.invoke(_cli, ["memory", "show", "--session", "s1", "--format", "json"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["count"] == 2
    assert [m["content"] for m in data["memories"]] == ["build a todo api", "which fields?"]

    result = runner.invoke(_cli, ["memory", "show", "--format", "json"])
    assert json.loads(result.output)["count"] == 3


def test_memoryShow_empty():
    result = runner.invoke(_cli, ["memory", "show"])
    assert result.exit_code == 0
    assert "No memory entries" in result.output


def test_memorySessions_json(store_config: DoubleTabConfig):
    db = connect(store_config)
    insertMemory(db, "s1", "user", "hello", [1.0, 0.0, 0.0, 0.0])
    db.close()

    result = runner.invoke(_cli, ["memory", "sessions", "--format", "json"])
    assert result.exit_code == 0
    sessions = json.loads(result.output)["sessions"]
    assert [(s["session_id"], s["entries"]) for s in sessions] == [("s1", 1)]


# ── knowledge ────────────────────────────────────────────────


def test_knowledgeQuery_json(store_config: DoubleTabConfig):
    embedder = FakeEmbedder()
    db = connect(store_config)
    insertKnowledge(db, OTHER_DATABASES, embedder._fakeVec("What databases are supported?"))
    db.close()

    with patch("doubletab.cli.createProvider", AsyncMock(return_value=embedder)):
        result = runner.invoke(
            _cli, ["knowledge", "query", "What databases are supported?", "--format", "json"]
        )
    assert result.exit_code == 0
    assert json.loads(result.output)["content"] == OTHER_DATABASES


def test_knowledgeQuery_empty():
    with patch("doubletab.cli.createProvider", AsyncMock(return_value=FakeEmbedder())):
        result = runner.invoke(_cli, ["knowledge", "query", "anything"])
    assert result.exit_code == 0
    assert "no entries" in result.output


def test_knowledgeQuery_providerError_json():
    with patch(
        "doubletab.cli.createProvider",
        AsyncMock(side_effect=ValueError("API key required")),
    ):
        result = runner.invoke(_cli, ["knowledge", "query", "x", "--format", "json"])
    assert result.exit_code == 1
    assert json.loads(result.output)["ok"] is False


# ── chat ─────────────────────────────────────────────────────


def test_chat_transportFailureExits1():
    with patch("doubletab.cli._chat", AsyncMock(side_effect=TransportFailure("provider down"))):
        result = runner.invoke(_cli, ["chat", "build a todo api"])
    assert result.exit_code == 1
    assert "provider down" in result.output


def test_chat_cancelledExits130():
    with patch("doubletab.cli._chat", AsyncMock(side_effect=SessionCancelled("Session cancelled"))):
        result = runner.invoke(_cli, ["chat", "build a todo api"])
    assert result.exit_code == 130


def test_chat_passesFirstInput():
    with patch("doubletab.cli._chat", AsyncMock()) as mock:
        result = runner.invoke(_cli, ["chat", "build a todo api"])
    assert result.exit_code == 0
    cfg, first = mock.call_args.args
    assert first == "build a todo api"
    assert cfg.embedding.dimensions == 4


def test_chat_promptsWhenNoQuery():
    with patch("doubletab.cli._chat", AsyncMock()) as mock:
        result = runner.invoke(_cli, ["chat"], input="a blog api\n")
    assert result.exit_code == 0
    assert mock.call_args.args[1] == "a blog api"


def test_chat_eofAtFirstPrompt():
    with patch("doubletab.cli._chat", AsyncMock()) as mock:
        result = runner.invoke(_cli, ["chat"], input="")
    assert result.exit_code == 0
    mock.assert_not_called()


def test_version():
    result = runner.invoke(_cli, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("doubletab ")
