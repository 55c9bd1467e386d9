"""Tests for the scripted model client."""

from __future__ import annotations

from pathlib import Path

import pytest

from weft.config.models import AgentTemplate
from weft.runtime.abort import AbortSignal
from weft.runtime.model import (
    ModelChunk,
    ModelRequest,
    ReasoningDelta,
    ScriptedModel,
    TextDelta,
    TranscriptError,
)


async def _collect(
    model: ScriptedModel,
    agent: str,
    step: int = 0,
    signal: AbortSignal | None = None,
) -> list[ModelChunk]:
    request = ModelRequest(agent_id="a1", template=AgentTemplate(id=agent), step=step)
    return [c async for c in model.stream(request, signal or AbortSignal())]


class TestFromDict:
    def test_string_steps_are_shorthand(self) -> None:
        model = ScriptedModel.from_dict({"agents": {"base": ["hello", "bye"]}})
        assert [s.text for s in model.steps_for("base")] == ["hello", "bye"]

    def test_full_steps(self) -> None:
        model = ScriptedModel.from_dict(
            {
                "chunk_size": 4,
                "agents": {"base": [{"text": "x", "reasoning": "hm", "chunk_size": 2}]},
            }
        )
        step = model.steps_for("base")[0]
        assert step.reasoning == "hm"
        assert step.chunk_size == 2

    def test_invalid_transcript(self) -> None:
        with pytest.raises(TranscriptError, match="Invalid transcript"):
            ScriptedModel.from_dict({"chunk_size": 0})

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(TranscriptError):
            ScriptedModel.from_dict({"agents": {"base": [{"txt": "typo"}]}})

    def test_steps_by_bare_name(self) -> None:
        model = ScriptedModel.from_dict({"agents": {"file-picker": ["x"]}})
        assert len(model.steps_for("weft/file-picker@0.1.0")) == 1
        assert model.steps_for("other") == []


class TestFromFile:
    def test_loads_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "transcript.yaml"
        path.write_text("agents:\n  base:\n    - hi\n", encoding="utf-8")
        assert ScriptedModel.from_file(path).steps_for("base")[0].text == "hi"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(TranscriptError, match="Cannot read transcript"):
            ScriptedModel.from_file(tmp_path / "nope.yaml")

    def test_bad_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "transcript.yaml"
        path.write_text("agents: [unclosed", encoding="utf-8")
        with pytest.raises(TranscriptError, match="Invalid YAML"):
            ScriptedModel.from_file(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "transcript.yaml"
        path.write_text("", encoding="utf-8")
        assert ScriptedModel.from_file(path).steps_for("base") == []


class TestStream:
    async def test_chunks_text(self) -> None:
        model = ScriptedModel.from_dict(
            {"chunk_size": 3, "agents": {"base": ["abcdefg"]}}
        )
        chunks = await _collect(model, "base")
        assert chunks == [TextDelta("abc"), TextDelta("def"), TextDelta("g")]

    async def test_reasoning_first(self) -> None:
        model = ScriptedModel.from_dict(
            {"agents": {"base": [{"text": "ok", "reasoning": "think"}]}}
        )
        chunks = await _collect(model, "base")
        assert chunks == [ReasoningDelta("think"), TextDelta("ok")]

    async def test_steps_advance(self) -> None:
        model = ScriptedModel.from_dict({"agents": {"base": ["one", "two"]}})
        assert await _collect(model, "base", step=1) == [TextDelta("two")]

    async def test_exhausted_steps_yield_nothing(self) -> None:
        model = ScriptedModel.from_dict({"agents": {"base": ["one"]}})
        assert await _collect(model, "base", step=1) == []
        assert await _collect(model, "unknown") == []

    async def test_stops_when_aborted(self) -> None:
        model = ScriptedModel.from_dict(
            {"chunk_size": 1, "agents": {"base": ["abc"]}}
        )
        signal = AbortSignal()
        signal.abort()
        assert await _collect(model, "base", signal=signal) == []
