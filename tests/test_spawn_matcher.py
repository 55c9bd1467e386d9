"""Tests for matching sub-agents to spawn placeholders."""

from __future__ import annotations

from weft.client.spawn_matcher import (
    SpawnMatch,
    SpawnPlaceholder,
    find_matching_spawn_agent,
    placeholder_id,
)


def _placeholders(*types: str) -> dict[str, SpawnPlaceholder]:
    return {
        placeholder_id("call1", i): SpawnPlaceholder(i, t) for i, t in enumerate(types)
    }


class TestFindMatchingSpawnAgent:
    def test_exact_type(self) -> None:
        found = find_matching_spawn_agent(_placeholders("file-picker"), "file-picker")
        assert found == SpawnMatch(key="call1-0", index=0)

    def test_namespaced_versioned_type_matches_bare_placeholder(self) -> None:
        found = find_matching_spawn_agent(
            _placeholders("file-picker"), "codebuff/file-picker@0.1.0"
        )
        assert found == SpawnMatch(key="call1-0", index=0)

    def test_full_reference_stored_matches_itself(self) -> None:
        ref = "codebuff/file-picker@0.1.0"
        assert find_matching_spawn_agent(_placeholders(ref), ref) is not None

    def test_similar_name_does_not_match(self) -> None:
        placeholders = _placeholders("file-picker")
        assert find_matching_spawn_agent(placeholders, "file-picker-v2") is None

    def test_first_matching_placeholder_wins(self) -> None:
        placeholders = _placeholders("researcher", "file-picker", "file-picker")
        found = find_matching_spawn_agent(placeholders, "file-picker")
        assert found == SpawnMatch(key="call1-1", index=1)

    def test_empty_type(self) -> None:
        assert find_matching_spawn_agent(_placeholders("file-picker"), "") is None

    def test_no_placeholders(self) -> None:
        assert find_matching_spawn_agent({}, "file-picker") is None
