"""Tests for text delta merging."""

from __future__ import annotations

import pytest

from weft.client.merge import MergeResult, boundary_overlap, merge_text


class TestMergeText:
    def test_empty_incoming(self) -> None:
        assert merge_text("abc", "") == MergeResult("abc", "")

    def test_empty_previous(self) -> None:
        assert merge_text("", "abc") == MergeResult("abc", "abc")

    def test_full_resend_yields_tail(self) -> None:
        result = merge_text("Hello", "Hello world")
        assert result == MergeResult("Hello world", " world")

    def test_contained_text_is_dropped(self) -> None:
        assert merge_text("Hello world", "lo wo") == MergeResult("Hello world", "")

    def test_boundary_overlap(self) -> None:
        assert merge_text("Hello wor", "world!") == MergeResult("Hello world!", "ld!")

    def test_plain_append(self) -> None:
        assert merge_text("abc", "xyz") == MergeResult("abcxyz", "xyz")

    def test_idempotent(self) -> None:
        first = merge_text("The quick", "quick brown fox")
        again = merge_text(first.next, "quick brown fox")
        assert again == MergeResult(first.next, "")

    @pytest.mark.parametrize(
        ("previous", "incoming"),
        [
            ("abc", "cde"),
            ("aaaa", "aaab"),
            ("abab", "babx"),
            ("", "x"),
            ("x", ""),
            ("start", "start"),
        ],
    )
    def test_next_is_previous_plus_delta(self, previous: str, incoming: str) -> None:
        result = merge_text(previous, incoming)
        assert result.next == previous + result.delta


class TestBoundaryOverlap:
    """The linear overlap scan agrees with the naive longest-first scan."""

    @staticmethod
    def _naive(previous: str, incoming: str) -> int:
        for n in range(min(len(previous), len(incoming)), 0, -1):
            if previous[-n:] == incoming[:n]:
                return n
        return 0

    @pytest.mark.parametrize(
        ("previous", "incoming"),
        [
            ("abcab", "abcabd"),
            ("aaaa", "aaab"),
            ("abab", "ababab"),
            ("xyz", "abc"),
            ("mississippi", "ippi is"),
            ("aabaab", "aabaac"),
            ("a", "a"),
        ],
    )
    def test_matches_naive(self, previous: str, incoming: str) -> None:
        assert boundary_overlap(previous, incoming) == self._naive(previous, incoming)

    def test_long_inputs(self) -> None:
        previous = "ab" * 5000 + "c"
        incoming = "ab" * 4000 + "cX"
        assert boundary_overlap(previous, incoming) == self._naive(previous, incoming)
