"""Tests for the incremental tool-call markup scanner."""

from __future__ import annotations

import pytest

from weft.runtime.scanner import (
    ScanItem,
    TagError,
    TagInvocation,
    TagStreamScanner,
    TextSegment,
    coalesce,
    flush_buffer,
    scan_chunk,
)

KNOWN = frozenset({"read_files", "write_file", "end_turn", "file_picker"})

SAMPLE = (
    "Let me look at a < b first.\n"
    "<read_files>\n<paths>\nsrc/app.py\nsrc/util.py\n</paths>\n</read_files>\n"
    "Then <em>emphasis</em> and more.\n"
    "<write_file><path>out.txt</path><content>hi\nthere</content></write_file>"
    "<end_turn></end_turn>"
)


def _scan_all(chunks: list[str], known: frozenset[str] = KNOWN) -> list[ScanItem]:
    scanner = TagStreamScanner(known)
    items: list[ScanItem] = []
    for chunk in chunks:
        items.extend(scanner.feed(chunk))
    items.extend(scanner.flush())
    return coalesce(items)


def _text(items: list[ScanItem]) -> str:
    return "".join(i.text for i in items if isinstance(i, TextSegment))


def _calls(items: list[ScanItem]) -> list[ScanItem]:
    return [i for i in items if not isinstance(i, TextSegment)]


# ------------------------------------------------------------------ #
# Basic recognition
# ------------------------------------------------------------------ #


class TestRecognition:
    def test_plain_text_passes_through(self) -> None:
        result = scan_chunk("hello world", "", KNOWN)
        assert result.items == [TextSegment("hello world")]
        assert result.buffer == ""

    def test_invocation_with_parameters(self) -> None:
        items = _scan_all([SAMPLE])
        calls = _calls(items)
        assert calls[0] == TagInvocation(
            "read_files", {"paths": "src/app.py\nsrc/util.py"}
        )
        assert calls[1] == TagInvocation(
            "write_file", {"path": "out.txt", "content": "hi\nthere"}
        )
        assert calls[2] == TagInvocation("end_turn", {})

    def test_only_one_leading_and_trailing_newline_trimmed(self) -> None:
        items = _scan_all(["<write_file><content>\n\nx\n\n</content></write_file>"])
        assert items == [TagInvocation("write_file", {"content": "\nx\n"})]

    def test_text_around_calls_is_kept(self) -> None:
        items = _scan_all([SAMPLE])
        text = _text(items)
        assert text.startswith("Let me look at a < b first.\n")
        assert "Then <em>emphasis</em> and more." in text
        assert "<read_files>" not in text

    def test_unknown_tag_with_parameter_body_is_an_invocation(self) -> None:
        items = _scan_all(["<lookup><query>cats</query></lookup>"])
        assert items == [TagInvocation("lookup", {"query": "cats"})]

    def test_unknown_tag_with_prose_body_is_text(self) -> None:
        items = _scan_all(["a <b>bold</b> word"])
        assert items == [TextSegment("a <b>bold</b> word")]

    def test_known_tag_with_bad_body_is_an_error(self) -> None:
        raw = "<read_files>just some words</read_files>"
        items = _scan_all([f"before {raw} after"])
        assert items[0] == TextSegment("before ")
        assert isinstance(items[1], TagError)
        assert items[1].tag_name == "read_files"
        assert items[1].raw == raw
        assert items[2] == TextSegment(" after")


# ------------------------------------------------------------------ #
# Buffering across chunks
# ------------------------------------------------------------------ #


class TestBuffering:
    def test_partial_tag_is_buffered(self) -> None:
        result = scan_chunk("text <read_fi", "", KNOWN)
        assert result.items == [TextSegment("text ")]
        assert result.buffer == "<read_fi"

    def test_buffer_resumes_with_next_chunk(self) -> None:
        first = scan_chunk("<end_", "", KNOWN)
        second = scan_chunk("turn></end_turn>!", first.buffer, KNOWN)
        assert second.items == [TagInvocation("end_turn", {}), TextSegment("!")]
        assert second.buffer == ""

    def test_lone_angle_bracket_at_end_is_held(self) -> None:
        result = scan_chunk("x <", "", KNOWN)
        assert result.buffer == "<"

    def test_unterminated_tag_is_flushed_as_text(self) -> None:
        items = _scan_all(["start <read_files><paths>a.py"])
        assert items == [TextSegment("start <read_files><paths>a.py")]

    def test_flush_resumes_after_unterminated_open(self) -> None:
        items = _scan_all(
            ["<read_files><paths>a</paths> <end_turn></end_turn> tail"]
        )
        assert TagInvocation("end_turn", {}) in items
        assert _text(items).startswith("<read_files>")
        assert _text(items).endswith(" tail")

    def test_complete_tag_inside_open_value_stays_in_value(self) -> None:
        raw = (
            "<write_file><path>a</path><content>run <end_turn></end_turn> later"
            "</content></write_file>"
        )
        cut = raw.index(" later")
        items = _scan_all([raw[:cut], raw[cut:]])
        assert items == [
            TagInvocation(
                "write_file",
                {"path": "a", "content": "run <end_turn></end_turn> later"},
            )
        ]

    def test_flush_of_empty_buffer(self) -> None:
        assert flush_buffer("", KNOWN) == []


# ------------------------------------------------------------------ #
# Split invariance
# ------------------------------------------------------------------ #


class TestSplitInvariance:
    """Any chunking gives the same calls and the same concatenated text."""

    def test_every_two_way_split(self) -> None:
        whole = _scan_all([SAMPLE])
        for cut in range(1, len(SAMPLE)):
            split = _scan_all([SAMPLE[:cut], SAMPLE[cut:]])
            assert split == whole, f"split at {cut}"

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 13])
    def test_fixed_size_chunks(self, size: int) -> None:
        whole = _scan_all([SAMPLE])
        chunks = [SAMPLE[i : i + size] for i in range(0, len(SAMPLE), size)]
        assert _scan_all(chunks) == whole

    def test_error_tag_split(self) -> None:
        text = "x <file_picker>not params</file_picker> y"
        whole = _scan_all([text])
        assert any(isinstance(i, TagError) for i in whole)
        for cut in range(1, len(text)):
            assert _scan_all([text[:cut], text[cut:]]) == whole
