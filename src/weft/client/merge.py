"""Merging of possibly-resent text into an accumulated stream."""

from __future__ import annotations

from typing import NamedTuple


class MergeResult(NamedTuple):
    """``previous + delta == next`` always holds."""

    next: str
    delta: str


def merge_text(previous: str, incoming: str) -> MergeResult:
    """Fold *incoming* into *previous* without duplicating text.

    Handles full resends (*incoming* starts with *previous*), repeats that
    are already contained in *previous*, and partial resends that overlap the
    end of *previous*. Anything else is appended.
    """
    if not incoming:
        return MergeResult(previous, "")
    if not previous:
        return MergeResult(incoming, incoming)
    if incoming.startswith(previous):
        return MergeResult(incoming, incoming[len(previous) :])
    if incoming in previous:
        return MergeResult(previous, "")

    overlap = boundary_overlap(previous, incoming)
    delta = incoming[overlap:]
    return MergeResult(previous + delta, delta)


def boundary_overlap(previous: str, incoming: str) -> int:
    """Length of the longest suffix of *previous* that is a prefix of *incoming*.

    Runs in ``O(len(previous) + len(incoming))`` using the KMP failure
    function of *incoming* matched against the tail of *previous*.
    """
    window = min(len(previous), len(incoming))
    if window == 0:
        return 0
    tail = previous[len(previous) - window :]
    pattern = incoming[:window]

    failure = [0] * window
    k = 0
    for i in range(1, window):
        while k and pattern[i] != pattern[k]:
            k = failure[k - 1]
        if pattern[i] == pattern[k]:
            k += 1
        failure[i] = k

    matched = 0
    for ch in tail:
        while matched and ch != pattern[matched]:
            matched = failure[matched - 1]
        if ch == pattern[matched]:
            matched += 1
    return matched
