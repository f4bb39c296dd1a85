"""Approximate substring matching with edit-distance tolerance.

The query is aligned against the best window of the candidate (a
semi-global alignment: skipping candidate text before and after the window
is free), so a match anywhere in the candidate counts the same. Distance is
optimal string alignment: insertions, deletions, substitutions and adjacent
transpositions each cost one edit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from siftly.search.normalizer import fold, normalize, tokenize

Span = Tuple[int, int]

DEFAULT_THRESHOLD = 0.4
DEFAULT_MIN_LENGTH = 2


@dataclass(frozen=True, slots=True)
class MatchOutcome:
    """Cost in [0, 1] (0 is a perfect match) and the matched runs of the candidate."""

    cost: float
    spans: Tuple[Span, ...]


def merge_spans(spans: Iterable[Span]) -> Tuple[Span, ...]:
    """Sort spans and merge any that overlap or touch."""
    merged: List[List[int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return tuple((s, e) for s, e in merged)


def _runs(positions: Sequence[int]) -> Tuple[Span, ...]:
    spans: List[Span] = []
    for pos in positions:
        if spans and spans[-1][1] == pos:
            spans[-1] = (spans[-1][0], pos + 1)
        else:
            spans.append((pos, pos + 1))
    return tuple(spans)


def align(query: str, candidate: str) -> Optional[MatchOutcome]:
    """Align `query` against the best-matching window of `candidate`.

    Both strings are expected to be folded already. Returns None when either
    is empty or no character of the candidate lines up with the query.
    """
    m, n = len(query), len(candidate)
    if m == 0 or n == 0:
        return None

    start = candidate.find(query)
    if start >= 0:
        return MatchOutcome(0.0, ((start, start + m),))

    # d[i][j]: cheapest alignment of query[:i] ending at candidate[:j]
    d = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        row, prev = d[i], d[i - 1]
        row[0] = i
        qc = query[i - 1]
        for j in range(1, n + 1):
            cc = candidate[j - 1]
            best = prev[j - 1] + (qc != cc)
            if prev[j] + 1 < best:
                best = prev[j] + 1
            if row[j - 1] + 1 < best:
                best = row[j - 1] + 1
            if (
                i > 1
                and j > 1
                and qc != cc
                and qc == candidate[j - 2]
                and query[i - 2] == cc
                and d[i - 2][j - 2] + 1 < best
            ):
                best = d[i - 2][j - 2] + 1
            row[j] = best

    last = d[m]
    end = min(range(n + 1), key=lambda j: (last[j], j))
    distance = last[end]

    matched: List[int] = []
    i, j = m, end
    while i > 0:
        here = d[i][j]
        if j > 0 and query[i - 1] == candidate[j - 1] and here == d[i - 1][j - 1]:
            matched.append(j - 1)
            i, j = i - 1, j - 1
        elif (
            i > 1
            and j > 1
            and query[i - 1] == candidate[j - 2]
            and query[i - 2] == candidate[j - 1]
            and here == d[i - 2][j - 2] + 1
        ):
            matched.extend((j - 1, j - 2))
            i, j = i - 2, j - 2
        elif j > 0 and here == d[i - 1][j - 1] + 1:
            i, j = i - 1, j - 1
        elif here == d[i - 1][j] + 1:
            i -= 1
        else:
            j -= 1

    if not matched:
        return None
    window = end - j
    cost = min(1.0, max(0.0, distance / max(m, window)))
    return MatchOutcome(cost, _runs(sorted(matched)))


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    """A query normalized and tokenized once, ready to match many candidates."""

    text: str
    tokens: Tuple[str, ...]
    threshold: float

    def match(self, candidate: Optional[str]) -> Optional[MatchOutcome]:
        folded = fold(candidate)
        if not folded.strip():
            return None
        outcome = align(self.text, folded)
        if outcome is not None and outcome.cost <= self.threshold:
            return outcome
        if not self.tokens:
            return None
        return self._match_tokens(folded)

    def _match_tokens(self, folded: str) -> Optional[MatchOutcome]:
        # Every token must match on its own; cost is the length-weighted mean
        weighted = 0.0
        length = 0
        spans: List[Span] = []
        for token in self.tokens:
            outcome = align(token, folded)
            if outcome is None or outcome.cost > self.threshold:
                return None
            weighted += outcome.cost * len(token)
            length += len(token)
            spans.extend(outcome.spans)
        return MatchOutcome(weighted / length, merge_spans(spans))


class Matcher:
    """Fuzzy, location-independent, case-insensitive matcher.

    Parameters
    ----------
    threshold: float
        Maximum accepted cost; a cost above it is not a match.
    min_length: int
        Queries shorter than this (after normalization) are never matched.
    """

    def __init__(
        self, threshold: float = DEFAULT_THRESHOLD, min_length: int = DEFAULT_MIN_LENGTH
    ) -> None:
        self.threshold = threshold
        self.min_length = min_length

    def compile(self, query: Optional[str]) -> Optional[CompiledQuery]:
        """Prepare a query, or return None if it is too short to match."""
        text = normalize(query)
        if len(text) < self.min_length:
            return None
        tokens = tuple(t.text for t in tokenize(text) if len(t.text) >= self.min_length)
        if tokens == (text,):
            tokens = ()
        return CompiledQuery(text=text, tokens=tokens, threshold=self.threshold)

    def match(self, query: Optional[str], candidate: Optional[str]) -> Optional[MatchOutcome]:
        """Match `query` against `candidate`; spans index into the raw candidate."""
        compiled = self.compile(query)
        if compiled is None:
            return None
        return compiled.match(candidate)
