"""
Vote aggregation.

Votes arrive as raw card strings. Each one is classified as either a numeric
card ("0", "0.5", "13") or a symbol card ("?", "☕", anything else); only
numeric cards contribute to the average.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping

from models import RoomStats


# ASCII decimal literal: no digit separators, no non-ASCII digits
_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


class VoteKind(str, Enum):
    NUMERIC = "numeric"
    SYMBOL = "symbol"


@dataclass(frozen=True)
class Vote:
    raw: str
    kind: VoteKind
    number: float | None = None


def parse_vote(raw: str) -> Vote:
    text = str(raw).strip()
    if _NUMBER_RE.fullmatch(text):
        number = float(text)
        if math.isfinite(number):
            return Vote(raw=raw, kind=VoteKind.NUMERIC, number=number)
    return Vote(raw=raw, kind=VoteKind.SYMBOL)


def compute_stats(votes: Mapping[str, str | None] | Iterable[str | None]) -> RoomStats:
    """Aggregate a vote mapping (or a plain sequence of votes).

    The mode is the first value, in iteration order, to reach the running
    maximum count; later values that only tie it do not replace it.
    """
    values = votes.values() if isinstance(votes, Mapping) else votes
    cast = [v for v in values if v is not None]
    if not cast:
        return RoomStats()

    freq: dict[str, int] = {}
    max_count = 0
    mode: str | None = None
    for v in cast:
        freq[v] = freq.get(v, 0) + 1
        if freq[v] > max_count:
            max_count = freq[v]
            mode = v

    numbers = [p.number for p in map(parse_vote, cast) if p.kind is VoteKind.NUMERIC]
    average = sum(numbers) / len(numbers) if numbers else None

    return RoomStats(
        total_votes=len(cast),
        unique_values=len(freq),
        most_frequent=mode,
        average=average,
    )
