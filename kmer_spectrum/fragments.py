"""
Fragment Splitter: splits sequence lines on anything that is not A, C, G or T.

Only maximal runs of at least k valid bases are kept; shorter runs cannot
hold a single k-mer window. Matching is case-sensitive, so lowercase bases
act as separators too.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterator, Pattern


@lru_cache(maxsize=None)
def _run_pattern(min_length: int) -> Pattern[str]:
    return re.compile(f"[ACGT]{{{min_length},}}")


def split_fragments(line: str, k: int) -> Iterator[str]:
    """
    Yield each maximal A/C/G/T run in 'line' whose length is >= k, left to right.
    """
    for match in _run_pattern(k).finditer(line):
        yield match.group()
