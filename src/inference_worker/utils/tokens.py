"""Heuristic token counting used for usage accounting.

This is a stand-in for a real tokenizer: it counts the non-empty pieces left
after splitting on whitespace and common punctuation.
"""

import re

_TOKEN_SPLIT = re.compile(r"\s+|[.,!?;:]")


def count_tokens(text: str) -> int:
    """Return the approximate number of tokens in *text*."""
    if not text:
        return 0
    return sum(1 for piece in _TOKEN_SPLIT.split(text) if piece)
