from __future__ import annotations

"""Lexical tokenization shared by the keyword index and keyword queries."""

import re

_TOKEN_RE = re.compile(r"[^\W_]+")
MIN_TOKEN_LENGTH = 3


def tokenize(text: str) -> list[str]:
    """Return unique lowercased alphanumeric tokens in first-seen order.

    Underscores and punctuation split tokens, so ``retry_limit`` yields
    ``retry`` and ``limit``. Tokens shorter than three characters are dropped.
    """
    seen: set[str] = set()
    tokens: list[str] = []
    for token in _TOKEN_RE.findall(text.lower()):
        if len(token) < MIN_TOKEN_LENGTH or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens
