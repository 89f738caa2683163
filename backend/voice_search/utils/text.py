"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens used by the keyword index and the hashed embedder."""
    return TOKEN_RE.findall(text.lower())


def query_terms(query: str) -> list[str]:
    """Split a query on whitespace into lowercase terms, dropping empties."""
    return [term for term in WHITESPACE_RE.split(query.lower()) if term]
