"""
Script-aware tokenizer shared by the hybrid scorer and MMR similarity.

Alphabetic and Hangul text is segmented on whitespace and punctuation.
Han and Kana runs carry no word boundaries, so they are split into
overlapping character bigrams. Tokens of a single character are dropped.
"""

from __future__ import annotations

import re
import unicodedata
from collections import Counter

_WORD_RUN = re.compile(r"[^\W_]+")

_HANGUL = "hangul"
_CJK = "cjk"
_OTHER = "other"


def _script_of(char: str) -> str:
    code = ord(char)
    if 0xAC00 <= code <= 0xD7AF or 0x1100 <= code <= 0x11FF or 0x3130 <= code <= 0x318F:
        return _HANGUL
    if (
        0x4E00 <= code <= 0x9FFF
        or 0x3400 <= code <= 0x4DBF
        or 0xF900 <= code <= 0xFAFF
        or 0x3040 <= code <= 0x30FF
    ):
        return _CJK
    return _OTHER


def _split_scripts(run: str) -> list[tuple[str, str]]:
    """Split a letter/digit run into (script, segment) pieces."""
    segments: list[tuple[str, str]] = []
    start = 0
    current = _script_of(run[0])
    for i in range(1, len(run)):
        script = _script_of(run[i])
        if script != current:
            segments.append((current, run[start:i]))
            start, current = i, script
    segments.append((current, run[start:]))
    return segments


def normalize_text(text: str) -> str:
    """NFKC-normalise and case-fold."""
    return unicodedata.normalize("NFKC", text).casefold()


def tokenize(text: str, min_length: int = 2) -> list[str]:
    """
    Tokenize text into case-folded terms, keeping duplicates and order.

    >>> tokenize("Gravity and 마찰력!")
    ['gravity', 'and', '마찰력']
    """
    if not text:
        return []

    tokens: list[str] = []
    for run in _WORD_RUN.findall(normalize_text(text)):
        for script, segment in _split_scripts(run):
            if script == _CJK and len(segment) > 2:
                tokens.extend(segment[i:i + 2] for i in range(len(segment) - 1))
            else:
                tokens.append(segment)

    return [token for token in tokens if len(token) >= min_length]


def term_counts(text: str) -> Counter[str]:
    """Bag-of-tokens representation of a text."""
    return Counter(tokenize(text))
