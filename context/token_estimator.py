"""Heuristic token estimation

Weights per character class, tuned for mixed Russian/English chat text:
- whitespace, Latin letters and digits: ~4 characters per token
- Cyrillic: ~2 characters per token (multi-byte in UTF-8)
- CJK ideographs: ~1 character per token
- Hiragana/Katakana: ~1.3 characters per token
- punctuation and everything else: ~2 characters per token
plus a small overhead per whitespace-separated word.

This is for local budgeting and statistics only, never for cutting requests.
"""

from typing import Iterable

WORD_OVERHEAD = 0.1


def _char_weight(char: str) -> float:
    if char.isspace():
        return 0.25
    code = ord(char)
    if 0x0400 <= code <= 0x04FF:
        return 0.5
    if 0x4E00 <= code <= 0x9FFF:
        return 1.0
    if 0x3040 <= code <= 0x30FF:
        return 0.75
    if char.isalnum():
        return 0.25
    return 0.5


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a string

    Returns 0 for empty or blank text and at least 1 otherwise.
    """
    if not text or text.isspace():
        return 0

    token_count = sum(_char_weight(char) for char in text)
    token_count += len(text.split()) * WORD_OVERHEAD

    return max(1, int(token_count))


def estimate_tokens_for_messages(texts: Iterable[str]) -> int:
    return sum(estimate_tokens(text) for text in texts)
