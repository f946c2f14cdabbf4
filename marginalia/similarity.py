"""
Text similarity primitives shared by every matching layer.

All comparisons run on normalized text: lowercased, stripped of anything
that is neither a word character nor whitespace, with whitespace collapsed.
"""

import re

from marginalia.config import EDIT_DISTANCE_GUARD

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

CONTAINMENT_SCORE = 0.85


def normalize(text: str) -> str:
    """
    Normalize text for comparison.

    Lowercases, removes characters that are neither word characters nor
    whitespace, collapses whitespace runs to a single space and trims.
    Applying it twice gives the same result as applying it once.
    """
    text = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def normalize_with_offsets(text: str) -> tuple[str, list[int]]:
    """
    Normalize text while remembering where each character came from.

    Returns:
        Tuple of (normalized text, offsets) where offsets[i] is the index in
        the raw text of the character that produced normalized character i.
    """
    chars: list[str] = []
    offsets: list[int] = []
    pending_space: int | None = None

    for index, char in enumerate(text):
        if char.isspace():
            if chars and pending_space is None:
                pending_space = index
            continue
        for lowered in char.lower():
            if _NON_WORD.match(lowered):
                continue
            if pending_space is not None:
                chars.append(" ")
                offsets.append(pending_space)
                pending_space = None
            chars.append(lowered)
            offsets.append(index)

    return "".join(chars), offsets


def set_similarity(a: str, b: str) -> float:
    """
    Word-set similarity between two strings.

    Returns 1.0 for identical normalized text, 0.85 when one contains the
    other, and the Jaccard ratio of the word sets otherwise. A string that
    normalizes to nothing shares nothing with a non-empty one.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    na, nb = normalize(a), normalize(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0
    if na in nb or nb in na:
        return CONTAINMENT_SCORE

    words_a = set(na.split(" "))
    words_b = set(nb.split(" "))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def levenshtein(a: str, b: str) -> int:
    """Character-level edit distance (insertions, deletions, substitutions)."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def bounded_edit_similarity(a: str, b: str) -> float:
    """
    Edit-distance similarity with a guard against quadratic blowup.

    Returns ``1 - distance / max(len(a), len(b))`` on normalized text. When
    the combined normalized length exceeds the guard, falls back to
    :func:`set_similarity`.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    na, nb = normalize(a), normalize(b)
    if na == nb:
        return 1.0
    if len(na) + len(nb) > EDIT_DISTANCE_GUARD:
        return set_similarity(a, b)

    return 1 - levenshtein(na, nb) / max(len(na), len(nb))
