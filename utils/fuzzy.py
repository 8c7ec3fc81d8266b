from __future__ import annotations

from typing import Iterable, Optional

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

# Soundex digit for each letter A..Z; "0" means the letter is not encoded
_SOUNDEX_CODES = "01230120022455012623010202"

SMART_MATCH_THRESHOLD = 70.0


def levenshtein(a: str, b: str) -> int:
    """Case-insensitive edit distance."""
    return Levenshtein.distance(a, b, processor=str.lower)


def similarity(a: str, b: str) -> float:
    """Similarity as a percentage, 100.0 for identical strings."""
    if not a and not b:
        return 100.0
    return Levenshtein.normalized_similarity(a, b, processor=str.lower) * 100.0


def fuzzy_match(a: str, b: str, threshold: float) -> bool:
    return similarity(a, b) >= threshold


def find_best_match(text: str, options: Iterable[str], threshold: float) -> Optional[str]:
    best = process.extractOne(
        text,
        list(options),
        scorer=Levenshtein.normalized_similarity,
        processor=str.lower,
        score_cutoff=threshold / 100.0,
    )
    return best[0] if best else None


def soundex(s: str) -> str:
    letters = [c for c in s.upper() if "A" <= c <= "Z"]
    if not letters:
        return "0000"
    out = [letters[0]]
    prev = "0"
    for c in letters[1:]:
        if len(out) >= 4:
            break
        code = _SOUNDEX_CODES[ord(c) - ord("A")]
        if code != "0" and code != prev:
            out.append(code)
            prev = code
    return "".join(out).ljust(4, "0")


def sounds_like(a: str, b: str) -> bool:
    return soundex(a) == soundex(b)


def smart_match(text: str, target: str) -> bool:
    """Exact, containment, >=70% similarity, then phonetic."""
    text, target = text.lower().strip(), target.lower().strip()
    if not text or not target:
        return False
    if text == target:
        return True
    if target in text or text in target:
        return True
    if fuzzy_match(text, target, SMART_MATCH_THRESHOLD):
        return True
    return sounds_like(text, target)


def find_smart_match(text: str, options: Iterable[str]) -> Optional[str]:
    options = list(options)
    low = text.lower().strip()
    if not low:
        return None
    for option in options:
        opt = option.lower()
        if low == opt or opt in low or low in opt:
            return option
    best = find_best_match(text, options, SMART_MATCH_THRESHOLD)
    if best is not None:
        return best
    for option in options:
        if sounds_like(text, option):
            return option
    return None
