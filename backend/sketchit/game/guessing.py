from __future__ import annotations

import re
from enum import Enum


CLOSE_MAX_DISTANCE = 2
CLOSE_MIN_SIMILARITY = 0.6


class Verdict(str, Enum):
    EXACT = "exact"
    CLOSE = "close"
    MISS = "miss"


def normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance (insert, delete, substitute)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(
                prev[j] + 1,
                cur[j - 1] + 1,
                prev[j - 1] + (ca != cb),
            ))
        prev = cur
    return prev[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / longest


def classify(text: str, target: str) -> Verdict:
    guess = normalize(text)
    answer = normalize(target)
    if not guess or not answer:
        return Verdict.MISS
    if guess == answer:
        return Verdict.EXACT
    if edit_distance(guess, answer) <= CLOSE_MAX_DISTANCE or similarity(guess, answer) > CLOSE_MIN_SIMILARITY:
        return Verdict.CLOSE
    return Verdict.MISS


def contains_answer(text: str, target: str) -> bool:
    """True when the target word appears anywhere inside ``text``."""
    answer = normalize(target)
    return bool(answer) and answer in normalize(text)
