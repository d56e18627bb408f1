from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


def load_words(path: str | Path) -> list[str]:
    """Read a JSON array of words, lowercased, stripped and de-duplicated."""
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"word list {path} must be a JSON array")

    words: list[str] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, str):
            continue
        w = item.strip().lower()
        if w and w not in seen:
            seen.add(w)
            words.append(w)
    if not words:
        raise ValueError(f"word list {path} is empty")
    return words


class WordBank:
    def __init__(self, words: Iterable[str], rng: random.Random | None = None) -> None:
        self._words = tuple(words)
        self._index = frozenset(self._words)
        self._rng = rng or random.Random()

    @classmethod
    def from_file(cls, path: str | Path, rng: random.Random | None = None) -> WordBank:
        words = load_words(path)
        logger.info("Loaded %d words from %s", len(words), path)
        return cls(words, rng=rng)

    def __len__(self) -> int:
        return len(self._words)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self.contains(word)

    def contains(self, word: str) -> bool:
        return word.strip().lower() in self._index

    def pick(self, count: int = 3, exclude: Iterable[str] = ()) -> list[str]:
        """Pick ``count`` distinct words, skipping ``exclude`` while enough remain."""
        count = max(0, min(count, len(self._words)))
        excluded = set(exclude)
        available = [w for w in self._words if w not in excluded]
        if len(available) < count:
            available = list(self._words)
        return self._rng.sample(available, count)
