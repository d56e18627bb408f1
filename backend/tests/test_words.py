import json
import random

import pytest

from sketchit.config import Config
from sketchit.game.words import WordBank, load_words


def test_bundled_word_list_is_lowercase_and_unique():
    words = load_words(Config.WORDS_FILE)
    assert len(words) >= 20
    assert all(w == w.strip().lower() for w in words)
    assert len(words) == len(set(words))


def test_load_words_normalizes(tmp_path):
    path = tmp_path / 'words.json'
    path.write_text(json.dumps(['Cat', ' dog ', 'cat', 3, '', 'Hot Dog']), encoding='utf-8')

    assert load_words(path) == ['cat', 'dog', 'hot dog']


def test_load_words_rejects_non_list(tmp_path):
    path = tmp_path / 'words.json'
    path.write_text(json.dumps({'words': ['cat']}), encoding='utf-8')

    with pytest.raises(ValueError):
        load_words(path)


def test_pick_returns_distinct_words():
    bank = WordBank(['a1', 'b2', 'c3', 'd4', 'e5'], rng=random.Random(1))
    picked = bank.pick(3)
    assert len(picked) == 3
    assert len(set(picked)) == 3
    assert all(w in bank for w in picked)


def test_pick_avoids_excluded_while_possible():
    bank = WordBank(['a1', 'b2', 'c3', 'd4', 'e5'], rng=random.Random(1))
    assert set(bank.pick(2, exclude={'a1', 'b2', 'c3'})) == {'d4', 'e5'}
    # not enough left: fall back to the whole list
    assert len(bank.pick(3, exclude={'a1', 'b2', 'c3'})) == 3


def test_pick_never_exceeds_list_size():
    bank = WordBank(['a1', 'b2'])
    assert sorted(bank.pick(5)) == ['a1', 'b2']


def test_contains_is_case_insensitive():
    bank = WordBank(['apple'])
    assert bank.contains(' Apple ')
    assert 'APPLE' in bank
    assert 42 not in bank
