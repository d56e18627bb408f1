import pytest

from sketchit.game.guessing import Verdict, classify, contains_answer, edit_distance, similarity


@pytest.mark.parametrize('text', ['apple', 'APPLE', '  Apple  ', 'aPpLe\n'])
def test_exact_ignores_case_and_surrounding_whitespace(text):
    assert classify(text, 'apple') is Verdict.EXACT


def test_exact_collapses_inner_whitespace():
    assert classify('ice   cream', 'ice cream') is Verdict.EXACT


def test_one_edit_on_longer_word_is_close():
    assert classify('aple', 'apple') is Verdict.CLOSE
    assert classify('bannana', 'banana') is Verdict.CLOSE
    assert classify('castel', 'castle') is Verdict.CLOSE


def test_high_similarity_is_close():
    # 3 edits, but 9 of 12 characters line up
    assert edit_distance('lighthoxxxse', 'lighthouse') == 3
    assert classify('lighthoxxxse', 'lighthouse') is Verdict.CLOSE


def test_unrelated_string_is_miss():
    assert classify('xylophone', 'elephant') is Verdict.MISS
    assert classify('pizza', 'giraffe') is Verdict.MISS


def test_empty_text_is_miss():
    assert classify('   ', 'apple') is Verdict.MISS


def test_edit_distance_basics():
    assert edit_distance('', 'abc') == 3
    assert edit_distance('kitten', 'sitting') == 3
    assert edit_distance('same', 'same') == 0


def test_similarity_bounds():
    assert similarity('', '') == 1.0
    assert similarity('abc', 'xyz') == 0.0
    assert similarity('abcd', 'abce') == pytest.approx(0.75)


def test_contains_answer():
    assert contains_answer('is it a  Snail?', 'snail')
    assert contains_answer('ice   cream cone', 'ice cream')
    assert not contains_answer('snake', 'snail')
    assert not contains_answer('anything', '')
