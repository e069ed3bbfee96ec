import pytest

from cli import prompts
from clone.conflicts import Decision


@pytest.fixture
def answers(monkeypatch):
    queue = []

    def fake_input(prompt=''):
        return queue.pop(0)

    monkeypatch.setattr('builtins.input', fake_input)
    return queue


def test_get_user_input_uses_default_on_empty_answer(answers):
    answers.extend([''])
    assert prompts.get_user_input("Source MongoDB URI", 'mongodb://localhost') == 'mongodb://localhost'


def test_get_user_input_repeats_until_answered(answers, capsys):
    answers.extend(['', '  mongodb://db  '])
    assert prompts.get_user_input("Destination MongoDB URI") == 'mongodb://db'
    assert 'Please provide a value.' in capsys.readouterr().out


def test_select_all_returns_every_name(answers):
    answers.extend(['0'])
    assert prompts.prompt_database_selection(['a', 'b', 'c']) == ['a', 'b', 'c']


def test_selection_keeps_offered_order_and_retries_bad_input(answers, capsys):
    answers.extend(['9', 'x', '3 1'])
    assert prompts.prompt_database_selection(['a', 'b', 'c']) == ['a', 'c']
    assert capsys.readouterr().out.count('Invalid selection') == 2


def test_empty_selection(answers):
    answers.extend([''])
    assert prompts.prompt_collection_selection(['orders']) == []


def test_single_database(answers):
    answers.extend(['5', '1'])
    assert prompts.prompt_single_database(['shop', 'billing']) == 'billing'


@pytest.mark.parametrize('answer, decision', [
    ('o', Decision.OVERWRITE),
    ('Skip', Decision.SKIP),
    ('c', Decision.ABORT),
])
def test_conflict_decision(answers, answer, decision):
    answers.extend(['?', answer])
    assert prompts.prompt_conflict_decision('shop') is decision


def test_confirmation_repeats_until_yes_or_no(answers):
    answers.extend(['maybe', 'y'])
    assert prompts.prompt_to_be_sure() is True
    answers.extend(['N'])
    assert prompts.prompt_to_be_sure() is False
