from livequiz.services.sessions.scoring import apply_score, correct_participants, grade, rank
from livequiz.services.sessions.state import AnswerRecord, Participant

from conftest import make_question


def test_grade_is_strict_equality():
    question = make_question(1, 'B')
    assert grade(question, 'B') is True
    assert grade(question, 'A') is False
    assert grade(question, 'b') is False


def test_apply_score_adds_one():
    p = Participant(id=1, nickname='Ana')
    apply_score(p)
    apply_score(p)
    assert p.score == 2


def test_rank_orders_by_score_then_nickname():
    people = [
        Participant(id=1, nickname='Carla', score=1),
        Participant(id=2, nickname='Bob', score=3),
        Participant(id=3, nickname='Ana', score=1),
        Participant(id=4, nickname='Dan', score=0),
    ]
    ranking = rank(people)
    assert [r['nickname'] for r in ranking] == ['Bob', 'Ana', 'Carla', 'Dan']
    assert [r['position'] for r in ranking] == [1, 2, 3, 4]
    assert ranking[0] == {'id': 2, 'nickname': 'Bob', 'score': 3, 'position': 1}


def test_rank_ties_get_distinct_positions():
    ranking = rank([Participant(id=2, nickname='Bob', score=1), Participant(id=1, nickname='Ana', score=1)])
    assert [(r['nickname'], r['position']) for r in ranking] == [('Ana', 1), ('Bob', 2)]


def test_rank_empty():
    assert rank([]) == []


def test_correct_participants_sorted_by_nickname_and_skips_missing():
    people = [Participant(id=1, nickname='Zoe'), Participant(id=2, nickname='Ana'), Participant(id=3, nickname='Mia')]
    answers = {
        1: AnswerRecord(1, 'A', True),
        2: AnswerRecord(2, 'A', True),
        3: AnswerRecord(3, 'C', False),
    }
    assert correct_participants(people, answers) == [{'id': 2, 'nickname': 'Ana'}, {'id': 1, 'nickname': 'Zoe'}]
    assert correct_participants(people, {}) == []
