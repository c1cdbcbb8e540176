from typing import Iterable, List

from .state import Participant, Question


def grade(question: Question, submitted_option_id: str) -> bool:
    """Strict equality against the question's correct option."""
    return submitted_option_id == question.correct_option_id


def apply_score(participant: Participant) -> None:
    """Credit one correctly answered question.

    Callers guarantee at most one call per (participant, question); the
    one-answer rule lives in the scheduler.
    """
    participant.score += 1


def rank(participants: Iterable[Participant]) -> List[dict]:
    """Order by score descending then nickname ascending.

    Positions are 1-based and contiguous; equal scores still get distinct
    positions, broken by nickname.
    """
    ordered = sorted(participants, key=lambda p: (-p.score, p.nickname))
    return [
        {'id': p.id, 'nickname': p.nickname, 'score': p.score, 'position': position}
        for position, p in enumerate(ordered, start=1)
    ]


def correct_participants(participants: Iterable[Participant], answers: dict) -> List[dict]:
    """Participants whose stored answer is correct, sorted by nickname."""
    winners = [p for p in participants if p.id in answers and answers[p.id].correct]
    winners.sort(key=lambda p: p.nickname)
    return [{'id': p.id, 'nickname': p.nickname} for p in winners]
