from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
import json

from livequiz import db, ENGINE_KEY
from livequiz.models import Lobby, Participant, Question, Quiz, OPTION_IDS, TIME_LIMITS
from livequiz.services.sessions.scoring import rank
from livequiz.services.sessions.state import Participant as ParticipantRecord


lobbies = Blueprint('lobbies', __name__)

MAX_QUESTIONS = 20


def _validate_question(q, number):
    """Return an error message for an invalid question payload, else None."""
    if not isinstance(q, dict):
        return f'Question {number} must be an object'
    text = (q.get('text') or '').strip()
    if not 5 <= len(text) <= 500:
        return f'Question {number}: text must be 5-500 characters'
    options = q.get('options')
    if not isinstance(options, list) or not 2 <= len(options) <= 4:
        return f'Question {number}: 2-4 options are required'
    ids = []
    for opt in options:
        if not isinstance(opt, dict) or opt.get('id') not in OPTION_IDS:
            return f'Question {number}: option ids must be one of {", ".join(OPTION_IDS)}'
        if not 1 <= len((opt.get('text') or '').strip()) <= 200:
            return f'Question {number}: option text must be 1-200 characters'
        ids.append(opt['id'])
    if len(set(ids)) != len(ids):
        return f'Question {number}: option ids must be unique'
    if q.get('correctOptionId') not in ids:
        return f'Question {number}: correctOptionId must match an option'
    if q.get('timeLimitSeconds') not in TIME_LIMITS:
        return f'Question {number}: timeLimitSeconds must be one of {list(TIME_LIMITS)}'
    return None


@lobbies.route('/quizzes', methods=['POST'])
@login_required
def create_quiz():
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    description = (data.get('description') or '').strip()
    questions = data.get('questions')
    if not 3 <= len(title) <= 200:
        return jsonify({'error': 'Title must be 3-200 characters'}), 400
    if len(description) > 500:
        return jsonify({'error': 'Description must be at most 500 characters'}), 400
    if not isinstance(questions, list) or not 1 <= len(questions) <= MAX_QUESTIONS:
        return jsonify({'error': f'A quiz needs 1-{MAX_QUESTIONS} questions'}), 400
    for number, q in enumerate(questions, start=1):
        error = _validate_question(q, number)
        if error:
            return jsonify({'error': error}), 400

    quiz = Quiz(admin_id=current_user.id, title=title, description=description or None)
    for index, q in enumerate(questions):
        quiz.questions.append(Question(
            text=q['text'].strip(),
            options=json.dumps([{'id': o['id'], 'text': o['text'].strip()} for o in q['options']]),
            correct_option_id=q['correctOptionId'],
            time_limit_seconds=int(q['timeLimitSeconds']),
            order_index=index,
        ))
    db.session.add(quiz)
    db.session.commit()
    current_app.logger.info(f"[quiz-create] quiz={quiz.id} admin={current_user.id} questions={len(questions)}")
    return jsonify(quiz.to_dict(include_answers=True)), 201


@lobbies.route('/quizzes/<int:quiz_id>/publish', methods=['POST'])
@login_required
def publish_quiz(quiz_id):
    quiz = Quiz.query.filter_by(id=quiz_id, admin_id=current_user.id).first()
    if not quiz:
        return jsonify({'error': 'Quiz not found'}), 404
    if not quiz.questions:
        return jsonify({'error': 'Quiz must have at least one question'}), 400

    # Reuse an open lobby for this quiz
    existing = Lobby.query.filter(Lobby.quiz_id == quiz.id, Lobby.status != 'finished').first()
    if existing:
        return jsonify({
            'message': 'Quiz already has an open lobby',
            'lobbyId': existing.lobby_id,
            'joinLink': f'/join/{existing.lobby_id}',
        })

    quiz.published = True
    lobby = Lobby(quiz_id=quiz.id, admin_id=current_user.id, status='waiting')
    db.session.add(quiz)
    db.session.add(lobby)
    db.session.commit()
    current_app.logger.info(f"[publish] quiz={quiz.id} lobby={lobby.lobby_id}")
    return jsonify({
        'message': 'Quiz published',
        'lobbyId': lobby.lobby_id,
        'joinLink': f'/join/{lobby.lobby_id}',
        'quiz': {'id': quiz.id, 'title': quiz.title},
    }), 201


@lobbies.route('/lobbies/<string:lobby_id>', methods=['GET'])
def get_lobby(lobby_id):
    lobby = Lobby.query.filter_by(lobby_id=lobby_id.upper()).first()
    if not lobby:
        return jsonify({'error': 'Lobby not found'}), 404
    return jsonify(lobby.to_dict())


@lobbies.route('/lobbies/<string:lobby_id>/participants', methods=['GET'])
@login_required
def get_participants(lobby_id):
    lobby = Lobby.query.filter_by(lobby_id=lobby_id.upper()).first()
    if not lobby:
        return jsonify({'error': 'Lobby not found'}), 404
    if lobby.admin_id != current_user.id:
        return jsonify({'error': 'Access denied'}), 403
    rows = Participant.query.filter_by(lobby_id=lobby.lobby_id).order_by(Participant.joined_at, Participant.id).all()
    return jsonify({'participants': [p.to_dict() for p in rows]})


@lobbies.route('/lobbies/<string:lobby_id>/results', methods=['GET'])
def get_results(lobby_id):
    """Ranking for a lobby: live session if one is in memory, else persisted scores."""
    lobby = Lobby.query.filter_by(lobby_id=lobby_id.upper()).first()
    if not lobby:
        return jsonify({'error': 'Lobby not found'}), 404
    live = current_app.extensions[ENGINE_KEY].snapshot(lobby.lobby_id)
    if live is not None:
        return jsonify(live)
    rows = Participant.query.filter_by(lobby_id=lobby.lobby_id).all()
    records = [ParticipantRecord(id=p.id, nickname=p.nickname, score=int(p.score or 0)) for p in rows]
    return jsonify({
        'lobbyId': lobby.lobby_id,
        'status': lobby.status,
        'ranking': rank(records),
    })
