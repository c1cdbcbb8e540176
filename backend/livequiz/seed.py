import json

from livequiz import db
from livequiz.models import Admin, Lobby, Question, Quiz

DEV_ADMIN = {'name': 'Dev Admin', 'email': 'admin@dev.local', 'password': 'dev123456'}

SAMPLE_QUESTIONS = [
    {
        'text': 'Which planet is known as the Red Planet?',
        'options': [{'id': 'A', 'text': 'Mars'}, {'id': 'B', 'text': 'Venus'}, {'id': 'C', 'text': 'Jupiter'}],
        'correct': 'A',
        'time_limit': 15,
    },
    {
        'text': 'What is the chemical symbol for gold?',
        'options': [{'id': 'A', 'text': 'Ag'}, {'id': 'B', 'text': 'Au'}, {'id': 'C', 'text': 'Gd'}, {'id': 'D', 'text': 'Go'}],
        'correct': 'B',
        'time_limit': 30,
    },
]


def seed_development_data():
    """Create a dev admin, a two-question quiz and a waiting lobby for it."""
    admin = Admin(name=DEV_ADMIN['name'], email=DEV_ADMIN['email'])
    admin.set_password(DEV_ADMIN['password'])
    db.session.add(admin)
    db.session.flush()

    quiz = Quiz(admin_id=admin.id, title='Sample quiz', description='Seeded for development', published=True)
    for index, q in enumerate(SAMPLE_QUESTIONS):
        quiz.questions.append(Question(
            text=q['text'],
            options=json.dumps(q['options']),
            correct_option_id=q['correct'],
            time_limit_seconds=q['time_limit'],
            order_index=index,
        ))
    db.session.add(quiz)
    db.session.flush()

    lobby = Lobby(quiz_id=quiz.id, admin_id=admin.id, status='waiting')
    db.session.add(lobby)
    db.session.commit()
    return admin, lobby
