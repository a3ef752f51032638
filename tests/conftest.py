import os
import tempfile

# Configuration is read from the environment when config.py is imported
_tmp_dir = tempfile.mkdtemp(prefix='code-alchemists-')
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(_tmp_dir, 'test.db')
os.environ['ADMIN_FILE'] = os.path.join(_tmp_dir, 'admin.json')
os.environ['JWT_SECRET'] = 'test-secret-for-code-alchemists-suite-0123456789'
os.environ['LOG_LEVEL'] = 'WARNING'

import pytest  # noqa: E402

from app import app as flask_app  # noqa: E402
from identity import create_user, issue_token  # noqa: E402
from models import db, Participant, Question  # noqa: E402


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, RESUBMISSION_POLICY='ignore')
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make_user(email=None, full_name=None, is_admin=False, password='secret123'):
        counter['n'] += 1
        email = email or f'user{counter["n"]}@example.com'
        return create_user(email, password, full_name=full_name or f'User {counter["n"]}', is_admin=is_admin)
    return _make_user


@pytest.fixture
def make_participant(app):
    def _make_participant(user, language='python', score=0, **fields):
        participant = Participant(user_id=user.id, selected_language=language, score=score, **fields)
        db.session.add(participant)
        db.session.commit()
        return participant
    return _make_participant


@pytest.fixture
def make_question(app):
    def _make_question(title='Fix the loop', language='python', points=20, enabled=True, **fields):
        question = Question(
            title=title,
            language=language,
            points=points,
            enabled=enabled,
            faulty_code=fields.pop('faulty_code', 'for i in range(10)\n    print(i)'),
            correct_code=fields.pop('correct_code', 'for i in range(10):\n    print(i)'),
            **fields
        )
        db.session.add(question)
        db.session.commit()
        return question
    return _make_question


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        return {'Authorization': f'Bearer {issue_token(user)}'}
    return _auth_headers


@pytest.fixture
def admin_headers(make_user, auth_headers):
    admin = make_user(email='admin@example.com', full_name='Admin', is_admin=True)
    return auth_headers(admin)


@pytest.fixture
def fresh():
    """Read a row again, bypassing anything cached in the test's session."""
    def _fresh(model, object_id):
        db.session.expire_all()
        return db.session.get(model, object_id)
    return _fresh
