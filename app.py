import json
import logging
import os

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_compress import Compress  # Import Flask-Compress

from admin import admin_bp
from config import Config
from errors import ServiceError, ValidationError
from identity import bearer_token, create_user, verify_token
from models import db, Participant, Question, User, Profile
from scoring import parse_points, resolve_participant, select_language, solved_question_ids, submit_correct

app = Flask(__name__)
app.config.from_object(Config)

logging.basicConfig(
    level=app.config['LOG_LEVEL'],
    format='%(asctime)s %(levelname)s %(name)s %(threadName)s : %(message)s',
)
logger = logging.getLogger('code_alchemists')

# Enable CORS for all routes
CORS(app, resources={r"/*": {"origins": app.config['CORS_ORIGINS'], "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"]}})
Compress(app)  # Initialize Flask-Compress to reduce response size

db.init_app(app)


@app.errorhandler(ServiceError)
def handle_service_error(e):
    return jsonify({'error': e.message}), e.status_code


def init_db():
    """Create tables and the initial admin account from ADMIN_FILE."""
    db.create_all()

    admin_file_path = app.config['ADMIN_FILE']
    if not os.path.exists(admin_file_path):
        logger.warning("No admin file found at %s, skipping admin creation", admin_file_path)
        return

    try:
        with open(admin_file_path, 'r') as file:
            admin_data = json.load(file)
        if User.query.filter_by(email=admin_data['email']).first():
            return
        create_user(
            admin_data['email'],
            admin_data['password'],
            full_name=admin_data.get('full_name'),
            is_admin=True
        )
        logger.info("Admin user created from %s: %s", admin_file_path, admin_data['email'])
    except (OSError, ValueError, KeyError, ServiceError) as e:
        db.session.rollback()
        logger.error("Error loading admin credentials from %s: %s", admin_file_path, e)


# Create database tables and admin user
with app.app_context():
    os.makedirs(app.instance_path, exist_ok=True)
    init_db()


app.register_blueprint(admin_bp)


# Routes
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'ok': True})


@app.route('/submit', methods=['POST'])
def submit():
    data = request.get_json(silent=True) or {}

    points = parse_points(data.get('points'))

    # A bearer token, when present, must be valid; otherwise fall back to id or email
    token = bearer_token(request)
    user = verify_token(token) if token else None

    try:
        participant = resolve_participant(
            user=user,
            participant_id=data.get('participantId'),
            email=data.get('email'),
            selected_language=data.get('selectedLanguage')
        )
        result = submit_correct(
            participant,
            data.get('questionId'),
            data.get('submittedCode'),
            points,
            time_left_seconds=data.get('timeLeftSeconds'),
            question_number=data.get('questionNumber')
        )
    except ServiceError:
        raise
    except Exception as e:
        db.session.rollback()
        logger.exception("Error processing submission")
        return jsonify({'error': f'Failed to process submission: {str(e)}'}), 500

    return jsonify({
        'success': True,
        'participant_id': result['participant_id'],
        'new_score': result['new_score'],
        'already_solved': result['already_solved']
    }), 200


@app.route('/select-language', methods=['POST'])
def select_language_route():
    data = request.get_json(silent=True) or {}

    try:
        select_language(
            data.get('language'),
            user_id=data.get('userId'),
            email=data.get('email')
        )
    except ServiceError:
        raise
    except Exception as e:
        db.session.rollback()
        logger.exception("Error selecting language")
        return jsonify({'error': f'Failed to select language: {str(e)}'}), 500

    return jsonify({'success': True}), 200


@app.route('/api/questions', methods=['GET'])
def get_questions():
    language = request.args.get('language')
    if language not in app.config['ALLOWED_LANGUAGES']:
        raise ValidationError('Invalid language')

    questions = Question.query.filter_by(language=language, enabled=True).order_by(
        Question.created_at.asc(), Question.id.asc()
    ).all()

    return jsonify({
        'questions': [question.to_dict() for question in questions],
        'count': len(questions)
    }), 200


# Results page: the caller's own standing
@app.route('/api/participant', methods=['GET'])
def get_own_participant():
    token = bearer_token(request)
    if not token:
        return jsonify({'error': 'Authorization token is required'}), 401
    user = verify_token(token)

    participant = Participant.query.filter_by(user_id=user.id).first()
    if participant is None:
        return jsonify({'error': 'Participant not found'}), 404
    profile = Profile.query.filter_by(user_id=user.id).first()

    participant_data = participant.to_dict()
    participant_data['full_name'] = profile.full_name if profile else None
    participant_data['email'] = profile.email if profile else user.email

    return jsonify({
        'participant': participant_data,
        'solved_question_ids': solved_question_ids(participant.id)
    }), 200


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 8787)))
