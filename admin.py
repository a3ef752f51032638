# admin.py
# Administrator routes: participants, contests, questions, submissions and reports

import json
import logging
from datetime import datetime
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from errors import IdentityError, NotFoundError, ValidationError
from identity import bearer_token, delete_user, update_password, verify_token
from models import (db, Announcement, Contest, ContestSettings, Participant, Profile,
                    Question, Submission, CONTEST_STATUSES, DIFFICULTIES)

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)


def admin_required(f):
    """
    Decorate routes to require a bearer token issued to an admin.
    The admin User is available as g.current_user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token(request)
        if not token:
            return jsonify({'error': 'Authorization token is required'}), 401
        user = verify_token(token)
        if not user.is_admin:
            return jsonify({'error': 'Unauthorized access'}), 403
        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def _require_int(data, field):
    value = data.get(field)
    if value is None or value == '':
        raise ValidationError(f'Missing required field: {field}')
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')


def _get_or_404(model, object_id, label):
    obj = db.session.get(model, object_id)
    if not obj:
        raise NotFoundError(f'{label} {object_id} not found')
    return obj


def _profiles_by_user(user_ids):
    if not user_ids:
        return {}
    profiles = Profile.query.filter(Profile.user_id.in_(user_ids)).all()
    return {profile.user_id: profile for profile in profiles}


def _participant_row(participant, profile):
    row = participant.to_dict()
    row['full_name'] = profile.full_name if profile else None
    row['email'] = profile.email if profile else None
    return row


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@admin_bp.route('/admin/remove-participant', methods=['POST'])
@admin_required
def remove_participant():
    data = request.get_json(silent=True) or {}
    if not data.get('participantId') or not data.get('userId'):
        return jsonify({'error': 'participantId and userId are required'}), 400

    participant_id = _require_int(data, 'participantId')
    user_id = _require_int(data, 'userId')

    participant = _get_or_404(Participant, participant_id, 'Participant')
    if participant.user_id != user_id:
        return jsonify({'error': 'userId does not belong to this participant'}), 400

    try:
        # Submissions go with the participant through the relationship cascade
        db.session.delete(participant)
        Profile.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error removing participant %s", participant_id)
        return jsonify({'error': f'Failed to remove participant: {str(e)}'}), 500

    logger.info("Admin %s removed participant %s (user %s)", g.current_user.id, participant_id, user_id)

    try:
        delete_user(user_id)
    except IdentityError as e:
        logger.warning("Participant %s removed but identity %s was not: %s", participant_id, user_id, e.message)
        return jsonify({'success': True, 'warning': e.message}), 200

    return jsonify({'success': True}), 200


@admin_bp.route('/admin/update-password', methods=['POST'])
@admin_required
def update_participant_password():
    data = request.get_json(silent=True) or {}
    if not data.get('userId') or not data.get('newPassword'):
        return jsonify({'error': 'userId and newPassword are required'}), 400

    user = update_password(_require_int(data, 'userId'), data['newPassword'])
    return jsonify({
        'success': True,
        'user': {'id': user.id, 'email': user.email}
    }), 200


@admin_bp.route('/api/admin/participants', methods=['GET'])
@admin_required
def get_participants():
    participants = Participant.query.order_by(Participant.score.desc(), Participant.id.asc()).all()
    profiles = _profiles_by_user([p.user_id for p in participants])

    return jsonify({
        'participants': [_participant_row(p, profiles.get(p.user_id)) for p in participants],
        'count': len(participants)
    }), 200


@admin_bp.route('/api/admin/participants/<int:participant_id>/toggle-block', methods=['POST'])
@admin_required
def toggle_participant_block(participant_id):
    participant = _get_or_404(Participant, participant_id, 'Participant')
    participant.is_blocked = not participant.is_blocked
    db.session.commit()

    logger.info("Participant %s %s", participant_id, 'blocked' if participant.is_blocked else 'unblocked')
    return jsonify({'success': True, 'participant': participant.to_dict()}), 200


@admin_bp.route('/api/admin/participants/<int:participant_id>/reset-score', methods=['POST'])
@admin_required
def reset_participant_score(participant_id):
    participant = _get_or_404(Participant, participant_id, 'Participant')

    # Earlier correct rows stay in the log, so their questions stay solved
    participant.score = 0
    participant.time_taken_seconds = 0
    participant.completed_at = None
    participant.started_at = datetime.utcnow()
    db.session.commit()

    logger.info("Score of participant %s reset", participant_id)
    return jsonify({'success': True, 'participant': participant.to_dict()}), 200


@admin_bp.route('/api/admin/participants/<int:participant_id>/reset-language', methods=['POST'])
@admin_required
def reset_participant_language(participant_id):
    participant = _get_or_404(Participant, participant_id, 'Participant')
    participant.selected_language = None
    db.session.commit()

    logger.info("Language of participant %s cleared", participant_id)
    return jsonify({'success': True, 'participant': participant.to_dict()}), 200


# ---------------------------------------------------------------------------
# Contests
# ---------------------------------------------------------------------------

@admin_bp.route('/api/admin/contests', methods=['GET'])
@admin_required
def get_contests():
    contests = Contest.query.order_by(Contest.created_at.desc(), Contest.id.desc()).all()
    return jsonify({'contests': [contest.to_dict() for contest in contests]}), 200


@admin_bp.route('/api/admin/contests', methods=['POST'])
@admin_required
def create_contest():
    data = request.get_json(silent=True) or {}

    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Missing required field: name'}), 400

    status = data.get('status', 'scheduled')
    if status not in CONTEST_STATUSES:
        return jsonify({'error': f'Invalid status. Must be one of {", ".join(CONTEST_STATUSES)}'}), 400

    duration = data.get('duration_minutes', 30)
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        return jsonify({'error': 'duration_minutes must be a positive integer'}), 400

    contest = Contest(
        name=name,
        description=data.get('description'),
        duration_minutes=duration,
        status=status,
        started_at=datetime.utcnow() if status == 'active' else None,
        created_by=g.current_user.id
    )
    db.session.add(contest)
    db.session.commit()

    logger.info("Contest %s created by admin %s", contest.id, g.current_user.id)
    return jsonify({'success': True, 'contest': contest.to_dict()}), 201


@admin_bp.route('/api/admin/contests/<int:contest_id>/status', methods=['POST'])
@admin_required
def update_contest_status(contest_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in CONTEST_STATUSES:
        return jsonify({'error': f'Invalid status. Must be one of {", ".join(CONTEST_STATUSES)}'}), 400

    contest = _get_or_404(Contest, contest_id, 'Contest')
    contest.status = status
    if status == 'active' and contest.started_at is None:
        contest.started_at = datetime.utcnow()
    db.session.commit()

    logger.info("Contest %s is now %s", contest_id, status)
    return jsonify({'success': True, 'contest': contest.to_dict()}), 200


@admin_bp.route('/api/admin/contests/<int:contest_id>/settings', methods=['GET'])
@admin_required
def get_contest_settings(contest_id):
    contest = _get_or_404(Contest, contest_id, 'Contest')
    settings = contest.settings or ContestSettings(
        contest_id=contest.id,
        auto_save_enabled=True,
        anti_cheat_enabled=True,
        track_tab_switches=True,
        max_attempts_per_question=999
    )
    return jsonify({'settings': settings.to_dict()}), 200


@admin_bp.route('/api/admin/contests/<int:contest_id>/settings', methods=['PUT'])
@admin_required
def save_contest_settings(contest_id):
    contest = _get_or_404(Contest, contest_id, 'Contest')
    data = request.get_json(silent=True) or {}

    settings = contest.settings
    if settings is None:
        settings = ContestSettings(contest_id=contest.id)
        db.session.add(settings)

    for field in ('auto_save_enabled', 'anti_cheat_enabled', 'track_tab_switches'):
        if field in data:
            if not isinstance(data[field], bool):
                db.session.rollback()
                return jsonify({'error': f'{field} must be a boolean'}), 400
            setattr(settings, field, data[field])

    if 'max_attempts_per_question' in data:
        max_attempts = data['max_attempts_per_question']
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
            db.session.rollback()
            return jsonify({'error': 'max_attempts_per_question must be a positive integer'}), 400
        settings.max_attempts_per_question = max_attempts

    db.session.commit()
    return jsonify({'success': True, 'settings': settings.to_dict()}), 200


@admin_bp.route('/api/admin/announcements', methods=['GET'])
@admin_required
def get_announcements():
    rows = db.session.query(Announcement, Contest.name).join(
        Contest, Announcement.contest_id == Contest.id
    ).order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()

    announcements = []
    for announcement, contest_name in rows:
        announcements.append({
            'id': announcement.id,
            'contest_id': announcement.contest_id,
            'contest_name': contest_name,
            'message': announcement.message,
            'created_by': announcement.created_by,
            'created_at': announcement.created_at.isoformat()
        })

    return jsonify({'announcements': announcements}), 200


@admin_bp.route('/api/admin/announcements', methods=['POST'])
@admin_required
def create_announcement():
    data = request.get_json(silent=True) or {}

    message = (data.get('message') or '').strip()
    if not message:
        return jsonify({'error': 'Missing required field: message'}), 400
    contest = _get_or_404(Contest, _require_int(data, 'contest_id'), 'Contest')

    announcement = Announcement(contest_id=contest.id, message=message, created_by=g.current_user.id)
    db.session.add(announcement)
    db.session.commit()

    return jsonify({
        'success': True,
        'announcement': {
            'id': announcement.id,
            'contest_id': announcement.contest_id,
            'message': announcement.message,
            'created_at': announcement.created_at.isoformat()
        }
    }), 201


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

def _question_fields(data, partial=False):
    """Validate a question payload. With partial=True only present fields are checked."""
    fields = {}

    if not partial or 'title' in data:
        title = (data.get('title') or '').strip()
        if not title:
            raise ValidationError('Missing required field: title')
        fields['title'] = title

    if not partial or 'language' in data:
        language = data.get('language')
        if language not in current_app.config['ALLOWED_LANGUAGES']:
            raise ValidationError('Invalid language')
        fields['language'] = language

    if not partial or 'difficulty' in data:
        difficulty = data.get('difficulty', 'easy')
        if difficulty not in DIFFICULTIES:
            raise ValidationError(f'Invalid difficulty. Must be one of {", ".join(DIFFICULTIES)}')
        fields['difficulty'] = difficulty

    if not partial or 'points' in data:
        points = data.get('points', 10)
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError('points must be a non-negative integer')
        fields['points'] = points

    if 'test_cases' in data:
        test_cases = data['test_cases']
        # The admin form sends test cases as raw JSON text
        if isinstance(test_cases, str):
            try:
                test_cases = json.loads(test_cases) if test_cases.strip() else None
            except ValueError:
                raise ValidationError('test_cases must be valid JSON')
        fields['test_cases'] = test_cases

    for field in ('problem_statement', 'hint', 'faulty_code', 'correct_code'):
        if field in data:
            fields[field] = data[field]

    if 'enabled' in data:
        if not isinstance(data['enabled'], bool):
            raise ValidationError('enabled must be a boolean')
        fields['enabled'] = data['enabled']

    if 'contest_id' in data:
        contest_id = data['contest_id']
        if contest_id is not None:
            contest_id = _get_or_404(Contest, _require_int(data, 'contest_id'), 'Contest').id
        fields['contest_id'] = contest_id

    return fields


@admin_bp.route('/api/admin/questions', methods=['GET'])
@admin_required
def get_all_questions():
    query = Question.query
    language = request.args.get('language')
    if language:
        query = query.filter_by(language=language)

    questions = query.order_by(Question.created_at.desc(), Question.id.desc()).all()
    return jsonify({
        'questions': [question.to_dict(include_solution=True) for question in questions],
        'count': len(questions)
    }), 200


@admin_bp.route('/api/admin/questions', methods=['POST'])
@admin_required
def add_question():
    data = request.get_json(silent=True) or {}
    fields = _question_fields(data)

    question = Question(created_by=g.current_user.id, **fields)
    db.session.add(question)
    db.session.commit()

    logger.info("Question %s added for %s", question.id, question.language)
    return jsonify({'success': True, 'question': question.to_dict(include_solution=True)}), 201


@admin_bp.route('/api/admin/questions/<int:question_id>', methods=['PUT'])
@admin_required
def update_question(question_id):
    question = _get_or_404(Question, question_id, 'Question')
    data = request.get_json(silent=True) or {}

    for field, value in _question_fields(data, partial=True).items():
        setattr(question, field, value)
    db.session.commit()

    return jsonify({'success': True, 'question': question.to_dict(include_solution=True)}), 200


@admin_bp.route('/api/admin/questions/<int:question_id>', methods=['DELETE'])
@admin_required
def delete_question(question_id):
    question = _get_or_404(Question, question_id, 'Question')

    try:
        Submission.query.filter_by(question_id=question_id).update(
            {Submission.question_id: None}, synchronize_session=False
        )
        db.session.delete(question)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Error deleting question %s", question_id)
        return jsonify({'error': f'Failed to delete question: {str(e)}'}), 500

    logger.info("Question %s deleted", question_id)
    return jsonify({'success': True, 'message': f'Question {question_id} deleted successfully'}), 200


@admin_bp.route('/api/admin/questions/<int:question_id>/toggle', methods=['POST'])
@admin_required
def toggle_question(question_id):
    question = _get_or_404(Question, question_id, 'Question')
    question.enabled = not question.enabled
    db.session.commit()

    return jsonify({'success': True, 'question': question.to_dict(include_solution=True)}), 200


# ---------------------------------------------------------------------------
# Submissions and reports
# ---------------------------------------------------------------------------

@admin_bp.route('/api/admin/submissions', methods=['GET'])
@admin_required
def get_submissions():
    limit = request.args.get('limit', 200, type=int)

    rows = db.session.query(Submission, Participant.user_id, Question.title).join(
        Participant, Submission.participant_id == Participant.id
    ).outerjoin(
        Question, Submission.question_id == Question.id
    ).order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(limit).all()

    profiles = _profiles_by_user(list({user_id for _, user_id, _ in rows}))

    submission_list = []
    for submission, user_id, question_title in rows:
        submission_data = submission.to_dict()
        profile = profiles.get(user_id)
        submission_data['participant_email'] = profile.email if profile else None
        submission_data['participant_name'] = profile.full_name if profile else None
        submission_data['question_title'] = question_title
        submission_list.append(submission_data)

    return jsonify({'submissions': submission_list, 'count': len(submission_list)}), 200


@admin_bp.route('/api/admin/leaderboard', methods=['GET'])
@admin_required
def get_leaderboard():
    query = Participant.query
    language = request.args.get('language')
    if language:
        query = query.filter_by(selected_language=language)

    # Ties on score go to whoever took less time
    participants = query.order_by(
        Participant.score.desc(),
        Participant.time_taken_seconds.asc(),
        Participant.id.asc()
    ).all()
    profiles = _profiles_by_user([p.user_id for p in participants])

    leaderboard_data = []
    for i, participant in enumerate(participants):
        entry = _participant_row(participant, profiles.get(participant.user_id))
        entry['rank'] = i + 1
        entry['time_taken_minutes'] = participant.time_taken_seconds // 60
        leaderboard_data.append(entry)

    return jsonify({
        'leaderboard': leaderboard_data,
        'total_participants': len(leaderboard_data)
    }), 200


@admin_bp.route('/api/admin/dashboard', methods=['GET'])
@admin_required
def get_dashboard():
    top = Participant.query.order_by(Participant.score.desc(), Participant.time_taken_seconds.asc()).limit(5).all()
    profiles = _profiles_by_user([p.user_id for p in top])

    return jsonify({
        'total_participants': Participant.query.count(),
        'active_contests': Contest.query.filter_by(status='active').count(),
        'total_questions': Question.query.count(),
        'total_submissions': Submission.query.count(),
        'top_participants': [_participant_row(p, profiles.get(p.user_id)) for p in top]
    }), 200


@admin_bp.route('/api/admin/analytics', methods=['GET'])
@admin_required
def get_analytics():
    participants = Participant.query.all()
    total_participants = len(participants)
    active_participants = sum(1 for p in participants if p.completed_at is None)

    if total_participants:
        average_score = round(sum(p.score for p in participants) / total_participants)
        average_time = round(sum(p.time_taken_seconds for p in participants) / total_participants / 60)
    else:
        average_score = 0
        average_time = 0

    counts = db.session.query(
        Submission.question_id, Submission.status, func.count(Submission.id)
    ).group_by(Submission.question_id, Submission.status).all()

    question_ids = {question_id for question_id, _, _ in counts if question_id is not None}
    questions = {q.id: q for q in Question.query.filter(Question.id.in_(question_ids)).all()} if question_ids else {}

    question_stats = {}
    for question_id, status, count in counts:
        if question_id not in question_stats:
            question = questions.get(question_id)
            question_stats[question_id] = {
                'question_id': question_id,
                'title': question.title if question else None,
                'difficulty': question.difficulty if question else None,
                'points': question.points if question else None,
                'total': 0,
                'correct': 0,
                'incorrect': 0
            }
        stat = question_stats[question_id]
        stat['total'] += count
        if status == 'correct':
            stat['correct'] += count
        elif status == 'incorrect':
            stat['incorrect'] += count

    return jsonify({
        'total_participants': total_participants,
        'active_participants': active_participants,
        'average_score': average_score,
        'average_time_minutes': average_time,
        'question_stats': list(question_stats.values())
    }), 200
