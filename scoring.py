# scoring.py
# Participant resolution, idempotent point awards and one-time language selection

import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from models import db, Contest, Participant, Profile, Question, Submission, SubmissionAuditLog, User

logger = logging.getLogger(__name__)

CLOSED_CONTEST_STATUSES = ('paused', 'completed')


def _as_int(value):
    if isinstance(value, bool):
        raise ValueError(value)
    return int(value)


def _optional_int(value):
    # Client-reported extras are kept only when they are plain integers
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def parse_points(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError('points is required')
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError('points must be a whole number')
        value = int(value)
    if value < 0:
        raise ValidationError('points must not be negative')
    return value


def get_or_create_participant(user_id, language=None):
    """
    Return the participant row of a user, creating it with a zero score
    on first contact.
    """
    participant = Participant.query.filter_by(user_id=user_id).first()
    if participant:
        return participant

    if language not in current_app.config['ALLOWED_LANGUAGES']:
        language = None

    # New participants join the contest that is currently running, if any
    active_contest = Contest.query.filter_by(status='active').order_by(Contest.started_at.desc()).first()

    participant = Participant(
        user_id=user_id,
        contest_id=active_contest.id if active_contest else None,
        selected_language=language,
        score=0,
        started_at=datetime.utcnow()
    )
    db.session.add(participant)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request created the row first
        db.session.rollback()
        participant = Participant.query.filter_by(user_id=user_id).first()
        if participant is None:
            raise
        return participant

    logger.info("Created participant %s for user %s", participant.id, user_id)
    return participant


def resolve_participant(user=None, participant_id=None, email=None, selected_language=None):
    """
    Work out which participant a submission belongs to.

    An authenticated user always maps to their own participant. Without a
    token the caller must name an existing participant id or the email of a
    known profile.
    """
    if user is not None:
        participant = get_or_create_participant(user.id, selected_language)
        if participant_id is not None:
            try:
                claimed = _as_int(participant_id)
            except (TypeError, ValueError):
                raise UnauthorizedError('Unauthorized or invalid participant')
            if claimed != participant.id:
                raise UnauthorizedError('Participant does not belong to the authenticated user')
        return participant

    if participant_id is not None:
        try:
            pid = _as_int(participant_id)
        except (TypeError, ValueError):
            raise UnauthorizedError('Unauthorized or invalid participant')
        participant = db.session.get(Participant, pid)
        if not participant:
            raise UnauthorizedError('Unauthorized or invalid participant')
        return participant

    if email:
        profile = Profile.query.filter_by(email=email).first()
        if not profile:
            raise UnauthorizedError('Unauthorized or user not found by email')
        return get_or_create_participant(profile.user_id, selected_language)

    raise UnauthorizedError('Unauthorized or invalid participant')


def has_correct_submission(participant_id, question_id):
    return db.session.query(
        Submission.query.filter_by(
            participant_id=participant_id,
            question_id=question_id,
            status='correct'
        ).exists()
    ).scalar()


def solved_question_ids(participant_id):
    rows = db.session.query(Submission.question_id).filter(
        Submission.participant_id == participant_id,
        Submission.status == 'correct',
        Submission.question_id.isnot(None)
    ).all()
    return sorted(row[0] for row in rows)


def _next_attempt_number(participant_id, question_id):
    return Submission.query.filter_by(participant_id=participant_id, question_id=question_id).count() + 1


def _solved_all_enabled(participant_id, language):
    if not language:
        return False

    enabled_ids = select(Question.id).where(Question.language == language, Question.enabled.is_(True))
    total = db.session.query(func.count()).select_from(enabled_ids.subquery()).scalar()
    if total == 0:
        return False

    solved = db.session.query(func.count(func.distinct(Submission.question_id))).filter(
        Submission.participant_id == participant_id,
        Submission.status == 'correct',
        Submission.question_id.in_(enabled_ids)
    ).scalar()
    return solved >= total


def _award(participant, question, submitted_code, points):
    """
    Insert the first correct submission and apply its points in one
    transaction. Returns False when the unique index shows that another
    request already recorded the correct answer.
    """
    participant_id = participant.id
    question_id = question.id if question else None

    db.session.add(Submission(
        participant_id=participant_id,
        question_id=question_id,
        submitted_code=submitted_code,
        status='correct',
        points_awarded=points,
        attempt_number=_next_attempt_number(participant_id, question_id)
    ))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info("Lost race for participant %s question %s, treating as solved", participant_id, question_id)
        return False

    now = datetime.utcnow()
    started_at = participant.started_at or now
    changes = {
        Participant.score: Participant.score + points,
        Participant.time_taken_seconds: max(0, int((now - started_at).total_seconds()))
    }
    if participant.completed_at is None and _solved_all_enabled(participant_id, participant.selected_language):
        changes[Participant.completed_at] = now

    Participant.query.filter_by(id=participant_id).update(changes, synchronize_session=False)
    db.session.commit()
    return True


def _record_resubmission(participant_id, question_id, submitted_code):
    db.session.add(Submission(
        participant_id=participant_id,
        question_id=question_id,
        submitted_code=submitted_code,
        status='pending',
        points_awarded=0,
        attempt_number=_next_attempt_number(participant_id, question_id)
    ))
    db.session.commit()


def _write_audit_log(participant_id, user_id, question_id, points, time_left_seconds, question_number):
    try:
        profile = Profile.query.filter_by(user_id=user_id).first()
        db.session.add(SubmissionAuditLog(
            participant_id=participant_id,
            participant_name=profile.full_name if profile else None,
            participant_email=profile.email if profile else None,
            question_id=question_id,
            question_number=question_number,
            points_awarded=points,
            time_left_seconds=time_left_seconds
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning("Audit log for participant %s failed: %s", participant_id, e)


def submit_correct(participant, question_id, submitted_code, points,
                   time_left_seconds=None, question_number=None):
    """
    Award ``points`` for a claimed-correct answer at most once per
    (participant, question) pair.

    Returns a dict with ``participant_id``, ``new_score`` and
    ``already_solved``.
    """
    if participant.is_blocked:
        raise ForbiddenError('Participant is blocked')
    if participant.contest is not None and participant.contest.status in CLOSED_CONTEST_STATUSES:
        raise ForbiddenError('Contest is not accepting submissions')

    question = None
    if question_id is not None:
        try:
            qid = _as_int(question_id)
        except (TypeError, ValueError):
            raise ValidationError('questionId must be an integer')
        question = db.session.get(Question, qid)
        if not question:
            raise NotFoundError(f'Question {qid} not found')

    participant_id = participant.id
    user_id = participant.user_id
    qid = question.id if question else None
    submitted_code = submitted_code or ''

    already_solved = question is not None and has_correct_submission(participant_id, qid)
    if not already_solved:
        already_solved = not _award(participant, question, submitted_code, points)

    if already_solved:
        if current_app.config['RESUBMISSION_POLICY'] == 'record':
            _record_resubmission(participant_id, qid, submitted_code)
        logger.info("Participant %s already solved question %s", participant_id, qid)
        awarded = 0
    else:
        logger.info("Awarded %s points to participant %s for question %s", points, participant_id, qid)
        awarded = points

    new_score = db.session.query(Participant.score).filter_by(id=participant_id).scalar()

    _write_audit_log(
        participant_id, user_id, qid, awarded,
        _optional_int(time_left_seconds), _optional_int(question_number)
    )

    return {
        'participant_id': participant_id,
        'new_score': new_score or 0,
        'already_solved': already_solved
    }


def select_language(language, user_id=None, email=None):
    """
    Set a user's contest language if it has not been chosen yet.

    Later calls leave the stored language untouched. Returns True when this
    call set the language.
    """
    if not language or language not in current_app.config['ALLOWED_LANGUAGES']:
        raise ValidationError('Invalid language')
    if not user_id and not email:
        raise ValidationError('userId or email required')

    target_user_id = user_id
    if not target_user_id:
        profile = Profile.query.filter_by(email=email).first()
        if not profile:
            raise NotFoundError('User not found for provided email')
        target_user_id = profile.user_id

    try:
        target_user_id = _as_int(target_user_id)
    except (TypeError, ValueError):
        raise ValidationError('userId must be an integer')

    if not db.session.get(User, target_user_id):
        raise NotFoundError('User not found')

    if not Participant.query.filter_by(user_id=target_user_id).first():
        participant = get_or_create_participant(target_user_id, language)
        if participant.selected_language == language:
            return True

    updated = Participant.query.filter(
        Participant.user_id == target_user_id,
        Participant.selected_language.is_(None)
    ).update({Participant.selected_language: language}, synchronize_session=False)
    db.session.commit()

    if updated:
        logger.info("User %s selected language %s", target_user_id, language)
    return bool(updated)
