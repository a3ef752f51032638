# models.py
# Database models for the contest

from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

CONTEST_STATUSES = ('scheduled', 'active', 'paused', 'completed')
DIFFICULTIES = ('easy', 'medium', 'hard')


# Identity provider record. Only identity.py reads or writes password hashes.
class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email}>'


class Profile(db.Model):
    __tablename__ = 'profiles'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), nullable=True, index=True)

    def __repr__(self):
        return f'<Profile {self.user_id} {self.email}>'


class Contest(db.Model):
    __tablename__ = 'contests'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(db.String(20), nullable=False, default='scheduled')
    started_at = db.Column(db.DateTime, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    settings = db.relationship('ContestSettings', backref='contest', uselist=False, cascade='all, delete-orphan')
    announcements = db.relationship('Announcement', backref='contest', lazy=True, cascade='all, delete-orphan')

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('scheduled', 'active', 'paused', 'completed')",
            name='check_contest_status'
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'duration_minutes': self.duration_minutes,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Contest {self.name} ({self.status})>'


class ContestSettings(db.Model):
    __tablename__ = 'contest_settings'
    id = db.Column(db.Integer, primary_key=True)
    contest_id = db.Column(db.Integer, db.ForeignKey('contests.id', ondelete='CASCADE'), unique=True, nullable=False)
    auto_save_enabled = db.Column(db.Boolean, nullable=False, default=True)
    anti_cheat_enabled = db.Column(db.Boolean, nullable=False, default=True)
    track_tab_switches = db.Column(db.Boolean, nullable=False, default=True)
    max_attempts_per_question = db.Column(db.Integer, nullable=False, default=999)

    def to_dict(self):
        return {
            'contest_id': self.contest_id,
            'auto_save_enabled': self.auto_save_enabled,
            'anti_cheat_enabled': self.anti_cheat_enabled,
            'track_tab_switches': self.track_tab_switches,
            'max_attempts_per_question': self.max_attempts_per_question
        }


class Announcement(db.Model):
    __tablename__ = 'announcements'
    id = db.Column(db.Integer, primary_key=True)
    contest_id = db.Column(db.Integer, db.ForeignKey('contests.id', ondelete='CASCADE'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Participant(db.Model):
    __tablename__ = 'participants'
    id = db.Column(db.Integer, primary_key=True)
    # One participant row per user; the unique index settles creation races
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    contest_id = db.Column(db.Integer, db.ForeignKey('contests.id', ondelete='SET NULL'), nullable=True)
    selected_language = db.Column(db.String(20), nullable=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    time_taken_seconds = db.Column(db.Integer, nullable=False, default=0)
    completed_at = db.Column(db.DateTime, nullable=True)
    is_blocked = db.Column(db.Boolean, nullable=False, default=False)

    contest = db.relationship('Contest')
    submissions = db.relationship('Submission', backref='participant', lazy=True, cascade='all, delete-orphan')

    __table_args__ = (
        db.CheckConstraint('score >= 0', name='check_participant_score'),
        db.CheckConstraint(
            "selected_language IN ('python', 'c', 'java') OR selected_language IS NULL",
            name='check_participant_language'
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'contest_id': self.contest_id,
            'selected_language': self.selected_language,
            'score': self.score,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'time_taken_seconds': self.time_taken_seconds,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'is_blocked': self.is_blocked
        }

    def __repr__(self):
        return f'<Participant {self.id} user={self.user_id} score={self.score}>'


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.Integer, primary_key=True)
    contest_id = db.Column(db.Integer, db.ForeignKey('contests.id', ondelete='SET NULL'), nullable=True)
    title = db.Column(db.String(200), nullable=False)
    language = db.Column(db.String(20), nullable=False, index=True)
    difficulty = db.Column(db.String(10), nullable=False, default='easy')
    points = db.Column(db.Integer, nullable=False, default=10)
    problem_statement = db.Column(db.Text, nullable=True)
    hint = db.Column(db.Text, nullable=True)
    faulty_code = db.Column(db.Text, nullable=True)
    correct_code = db.Column(db.Text, nullable=True)
    test_cases = db.Column(db.JSON, nullable=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("language IN ('python', 'c', 'java')", name='check_question_language'),
        db.CheckConstraint("difficulty IN ('easy', 'medium', 'hard')", name='check_question_difficulty'),
        db.CheckConstraint('points >= 0', name='check_question_points'),
    )

    def to_dict(self, include_solution=False):
        data = {
            'id': self.id,
            'contest_id': self.contest_id,
            'title': self.title,
            'language': self.language,
            'difficulty': self.difficulty,
            'points': self.points,
            'problem_statement': self.problem_statement,
            'hint': self.hint,
            'faulty_code': self.faulty_code,
            'test_cases': self.test_cases,
            'enabled': self.enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
        if include_solution:
            data['correct_code'] = self.correct_code
        return data

    def __repr__(self):
        return f'<Question {self.id} {self.title}>'


class Submission(db.Model):
    __tablename__ = 'submissions'
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id', ondelete='CASCADE'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='SET NULL'), nullable=True)
    submitted_code = db.Column(db.Text, nullable=False, default='')
    status = db.Column(db.String(20), nullable=False)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)
    attempt_number = db.Column(db.Integer, nullable=False, default=1)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)

    question = db.relationship('Question')

    __table_args__ = (
        db.CheckConstraint("status IN ('correct', 'pending', 'incorrect')", name='check_submission_status'),
        db.CheckConstraint('points_awarded >= 0', name='check_submission_points'),
        # At most one correct row per (participant, question)
        db.Index(
            'uq_submission_first_correct', 'participant_id', 'question_id',
            unique=True,
            sqlite_where=db.text("status = 'correct'"),
            postgresql_where=db.text("status = 'correct'")
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'participant_id': self.participant_id,
            'question_id': self.question_id,
            'submitted_code': self.submitted_code,
            'status': self.status,
            'points_awarded': self.points_awarded,
            'attempt_number': self.attempt_number,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None
        }

    def __repr__(self):
        return f'<Submission {self.participant_id}-{self.question_id} {self.status}>'


# No foreign keys: audit rows outlive the participants they describe
class SubmissionAuditLog(db.Model):
    __tablename__ = 'submission_audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, nullable=False)
    participant_name = db.Column(db.String(120), nullable=True)
    participant_email = db.Column(db.String(255), nullable=True)
    question_id = db.Column(db.Integer, nullable=True)
    question_number = db.Column(db.Integer, nullable=True)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)
    time_left_seconds = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
