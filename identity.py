# identity.py
# Identity provider: credential storage, bearer tokens and identity removal

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from errors import IdentityError, UnauthorizedError
from models import db, User, Profile

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = 'HS256'
MIN_PASSWORD_LENGTH = 6


def create_user(email, password, full_name=None, is_admin=False):
    """Register an identity together with its profile row."""
    if not email or not password:
        raise IdentityError('Email and password are required', 400)
    if User.query.filter_by(email=email).first():
        raise IdentityError(f'User with email {email} already exists', 400)

    user = User(
        email=email,
        password=generate_password_hash(password),
        is_admin=is_admin
    )
    db.session.add(user)
    db.session.flush()
    db.session.add(Profile(user_id=user.id, full_name=full_name, email=email))
    db.session.commit()
    logger.info("Created %s identity %s", 'admin' if is_admin else 'user', email)
    return user


def issue_token(user):
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'iat': now,
        'exp': now + timedelta(seconds=current_app.config['TOKEN_TTL_SECONDS'])
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=TOKEN_ALGORITHM)


def verify_token(token):
    """
    Return the User a bearer token was issued to.

    Raises UnauthorizedError for expired, malformed or orphaned tokens.
    """
    try:
        payload = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[TOKEN_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('Token has expired')
    except jwt.InvalidTokenError:
        raise UnauthorizedError('Invalid token')

    try:
        user_id = int(payload.get('sub'))
    except (TypeError, ValueError):
        raise UnauthorizedError('Invalid token')

    user = db.session.get(User, user_id)
    if not user:
        raise UnauthorizedError('Invalid token')
    return user


def bearer_token(request):
    """Extract the token from an 'Authorization: Bearer <token>' header, or None."""
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    token = header[len('Bearer '):].strip()
    return token or None


def delete_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise IdentityError(f'User {user_id} not found', 404)

    try:
        db.session.delete(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise IdentityError(f'Failed to delete user {user_id}: {str(e)}')
    logger.info("Deleted identity %s", user_id)


def update_password(user_id, new_password):
    if not new_password or len(new_password) < MIN_PASSWORD_LENGTH:
        raise IdentityError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)

    user = db.session.get(User, user_id)
    if not user:
        raise IdentityError(f'User {user_id} not found', 404)

    user.password = generate_password_hash(new_password)
    db.session.commit()
    logger.info("Updated password for identity %s", user_id)
    return user
