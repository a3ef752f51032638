# config.py
# Application configuration, read from environment variables

import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        f'sqlite:///{os.path.join(BASE_DIR, "instance", "code_alchemists.db")}'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-in-production-with-a-long-random-value')
    JWT_SECRET = os.environ.get('JWT_SECRET', SECRET_KEY)
    TOKEN_TTL_SECONDS = int(os.environ.get('TOKEN_TTL_SECONDS', 24 * 60 * 60))

    # 'ignore' writes nothing for a repeat of a solved question,
    # 'record' appends a zero-point pending row
    RESUBMISSION_POLICY = os.environ.get('RESUBMISSION_POLICY', 'ignore')

    ALLOWED_LANGUAGES = ('python', 'c', 'java')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Initial admin credentials: {"email": ..., "password": ..., "full_name": ...}
    ADMIN_FILE = os.environ.get('ADMIN_FILE', os.path.join(BASE_DIR, 'admin.json'))
