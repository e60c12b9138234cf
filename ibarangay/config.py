"""
iBarangay Mina De Oro - Configuration
Settings are read from the environment (.env is loaded by app.py).
"""
import os
import logging
import tempfile
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

BASE_DIR = Path(__file__).parent.parent.resolve()

IS_PRODUCTION = os.getenv('FLASK_ENV', 'development') == 'production'


def _secret(name: str, dev_default: str) -> str:
    """
    Read a signing secret.

    Development falls back to ``dev_default``; production refuses to start
    without the variable.
    """
    value = os.getenv(name)
    if value:
        return value
    if IS_PRODUCTION:
        raise RuntimeError(f"{name} must be set when FLASK_ENV=production")
    logging.debug("%s not set; using development default", name)
    return dev_default


def _with_sslmode(url: str) -> str:
    try:
        parsed = urlparse(url)
    except ValueError as e:
        # Unescaped characters in the password
        logging.warning("DATABASE_URL could not be parsed (%s); appending sslmode", e)
        if 'sslmode=' in url:
            return url
        return f"{url}{'&' if '?' in url else '?'}sslmode=require"

    query = parse_qs(parsed.query)
    query.setdefault('sslmode', ['require'])
    return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))


def get_database_url() -> str:
    """DATABASE_URL normalized for SQLAlchemy, or a local SQLite file."""
    url = os.getenv('DATABASE_URL')
    if not url:
        fallback = f"sqlite:///{BASE_DIR / 'ibarangay.db'}"
        logging.warning("DATABASE_URL not set; using local SQLite database %s", fallback)
        return fallback

    # Supabase and Heroku still hand out the legacy scheme
    if url.startswith('postgres://'):
        url = 'postgresql://' + url[len('postgres://'):]
    if url.startswith('postgresql://'):
        url = _with_sslmode(url)
    return url


def get_engine_options(db_url: str) -> dict:
    """
    Pool settings per backend.

    The Supabase transaction pooler (port 6543) keeps no session state, so
    connections are not pooled on our side there.
    """
    from sqlalchemy.pool import NullPool

    if db_url.startswith('sqlite://'):
        return {'poolclass': NullPool}

    options = {'pool_pre_ping': True}
    if not db_url.startswith('postgresql://'):
        return options

    if ':6543' in db_url or 'pooler.supabase.com' in db_url:
        options.update({
            'poolclass': NullPool,
            'connect_args': {
                'connect_timeout': 30,
                'options': '-c statement_timeout=60000',
                'application_name': 'ibarangay-api',
            },
        })
    else:
        options.update({
            'pool_recycle': 180,
            'pool_timeout': 20,
            'pool_size': 2,
            'max_overflow': 2,
            'connect_args': {
                'connect_timeout': 20,
                'options': '-c statement_timeout=20000',
            },
        })
    return options


_DATABASE_URL = get_database_url()


class Config:
    """Base configuration"""

    SECRET_KEY = _secret('SECRET_KEY', 'dev-secret-key-for-local-development-only')
    DEBUG = os.getenv('DEBUG', 'False') == 'True'
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # Database
    SQLALCHEMY_DATABASE_URI = _DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options(_DATABASE_URL)

    # Supabase Storage (local /uploads when unset)
    SUPABASE_URL = os.getenv('SUPABASE_URL', '')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY', '')
    SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY', '')
    SUPABASE_STORAGE_BUCKET = os.getenv('SUPABASE_STORAGE_BUCKET', 'ibarangay-files')

    # JWT
    JWT_SECRET_KEY = _secret('JWT_SECRET_KEY', 'jwt-dev-secret-for-local-development-only')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_HOURS', 8)))
    JWT_ALGORITHM = 'HS256'
    JWT_TOKEN_LOCATION = ['headers']

    # Rate limiting
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # File uploads
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))
    UPLOAD_FOLDER = BASE_DIR / os.getenv('UPLOAD_FOLDER', 'uploads')

    # Gemini (AI report and insights generation)
    GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
    GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
    GEMINI_API_BASE = os.getenv('GEMINI_API_BASE', 'https://generativelanguage.googleapis.com/v1beta')
    AI_TIMEOUT_SECONDS = int(os.getenv('AI_TIMEOUT_SECONDS', 60))

    # Payment instructions shown to residents
    GCASH_NUMBER = os.getenv('GCASH_NUMBER', '0912-345-6789')
    GCASH_ACCOUNT_NAME = os.getenv('GCASH_ACCOUNT_NAME', 'Juan Dela Cruz')

    # Signatory printed on certificates
    PUNONG_BARANGAY_NAME = os.getenv('PUNONG_BARANGAY_NAME', 'Amado Magtibay')

    APP_NAME = os.getenv('APP_NAME', 'iBarangay Mina De Oro')
    WEB_URL = os.getenv('WEB_URL', 'http://localhost:9002')

    @staticmethod
    def init_app(app):
        # Uploads go to the temp dir when UPLOAD_FOLDER cannot be created
        upload_dir = Path(app.config.get('UPLOAD_FOLDER') or Config.UPLOAD_FOLDER)
        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            fallback = Path(tempfile.gettempdir()) / 'ibarangay_uploads'
            fallback.mkdir(parents=True, exist_ok=True)
            app.logger.warning("Cannot use UPLOAD_FOLDER %s (%s); writing to %s", upload_dir, exc, fallback)
            upload_dir = fallback
        app.config['UPLOAD_FOLDER'] = upload_dir


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    UPLOAD_FOLDER = Path(tempfile.gettempdir()) / 'ibarangay_test_uploads'


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}
