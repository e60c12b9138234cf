"""
iBarangay Mina De Oro - Flask API Application
Main application entry point
"""
import os
import json
import time
from pathlib import Path

from dotenv import load_dotenv

# .env at the project root must be loaded before config is imported
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if (PROJECT_ROOT / '.env').exists():
    load_dotenv(PROJECT_ROOT / '.env')

from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded
from sqlalchemy import text

from ibarangay.config import config_by_name
from ibarangay import db, migrate, jwt, limiter

API_VERSION = '1.0.0'

# Subfolders of UPLOAD_FOLDER that may be fetched without a token
PUBLIC_UPLOAD_PREFIXES = ('residents/', 'staff/', 'barangay-seals/')

DEV_ORIGINS = (
    'http://localhost:3000',
    'http://localhost:9002',
    'http://127.0.0.1:3000',
    'http://127.0.0.1:9002',
)


def _cors_origins(app) -> list:
    origins = [(app.config.get('WEB_URL') or '').strip()]
    origins.extend(o.strip() for o in (os.getenv('CORS_ALLOWED_ORIGINS') or '').split(','))
    production = app.config.get('FLASK_ENV') == 'production' and not app.config.get('DEBUG')
    if not production:
        origins.extend(DEV_ORIGINS)

    origins = list(dict.fromkeys(o for o in origins if o))
    # Credentials cannot be combined with a wildcard origin
    if production and not origins:
        raise RuntimeError("Set WEB_URL or CORS_ALLOWED_ORIGINS in production")
    return origins


def create_app(config_class=None):
    """Application factory pattern"""
    if config_class is None:
        config_class = config_by_name.get(os.getenv('FLASK_ENV', 'development'), config_by_name['development'])

    app = Flask(__name__)
    app.config.from_object(config_class)
    config_class.init_app(app)

    db_url = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    app.logger.info("Database backend: %s", db_url.split(':', 1)[0])

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    if app.config.get('RATELIMIT_ENABLED', True):
        limiter.init_app(app)
    else:
        app.logger.warning("Rate limiting is DISABLED")

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        if app.config.get('DEBUG'):
            return response

        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        # Exception text stays in the server log outside debug mode
        if response.status_code >= 400 and response.is_json:
            payload = response.get_json(silent=True)
            if isinstance(payload, dict) and 'details' in payload:
                payload.pop('details')
                payload.pop('exception_type', None)
                response.set_data(json.dumps(payload))
        return response

    CORS(app,
         origins=_cors_origins(app),
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
         supports_credentials=True,
         expose_headers=['Content-Type', 'Authorization', 'Content-Disposition'])

    from ibarangay.routes import (
        auth_bp,
        residents_bp,
        users_bp,
        documents_bp,
        reports_bp,
        dashboard_bp,
        settings_bp,
    )

    for blueprint in (auth_bp, residents_bp, users_bp, documents_bp, reports_bp, dashboard_bp, settings_bp):
        app.register_blueprint(blueprint)

    @app.route('/', methods=['GET'])
    @app.route('/health', methods=['GET'])
    def health_check():
        return jsonify({
            'status': 'ok',
            'service': app.config.get('APP_NAME', 'iBarangay API'),
            'version': API_VERSION,
        }), 200

    @app.route('/health/db', methods=['GET'])
    def db_health_check():
        started = time.monotonic()
        try:
            db.session.execute(text('SELECT 1')).fetchone()
            db.session.rollback()
        except Exception as e:
            app.logger.error("Database health check failed: %s", e)
            return jsonify({
                'status': 'unhealthy',
                'latency_ms': round((time.monotonic() - started) * 1000, 2),
            }), 503
        return jsonify({
            'status': 'healthy',
            'latency_ms': round((time.monotonic() - started) * 1000, 2),
        }), 200

    # Local uploads (used when Supabase Storage is not configured)
    @app.route('/uploads/<path:filename>')
    def serve_uploaded_file(filename):
        normalized = str(filename or '').replace('\\', '/').lstrip('/')
        if not normalized or '..' in normalized.split('/'):
            return jsonify({'error': 'Invalid file path'}), 400
        if not normalized.startswith(PUBLIC_UPLOAD_PREFIXES):
            return jsonify({'error': 'Forbidden'}), 403
        return send_from_directory(str(app.config['UPLOAD_FOLDER']), normalized)

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Unauthorized'}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': 'Forbidden'}), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def too_large(error):
        return jsonify({'error': 'File too large'}), 413

    @app.errorhandler(RateLimitExceeded)
    def ratelimit_handler(error):  # pragma: no cover
        return jsonify({'error': 'Rate limit exceeded', 'details': str(error.description)}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )
