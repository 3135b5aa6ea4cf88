import os
import logging
from datetime import datetime, timedelta
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
csrf = CSRFProtect()
jwt = JWTManager()
compress = Compress()


def _env_int(name, default):
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, '') else default


def _database_config(database_url):
    """Engine options for PostgreSQL in production, SQLite for development"""
    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, user={parsed.username}")

        return database_url, {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleetdesk",
            }
        }
    return database_url, {"pool_pre_ping": True}


def create_app(config_overrides=None):
    from utils.logging_config import setup_logging, assign_correlation_id, log_request_start, log_request_end

    app = Flask(__name__)
    # Enforce SESSION_SECRET requirement
    app.secret_key = os.environ.get("SESSION_SECRET")
    if not app.secret_key:
        raise RuntimeError("SESSION_SECRET environment variable is required but not set")
    # Trust one proxy for client IP, scheme and host
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app)

    database_url, engine_options = _database_config(os.environ.get("DATABASE_URL") or "sqlite:///fleetdesk.db")
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # JWT from the Authorization header or the access_token_cookie cookie
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY') or app.secret_key
    app.config['JWT_TOKEN_LOCATION'] = ['headers', 'cookies']
    app.config['JWT_COOKIE_CSRF_PROTECT'] = False
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=1)
    app.config['JWT_ALGORITHM'] = 'HS256'

    app.config['COMPRESS_MIMETYPES'] = ['application/json', 'text/csv', 'text/plain']
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500

    # Workflow settings
    app.config['DEFAULT_CURRENCY'] = os.environ.get('DEFAULT_CURRENCY', 'LKR').upper()
    app.config['APPROVAL_COST_THRESHOLD'] = float(os.environ.get('APPROVAL_COST_THRESHOLD') or 50000)
    app.config['GPS_REPLAY_MAX_POINTS'] = _env_int('GPS_REPLAY_MAX_POINTS', 5000)
    app.config['GPS_EXPORT_LIMIT'] = _env_int('GPS_EXPORT_LIMIT', 10000)
    app.config['GPS_INGEST_MAX_BATCH'] = _env_int('GPS_INGEST_MAX_BATCH', 500)

    if config_overrides:
        app.config.update(config_overrides)

    from utils.config_validator import require_valid_fleet_config, check_production_readiness
    require_valid_fleet_config(app.config)
    if os.environ.get("FLASK_ENV") == "production":
        check_production_readiness(app.config)

    # CORS Configuration (restricted origins)
    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Correlation-ID"],
         expose_headers=["X-Correlation-ID", "Content-Disposition"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])

    # Initialize extensions
    db.init_app(app)
    compress.init_app(app)
    csrf.init_app(app)
    jwt.init_app(app)

    _register_jwt_handlers()

    from utils.api import register_error_handlers
    register_error_handlers(app)

    app.before_request(assign_correlation_id)
    app.before_request(log_request_start)
    app.after_request(log_request_end)

    # Register blueprints
    from trip_request_routes import trip_requests_bp
    from trip_approval_routes import trip_approvals_bp
    from trip_assignment_routes import trip_assignments_bp
    from gps_log_routes import gps_logs_bp
    from trip_cost_routes import trip_costs_bp
    from invoice_routes import invoices_bp
    from employee_routes import employee_bp
    from trip_log_routes import trip_logs_bp

    for blueprint in (trip_requests_bp, trip_approvals_bp, trip_assignments_bp, gps_logs_bp,
                      trip_costs_bp, invoices_bp, employee_bp, trip_logs_bp):
        # JSON API authenticates with bearer tokens, not form posts
        csrf.exempt(blueprint)
        app.register_blueprint(blueprint)

    from fleet_commands import fleet_cli
    app.cli.add_command(fleet_cli)

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': datetime.utcnow().isoformat()}, 200

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    return app


def _register_jwt_handlers():
    from utils.api import error_response

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_response('UNAUTHORIZED', reason, 401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_response('UNAUTHORIZED', reason, 401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response('UNAUTHORIZED', 'Token has expired', 401)
