"""
Buildroom Workflow
Flask Application Factory.

Usage:
    from buildroom import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from buildroom.config import config
from buildroom.middleware.jwt_auth import init_jwt_middleware
from buildroom.middleware.logging_config import configure_logging
from buildroom.middleware.rate_limiter import init_rate_limits
from buildroom.middleware.security_headers import init_security_headers
from buildroom.middleware.timing import init_request_timing
from buildroom.models import db
from buildroom.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    os.makedirs(app.instance_path, exist_ok=True)
    # Instantiated so ProductionConfig can refuse to start half-configured
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    register_error_handlers(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import abort, request as _req
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from buildroom.models import audit as _audit_models          # noqa: F401
    from buildroom.models import auth as _auth_models            # noqa: F401
    from buildroom.models import checklist as _checklist_models  # noqa: F401
    from buildroom.models import order as _order_models          # noqa: F401
    from buildroom.models import system as _system_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from buildroom.blueprints.catalog_bp import catalog_bp
    from buildroom.blueprints.checklist_bp import checklist_bp
    from buildroom.blueprints.health_bp import health_bp
    from buildroom.blueprints.metrics_bp import metrics_bp
    from buildroom.blueprints.order_bp import order_bp
    from buildroom.blueprints.system_bp import system_bp

    app.register_blueprint(order_bp)
    app.register_blueprint(system_bp)
    app.register_blueprint(checklist_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_cli(app):
    @app.cli.command("seed-catalog")
    def seed_catalog_cmd():
        """Seed default system types with one checklist template each."""
        from buildroom.services.catalog_service import seed_default_catalog
        count = seed_default_catalog()
        db.session.commit()
        click.echo(f"Seeded {count} new system type(s).")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("first_name")
    @click.argument("last_name")
    @click.option("--role", type=click.Choice(["staff", "manager", "admin"]), default="staff")
    def create_user_cmd(email, first_name, last_name, role):
        """Register a workshop user known to the identity provider."""
        from buildroom.models.auth import User
        from buildroom.core.exceptions import ValidationError
        from buildroom.utils.validators import parse_email
        try:
            email = parse_email(email, "email")
        except ValidationError as exc:
            raise click.ClickException(str(exc)) from exc
        user = User(email=email, first_name=first_name,
                    last_name=last_name, role=role)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created user {user.id} <{user.email}> ({role})")

    @app.cli.command("issue-token")
    @click.argument("user_id", type=int)
    @click.option("--expires-in", type=int, default=None, help="Lifetime in seconds.")
    def issue_token_cmd(user_id, expires_in):
        """Mint an access token for an existing active user."""
        from buildroom.models.auth import User
        from buildroom.services.jwt_service import generate_access_token
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            raise click.ClickException(f"No active user with id {user_id}")
        click.echo(generate_access_token(user.id, user.role, expires_in=expires_in))
