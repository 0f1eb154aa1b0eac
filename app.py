import atexit
import logging
import os
from typing import Optional

import click
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from flask.cli import AppGroup
from flask_migrate import Migrate
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from database import db

migrate = Migrate()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _default_config() -> dict:
    """Read the configuration from the environment (and a .env file)."""

    load_dotenv()
    secret_key = os.environ.get("SECRET_KEY")
    if not secret_key:
        logging.warning("SECRET_KEY is not set; using an insecure development key.")
        secret_key = "taskboard-development-key"
    return {
        "SECRET_KEY": secret_key,
        "SQLALCHEMY_DATABASE_URI": os.environ.get("DATABASE_URL", "sqlite:///taskboard.db"),
        "SESSION_COOKIE_NAME": "session",
        "SESSION_MAX_AGE": int(os.environ.get("SESSION_MAX_AGE", "7")),
        "SESSION_SECURE": _env_flag("SESSION_SECURE"),
        "SQL_GATEWAY_URL": os.environ.get("SQL_GATEWAY_URL")
        or os.environ.get("API_QUERY_URL")
        or "http://localhost:8001",
        "SQL_GATEWAY_TOKEN": os.environ.get("SQL_GATEWAY_TOKEN") or os.environ.get("API_TOKEN"),
        "SQL_GATEWAY_SERVER": os.environ.get("SQL_GATEWAY_SERVER", "SERVER_PROFILE_1"),
        "SQL_GATEWAY_DATABASE": os.environ.get("SQL_GATEWAY_DATABASE", "extend_db_ptrj"),
        "SQL_GATEWAY_WRITE_SERVER": os.environ.get("SQL_GATEWAY_WRITE_SERVER", "SERVER_PROFILE_1"),
        "SQL_GATEWAY_WRITE_DATABASE": os.environ.get("SQL_GATEWAY_WRITE_DATABASE", "extend_db_ptrj"),
        "SQL_GATEWAY_TIMEOUT": float(os.environ.get("SQL_GATEWAY_TIMEOUT", "20")),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
        "WTF_CSRF_ENABLED": _env_flag("WTF_CSRF_ENABLED", True),
    }


def create_app(test_config: Optional[dict] = None) -> Flask:
    app = Flask(__name__)
    app.config.update(_default_config())
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(level=app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)

    # Models import should be after initializing db
    import models  # noqa: F401
    from services.gateway_service import init_gateway
    from utils.session_cookie import EncryptedCookieSessionInterface

    # Create flask command lines to update the db based on the model
    # Usage:
    # Create a migration script in ./migrations/versions
    # > flask db migrate -m "Add project members"
    # Run the update
    # > flask db upgrade
    migrate.init_app(app, db)
    init_gateway(app)
    app.session_interface = EncryptedCookieSessionInterface()

    from routes.projects import projects_bp
    from routes.sync import sync_bp
    from routes.tasks import tasks_bp
    from routes.users import users_bp

    app.register_blueprint(projects_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(users_bp)

    _register_auth(app)
    _register_error_handlers(app)
    _register_cli(app)

    def _dispose_engine():
        with app.app_context():
            db.engine.dispose()

    atexit.register(_dispose_engine)
    return app


# User Authentication
# ------------------------------
def _register_auth(app: Flask) -> None:
    from forms import LoginForm, SignupForm
    from models.user import User
    from routes import json_payload, json_success, login_required, validate_form
    from services.errors import Unauthorized
    from services.user_service import authenticate, create_user
    from utils.session_cookie import clear_session, current_session, start_session

    @app.before_request
    def load_user():
        """Load the session's user into ``g.user``.

        A cookie pointing at a user that no longer exists is dropped.
        """
        g.user = None
        user_id = session.get("userId")
        if user_id:
            g.user = db.session.get(User, user_id)
            if g.user is None:
                clear_session()

    @app.route("/api/auth/csrf", methods=["GET"])
    def csrf_token():
        return json_success(csrf_token=generate_csrf())

    @app.route("/api/auth/signup", methods=["POST"])
    def signup():
        form = validate_form(SignupForm, json_payload())
        user = create_user(
            form.username.data,
            form.email.data,
            form.name.data,
            form.password.data,
        )
        start_session(user)
        return json_success(201, data=user.to_dict())

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        form = validate_form(LoginForm, json_payload())
        user = authenticate(form.email.data, form.password.data)
        if user is None:
            raise Unauthorized("Invalid email or password")
        start_session(user)
        return json_success(data=user.to_dict())

    @app.route("/api/auth/logout", methods=["POST"])
    def logout():
        clear_session()
        g.user = None
        return json_success(message="Logged out.")

    @app.route("/api/auth/me", methods=["GET"])
    @login_required
    def me():
        return json_success(data=g.user.to_dict(), session=current_session(), csrf_token=generate_csrf())


# Error handling
# ------------------------------
def _register_error_handlers(app: Flask) -> None:
    from services.errors import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        if error.status_code >= 500:
            app.logger.error("%s on %s %s: %s", type(error).__name__, request.method, request.path, error)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        app.logger.error("Database error on %s %s", request.method, request.path, exc_info=error)
        return jsonify({"success": False, "error": "Database error"}), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            if request.path.startswith("/api/"):
                return jsonify({"success": False, "error": error.description}), error.code
            return error
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Internal server error"}), 500


# Command line
# ------------------------------
def _register_cli(app: Flask) -> None:
    members_cli = AppGroup("members", help="Project membership maintenance.")
    sync_cli = AppGroup("sync", help="External SQL Server synchronisation.")

    @members_cli.command("backfill-owners")
    def backfill_owners():
        """Ensure every project owner has an OWNER membership row."""
        from services.member_service import backfill_owner_memberships

        count = backfill_owner_memberships()
        click.echo(f"Backfilled {count} owner memberships.")

    @sync_cli.command("run")
    @click.option("--direction", type=click.Choice(["push", "pull", "both"]), default="pull", show_default=True)
    @click.option("--table", "tables", multiple=True, help="Table to sync; repeat for several. Defaults to all.")
    @click.option("--dry-run", is_flag=True, help="Report what would change without writing anything.")
    def run(direction, tables, dry_run):
        """Run a sync from the command line and print the per-table counts."""
        from services.gateway_service import get_sql_gateway, get_write_target
        from services.sync_service import run_sync

        sync_run, result = run_sync(
            get_sql_gateway(),
            db.session,
            get_write_target(),
            direction,
            list(tables) or None,
            dry_run=dry_run,
        )
        for name, table in result.tables.items():
            counts = table.to_dict()
            click.echo(
                f"{name}: pushed={counts['pushed']} pulled={counts['pulled']} "
                f"skipped={counts['skipped']} errors={counts['errors']}"
            )
        for message in result.errors:
            click.echo(f"error: {message}", err=True)
        if sync_run is None:
            click.echo("Dry run; nothing was written.")
        else:
            click.echo(f"Sync {sync_run.id} {sync_run.status}")
        if not result.success:
            raise SystemExit(1)

    app.cli.add_command(members_cli)
    app.cli.add_command(sync_cli)


app = create_app()

# Application Execution
# ------------------------------
if __name__ == "__main__":
    app.run(debug=True)
