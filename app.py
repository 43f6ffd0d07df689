from flask import Flask, jsonify
from config import Config
from routes import health_bp, security_bp, admin_bp, audit_bp

from models import db
from flask_migrate import Migrate
from security.alerts import AlertDispatcher
from security.errors import ValidationError


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(security_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Alert fan-out (background workers unless ALERT_ASYNC is off)
    AlertDispatcher(app)

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        return jsonify(error=exc.message), 400

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from security.admin import admin_unlock_account, admin_reset_rate_limit

def register_cli(app):
    @app.cli.command("unlock-account")
    @click.argument("email")
    def unlock_account(email):
        """Clear the lockout for an account (operator override)."""
        try:
            result = admin_unlock_account("cli", email)
        except ValidationError as exc:
            raise click.BadParameter(exc.message, param_hint="EMAIL")
        state = "was locked" if result["was_locked"] else "was not locked"
        click.echo(f"{email.strip().lower()} unlocked ({state})")

    @app.cli.command("rate-limit-reset")
    @click.argument("subject")
    @click.argument("action")
    def rate_limit_reset(subject, action):
        """Reset the current rate-limit window for SUBJECT/ACTION."""
        try:
            admin_reset_rate_limit("cli", subject, action)
        except ValidationError as exc:
            raise click.ClickException(exc.message)
        click.echo(f"Rate limit {action} reset for {subject}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
