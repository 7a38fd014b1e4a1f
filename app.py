import logging

from flask import Flask, jsonify
from config import Config
from routes import health_bp, auth_bp, devices_bp

from models import db
from flask_migrate import Migrate
from security.errors import AuthError
from utils.auth_context import load_current_workshop


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(devices_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_workshop():
        load_current_workshop()

    @app.errorhandler(AuthError)
    def _auth_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # JSON-only API
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        resp.headers["Cache-Control"] = "no-store"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from models.workshop import Workshop
from security import otp, trusted_devices

def register_cli(app):
    @app.cli.command("revoke-devices")
    @click.argument("username")
    def revoke_devices(username):
        """Revoke every trusted device of a workshop (forces OTP on next login)."""
        workshop = Workshop.query.filter_by(username=username.strip()).first()
        if not workshop:
            click.echo("Workshop not found")
            return

        count = trusted_devices.revoke_all_devices(workshop.id)
        click.echo(f"Revoked {count} device(s) for {workshop.username}")

    @app.cli.command("purge-otps")
    def purge_otps():
        """Delete expired login challenges."""
        count = otp.purge_expired()
        click.echo(f"Deleted {count} expired challenge(s)")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
