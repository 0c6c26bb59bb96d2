import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.security import generate_password_hash

from fireops.config import config_by_name
from fireops.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from fireops import models  # noqa: F401

    # --- Register blueprints ---
    from fireops.blueprints.auth import auth_bp
    from fireops.blueprints.admin import admin_bp
    from fireops.blueprints.leads import leads_bp
    from fireops.blueprints.customers import customers_bp
    from fireops.blueprints.customer_links import customer_links_bp
    from fireops.blueprints.quotes import quotes_bp
    from fireops.blueprints.inspections import inspections_bp
    from fireops.blueprints.jobs import jobs_bp
    from fireops.blueprints.invoices import invoices_bp
    from fireops.blueprints.payments import payments_bp
    from fireops.blueprints.qr import qr_bp
    from fireops.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(customer_links_bp)
    app.register_blueprint(quotes_bp)
    app.register_blueprint(inspections_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(qr_bp)
    app.register_blueprint(webhooks_bp)

    # Exempt webhooks from CSRF — raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- Health check ---
    @app.route("/api/health")
    def health():
        return jsonify({"success": True, "status": "ok"})

    # --- Error handlers ---
    from fireops.errors import register_error_handlers
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON API: nothing is rendered in a browser context
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@fireops.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, password):
        """Create the admin user (or report the existing one).

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from fireops.models.user import User

        email = email.strip().lower()
        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"Admin user already exists: {email} ({existing.role})")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name="Admin",
            role="admin",
            is_active=True,
        )
        db.session.add(admin)
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Admin user created!")
        click.echo("=" * 60)
        click.echo(f"  Email:     {email}")
        click.echo(f"  Login:     {app.config['APP_BASE_URL']}/login")
        click.echo("=" * 60)

    @app.cli.command("send-outbox")
    @click.option("--limit", default=50, show_default=True, help="Max emails to deliver this run.")
    def send_outbox(limit):
        """Deliver pending outbox emails over SMTP.

        Failed sends are retried on the next run until OUTBOX_MAX_ATTEMPTS.

        Usage:
            flask send-outbox
            flask send-outbox --limit 200
        """
        from fireops.services.notification_service import process_outbox
        process_outbox(limit=limit)
