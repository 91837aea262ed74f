import os
import logging

import click
from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from crm.config import config_by_name
from crm.errors import EmailNotConfiguredError, EmailSendError, NotFoundError
from crm.extensions import db, migrate, limiter
from crm.schemas import error_list

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.sort_keys = False

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from crm import models  # noqa: F401

    # --- Register blueprints ---
    from crm.blueprints.leads import leads_bp
    from crm.blueprints.tasks import tasks_bp
    from crm.blueprints.email_templates import email_templates_bp
    from crm.blueprints.email import email_bp

    app.register_blueprint(leads_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(email_templates_bp)
    app.register_blueprint(email_bp)

    @app.route("/api/health")
    def health():
        return jsonify({"status": "ok"})

    # --- Error handlers ---
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
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


def register_error_handlers(app):
    """Map exceptions to JSON responses. Every error rolls the session back."""

    @app.errorhandler(ValidationError)
    def validation_failed(e):
        db.session.rollback()
        return jsonify({"error": "Validation failed", "errors": error_list(e)}), 400

    @app.errorhandler(NotFoundError)
    def not_found_error(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(ValueError)
    def bad_value(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(EmailNotConfiguredError)
    def email_not_configured(e):
        db.session.rollback()
        return jsonify({"error": str(e)}), 503

    @app.errorhandler(EmailSendError)
    def email_failed(e):
        db.session.rollback()
        return jsonify({"error": "Failed to send email", "details": str(e)}), 500

    @app.errorhandler(HTTPException)
    def http_error(e):
        db.session.rollback()
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def server_error(e):
        db.session.rollback()
        logger.exception(f"Unhandled error: {e}")
        return jsonify({"error": "Something went wrong"}), 500


# ─── Demo data for `flask seed-demo` ────────────────────────────

DEMO_LEADS = [
    {
        "dispensary_name": "Green Leaf Wellness",
        "contact_name": "Sam Rivera",
        "contact_email": "sam@greenleaf.example",
        "contact_number": "(555) 201-3344",
        "manager_name": "Dana Cole",
        "city": "Denver",
        "state": "CO",
        "current_pos_system": "Dutchie",
        "deal_value": 350,
        "priority": "High",
        "stage": "Demo Scheduled",
        "callback_days": ["Tuesday", "Thursday"],
    },
    {
        "dispensary_name": "Mountain High Collective",
        "contact_name": "Alex Chen",
        "contact_email": "alex@mountainhigh.example",
        "contact_number": "555-410-9921",
        "city": "Boulder",
        "state": "CO",
        "current_pos_system": "Flowhub",
        "deal_value": 600,
        "priority": "Medium",
        "stage": "Negotiating",
    },
    {
        "dispensary_name": "Coastal Cannabis Co",
        "contact_name": "Jordan Blake",
        "contact_number": "555 777 1200",
        "city": "Portland",
        "state": "OR",
        "current_pos_system": "Treez",
        "priority": "Low",
        "stage": "New Lead",
    },
]

DEMO_TEMPLATES = [
    {
        "name": "Intro Email",
        "category": "Intro",
        "cadence_step": 1,
        "delay_days": 0,
        "subject": "Quick question for {{dispensary_name}}",
        "body": (
            "Hi {{first_name}},\n\n"
            "I work with dispensaries in {{state}} that are outgrowing "
            "{{current_pos_system}}. Would you be open to a 15 minute call "
            "this week?\n\n{{sender_name}}"
        ),
    },
    {
        "name": "Value Follow-Up",
        "category": "Follow-Up",
        "cadence_step": 3,
        "delay_days": 2,
        "subject": "Following up, {{first_name}}",
        "body": (
            "Hi {{first_name}},\n\n"
            "Stores like {{dispensary_name}} usually save 5+ hours a week on "
            "inventory after switching. Happy to show you how.\n\n{{sender_name}}"
        ),
    },
    {
        "name": "Demo Offer",
        "category": "Demo",
        "cadence_step": 4,
        "delay_days": 1,
        "subject": "A short demo for {{dispensary_name}}?",
        "body": (
            "Hi {{first_name}},\n\n"
            "Can I show you a 20 minute walkthrough with your own menu "
            "loaded in?\n\n{{sender_name}}"
        ),
    },
    {
        "name": "Break-Up Email",
        "category": "Follow-Up",
        "cadence_step": 5,
        "delay_days": 3,
        "subject": "Should I close your file?",
        "body": (
            "Hi {{first_name}},\n\n"
            "I haven't heard back, so I'll assume now isn't the right time. "
            "If that changes, just reply here.\n\n{{sender_name}}"
        ),
    },
]


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    def seed_demo():
        """Insert demo leads and default cadence email templates.

        Usage:
            flask seed-demo
        """
        from crm.models.email_template import EmailTemplate
        from crm.models.lead import Lead
        from crm.schemas import LeadPayload
        from crm.services import lead_service

        created_templates = 0
        for data in DEMO_TEMPLATES:
            exists = EmailTemplate.query.filter_by(name=data["name"]).first()
            if exists:
                click.echo(f"Template already exists: {data['name']}")
                continue
            db.session.add(EmailTemplate(is_default=True, **data))
            created_templates += 1

        created_leads = 0
        for data in DEMO_LEADS:
            exists = Lead.query.filter_by(dispensary_name=data["dispensary_name"]).first()
            if exists:
                click.echo(f"Lead already exists: {data['dispensary_name']}")
                continue
            lead_service.create_lead(db.session, LeadPayload(**data), source="demo")
            created_leads += 1

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Demo data created!")
        click.echo("=" * 60)
        click.echo(f"  Leads:     {created_leads}")
        click.echo(f"  Templates: {created_templates}")
        click.echo("=" * 60)

    @app.cli.command("generate-reminders")
    def generate_reminders():
        """Create follow-up tasks for leads that have gone quiet.

        Usage:
            flask generate-reminders
        """
        from crm.services.task_service import generate_reminder_tasks

        created = generate_reminder_tasks(db.session)
        db.session.commit()
        for task in created:
            click.echo(f"  + {task.title}")
        click.echo(f"Created {len(created)} reminder task(s).")

    @app.cli.command("send-scheduled-emails")
    @click.option("--dry-run", is_flag=True, help="Show what would be sent without actually sending.")
    def send_scheduled_emails(dry_run):
        """Send cadence emails whose scheduled time has passed.

        Usage:
            flask send-scheduled-emails
            flask send-scheduled-emails --dry-run
        """
        from crm.services.outreach_service import process_scheduled_emails

        process_scheduled_emails(db.session, dry_run=dry_run, echo=True)
