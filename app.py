from flask import Flask, current_app, jsonify
from config import Config
from routes import ALL_BLUEPRINTS

from models import db
from flask_migrate import Migrate
from engine import BookingEngine, EnginePolicy
from engine.errors import EngineError
from utils.seed import seed_slot_config
from utils.auth_context import load_current_principal


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # One engine per app; its policy is fixed at startup
    app.extensions["booking_engine"] = BookingEngine(EnginePolicy.from_config(app.config))

    # Store default desk settings at startup (safe & idempotent)
    if app.config.get("SEED_ON_STARTUP", True):
        with app.app_context():
            seed_slot_config()

    @app.before_request
    def _load_principal():
        load_current_principal()

    @app.errorhandler(EngineError)
    def _engine_error(exc):
        if exc.http_status == 409:
            current_app.logger.warning("%s: %s %s", exc.code, exc.message, exc.details or "")
        body = {"error": exc.code, "message": exc.message}
        if exc.details:
            body["details"] = exc.details
        return jsonify(body), exc.http_status

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
import os
import socket
import click
from engine import get_engine
from engine.locks import batch_lease
from engine.slots import CONFIG_ID


def _lease_owner():
    return f"{socket.gethostname()}:{os.getpid()}"


def register_cli(app):
    @app.cli.command("expire-passes")
    def expire_passes():
        """Mark active passes past their expiry as expired."""
        engine = get_engine()
        with batch_lease("expire-passes", _lease_owner(), engine.policy.batch_lock_ttl_seconds) as acquired:
            if not acquired:
                print("Another worker holds the expire-passes lease")
                return
            count = engine.passes.expire_due()
        print(f"{count} passes expired")

    @app.cli.command("cleanup-drafts")
    def cleanup_drafts():
        """Cancel application drafts older than DRAFT_STALE_DAYS."""
        engine = get_engine()
        with batch_lease("cleanup-drafts", _lease_owner(), engine.policy.batch_lock_ttl_seconds) as acquired:
            if not acquired:
                print("Another worker holds the cleanup-drafts lease")
                return
            count = engine.desk.cleanup_stale_drafts()
        print(f"{count} stale drafts canceled")

    @app.cli.command("purge-idempotency-keys")
    def purge_idempotency_keys():
        """Drop idempotency keys older than IDEMPOTENCY_TTL_HOURS."""
        count = sum(guard.purge_expired() for guard in get_engine().guards())
        print(f"{count} idempotency keys purged")

    @app.cli.command("seed-slot-config")
    def seed_slot_config_cmd():
        """Store the default booking-slot settings if none exist."""
        if seed_slot_config():
            print(f"Slot settings created (id={CONFIG_ID})")
        else:
            print("Slot settings already present")

    @app.cli.command("reconcile")
    @click.argument("kind", type=click.Choice(["order", "rental", "application"]))
    @click.argument("entity_id", type=int)
    def reconcile(kind, entity_id):
        """Re-run the post-transition effect for an entity's current status."""
        result = get_engine().reconcile(kind, entity_id)
        print(f"{kind} {entity_id}: effects for {result.to_status.value} replayed")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
