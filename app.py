import logging

import click
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from accounts import AccountError, create_account
from auth import auth
from categories import categories, seed_default_categories
from config import Config
from constants import ROLE_ADMIN
from db_config import mongo, ensure_indexes
from documents import documents
from faculty_list import faculty_list
from forgot_password import forgot_password, purge_expired_otps
from reports import reports
from user_profile import user_profile
from users import users

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def file_too_large(e):
        limit = app.config.get("MAX_UPLOAD_MB")
        return jsonify({"error": f"File too large. Maximum size is {limit} MB"}), 413

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create indexes and seed the default categories."""
        ensure_indexes()
        added = seed_default_categories()
        click.echo(f"Indexes ensured, {added} default categories added")

    @app.cli.command("create-admin")
    @click.option("--name", prompt=True)
    @click.option("--email", prompt=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(name, email, password):
        """Create an administrator account."""
        try:
            user = create_account({"name": name, "email": email, "password": password}, ROLE_ADMIN)
        except AccountError as e:
            raise click.ClickException(e.message)
        click.echo(f"Admin {user['email']} created with id {user['_id']}")


def start_scheduler(app):
    """Hourly cleanup of expired password-reset OTPs"""
    scheduler = BackgroundScheduler(daemon=True)

    def purge_job():
        with app.app_context():
            purge_expired_otps()

    scheduler.add_job(purge_job, "interval", hours=1, id="purge_expired_otps", replace_existing=True)
    scheduler.start()
    logger.info("Background scheduler started")
    return scheduler


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Configure CORS
    CORS(app, resources={
        r"/*": {
            "origins": app.config["CORS_ORIGINS"],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    mongo.init_app(app)

    app.register_blueprint(auth)
    app.register_blueprint(forgot_password)
    app.register_blueprint(users)
    app.register_blueprint(user_profile)
    app.register_blueprint(categories)
    app.register_blueprint(documents)
    app.register_blueprint(faculty_list)
    app.register_blueprint(reports)

    # Health check
    @app.route('/', methods=['GET'])
    def health_check():
        return jsonify({"message": "Welcome to TeachnGrow"}), 200

    register_error_handlers(app)
    register_commands(app)

    if app.config.get("SCHEDULER_ENABLED"):
        app.extensions["scheduler"] = start_scheduler(app)

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=True)
