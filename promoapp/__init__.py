import logging
from datetime import datetime

import boto3
import redis
import sentry_sdk
import watchtower
from botocore.exceptions import ClientError, NoCredentialsError
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from sentry_sdk.integrations.flask import FlaskIntegration
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import get_config


db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(get_remote_address)


def setup_cloudwatch_logging(app):
    """Set up CloudWatch logging."""
    try:
        # Generate a stream name based on date and EC2 instance ID
        date_str = datetime.utcnow().strftime("%Y-%m-%d")
        try:
            instance_id = boto3.utils.InstanceMetadataFetcher().get_instance_identity()[
                "instanceId"
            ]
        except Exception:
            instance_id = "unknown"

        stream_name = f"{date_str}-{instance_id}"

        cloudwatch_handler = watchtower.CloudWatchLogHandler(
            log_group_name="/ec2/promoapp",
            log_stream_name=stream_name,
        )

        app.logger.addHandler(cloudwatch_handler)
        logging.getLogger("werkzeug").addHandler(cloudwatch_handler)

        # Add StreamHandler for local debugging and instance logs
        app.logger.addHandler(logging.StreamHandler())
        app.logger.setLevel(logging.INFO)
        app.logger.info(f"App startup on instance {instance_id}")

    except (ClientError, NoCredentialsError, Exception) as e:
        # Catch ALL AWS errors so app works locally without creds
        fallback_handler = logging.StreamHandler()
        app.logger.addHandler(fallback_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.warning(f"CloudWatch logging disabled: {e}")


def init_redis(app):
    """Connect to Redis and point the rate limiter at it, or fall back to memory."""
    app.config["REDIS_CLIENT"] = None
    app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")

    if not app.config.get("REDIS_ENABLED"):
        return

    try:
        redis_client = redis.Redis(
            host=app.config["REDIS_HOST"],
            port=app.config["REDIS_PORT"],
            decode_responses=True,
            password=app.config["REDIS_PASSWORD"],
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        redis_client.ping()
        app.config["REDIS_CLIENT"] = redis_client

        redis_uri = f"redis://{app.config['REDIS_HOST']}:{app.config['REDIS_PORT']}"
        if app.config.get("REDIS_PASSWORD"):
            redis_uri = f"redis://:{app.config['REDIS_PASSWORD']}@{app.config['REDIS_HOST']}:{app.config['REDIS_PORT']}"
        app.config["RATELIMIT_STORAGE_URI"] = redis_uri
        app.config["RATELIMIT_STORAGE_OPTIONS"] = {"socket_connect_timeout": 30}
    except redis.exceptions.RedisError as e:
        app.logger.warning(f"Failed to connect to Redis, QR codes will not be cached: {e}")


def create_app(config_name=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    config = get_config(config_name)
    app.config.from_object(config)
    config.init_app(app)

    # Configure app to work with proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    migrate.init_app(app, db)

    if not app.debug and not app.testing:
        sentry_sdk.init(
            dsn=app.config["SENTRY_DSN"],
            integrations=[FlaskIntegration(transaction_style="url")],
            traces_sample_rate=1.0,
            environment=app.config["FLASK_ENV"],
        )

        setup_cloudwatch_logging(app)

        Talisman(
            app,
            content_security_policy={
                "default-src": "'self'",
                "img-src": ["'self'", "data:"],
            },
            force_https=True,
            strict_transport_security=True,
            session_cookie_secure=True,
            session_cookie_http_only=True,
        )

    init_redis(app)
    limiter.init_app(app)

    from .api_routes import api

    app.register_blueprint(api, url_prefix="/api")

    # Create database tables
    with app.app_context():
        from . import models  # noqa: F401

        try:
            db.create_all()
        except Exception as e:
            app.logger.error(f"Failed to create database tables: {str(e)}")
            raise

    @app.errorhandler(HTTPException)
    def http_error(error):
        """Render HTTP errors as JSON."""
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(429)
    def ratelimit_handler(error):
        """Handle rate limit errors."""
        return jsonify(
            {
                "error": "Too many requests",
                "message": "You are doing that too often. Please wait a moment and try again.",
            }
        ), 429

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        db.session.rollback()
        app.logger.error("Server Error: %s", str(error))
        return jsonify({"error": "Server error", "message": "An unexpected error occurred"}), 500

    @app.errorhandler(Exception)
    def unhandled_exception(e):
        """Handle unhandled exceptions."""
        db.session.rollback()
        app.logger.error("Unhandled Exception: %s", str(e))
        return jsonify({"error": "Server error", "message": "An unexpected error occurred"}), 500

    return app
