import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from .wiring import EXTENSION_KEY, build_services
from models import storage  # DBStorage singleton (scoped_session)

logger = logging.getLogger(__name__)

# Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "User Accounts API",
        "version": "1.0.0",
        "description": "Registration, login, email verification, password reset, OAuth login and profiles.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, **service_overrides) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    service_overrides are handed to build_services (notifier, identity_bridge,
    dispatcher, avatar_storage).
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    register_error_handlers(app)

    app.extensions[EXTENSION_KEY] = build_services(app.config, storage, **service_overrides)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .oauth import bp as oauth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(oauth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Remove the scoped session at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.cli.command("purge-refresh-tokens")
    def purge_refresh_tokens():
        """Delete refresh tokens whose expiry has passed."""
        services = app.extensions[EXTENSION_KEY]
        removed = services.refresh_tokens.delete_expired(services.sessions.jwt.now())
        logger.info("Purged %d expired refresh tokens", removed)
        print(f"Purged {removed} expired refresh tokens")

    @app.route("/")
    def root():
        return {
            "message": "Welcome to User Accounts API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
