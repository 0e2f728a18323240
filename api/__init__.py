import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from models import storage
from models.token_store import SQLTokenStore
from services.sessions import AuthServices
from utils.tokens import TokenCodec, utcnow

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "CRM Auth API",
        "version": "1.0.0",
        "description": "Login, silent token renewal and logout for the CRM.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, store=None, clock=utcnow, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    ``store`` replaces the SQL token store (tests pass a MemoryTokenStore);
    ``clock`` is handed to the token codec; ``overrides`` patch app.config
    after the config class is loaded.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Cookies carry the session; credentials only go to an explicit origin list
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=origins != "*")

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    if store is None:
        storage.reload(app.config["DATABASE_URL"], timeout=app.config["STORE_TIMEOUT_SECONDS"])
        store = SQLTokenStore(storage)

        # Ensure the DB session is removed at the end of each request/app context
        @app.teardown_appcontext
        def remove_session(exception=None):
            storage.close()

    app.extensions["auth"] = AuthServices.build(
        TokenCodec.from_config(app.config, clock=clock),
        store,
        rotate=app.config["REFRESH_ROTATION"],
        revoke_on_reuse=app.config["REFRESH_REUSE_REVOKES"],
    )

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .cli import register_commands

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    register_commands(app)

    @app.route("/")
    def root():
        return {
            "message": "Welcome to CRM Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
