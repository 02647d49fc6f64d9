from typing import Any, Mapping

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from models import storage  # DBStorage singleton (scoped_session)
from models.credential_store import build_credential_store
from models.user import active_role
from utils.security import PasswordPolicy
from utils.tokens import AuthSettings, SessionManager

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Shop API",
        "version": "1.0.0",
        "description": "REST API for the e-commerce shop: accounts, sessions and the product catalog.",
    },
    "basePath": "/",
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\". "
                           "The access_token cookie set at login works as well."
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


def create_app(config_name: str | None = None, overrides: Mapping[str, Any] | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    `overrides` is applied after the config class (tests use it for distinct secrets).
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    # Bind the storage to this app's database
    if storage.url != app.config["DATABASE_URL"] or app.config.get("TESTING"):
        storage.configure(app.config["DATABASE_URL"])
    storage.reload()

    # Auth core: explicit settings, no module level state
    credential_store = app.config.get("CREDENTIAL_STORE_INSTANCE") or build_credential_store(app.config)
    app.extensions["credential_store"] = credential_store
    app.extensions["session_manager"] = SessionManager(
        AuthSettings.from_config(app.config), credential_store, role_lookup=active_role
    )
    app.extensions["password_policy"] = PasswordPolicy.from_config(app.config)

    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}}, supports_credentials=True)

    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .account import bp as account_bp
    from .users import bp as users_bp
    from .categories import bp as categories_bp
    from .cli import register_cli

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1")
    app.register_blueprint(account_bp, url_prefix="/api/v1")
    app.register_blueprint(users_bp, url_prefix="/api/v1")
    app.register_blueprint(categories_bp, url_prefix="/api/v1")
    register_cli(app)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Shop API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
