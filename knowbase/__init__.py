import logging
import os
from datetime import timedelta
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv
from passlib.hash import pbkdf2_sha256

from knowbase.db import init_db
from knowbase.errors import KnowbaseError, StorageError

from knowbase.blueprints.auth.routes import auth_bp, LoginThrottle
from knowbase.blueprints.api.routes import api_bp
from knowbase.blueprints.ai.routes import ai_bp

# Meta-Blueprint (Healthcheck)
from knowbase.blueprints.meta.routes import meta_bp

from knowbase.services.tree_cache import TreeCache

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def setup_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).strip().upper(), logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    root_logger = logging.getLogger()
    if root_logger.handlers:
        for handler in root_logger.handlers:
            handler.setFormatter(formatter)
    else:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)
    root_logger.setLevel(level)


def _configure_password(app: Flask) -> None:
    """Passwort-Hash festlegen; ohne Passwort startet die App nur mit LOGIN_DISABLED."""
    pw_hash = app.config["KB_PASSWORD_HASH"]
    if pw_hash:
        if not pbkdf2_sha256.identify(pw_hash):
            raise RuntimeError("KB_PASSWORD_HASH is not a pbkdf2_sha256 hash")
        return
    password = app.config["KB_PASSWORD"]
    if password:
        app.config["KB_PASSWORD_HASH"] = pbkdf2_sha256.hash(password)
    elif app.config["LOGIN_DISABLED"]:
        logger.warning("config.password.missing login disabled, no password configured")
    else:
        raise RuntimeError("set KB_PASSWORD or KB_PASSWORD_HASH (or LOGIN_DISABLED=true)")


def create_app(overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)

    # Secrets / DB
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret-change-me")
    db_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "data", "knowbase.db"))
    app.config["DATABASE_URL"] = os.getenv("DATABASE_URL", f"sqlite:///{db_path}")

    # Zugang: ein gemeinsames Passwort
    app.config["KB_PASSWORD"] = os.getenv("KB_PASSWORD", "")
    app.config["KB_PASSWORD_HASH"] = os.getenv("KB_PASSWORD_HASH", "")
    app.config["LOGIN_DISABLED"] = _env_bool("LOGIN_DISABLED")
    # Anzahl vertrauenswürdiger Reverse-Proxies vor der App (0 = X-Forwarded-For ignorieren)
    app.config["TRUSTED_PROXY_COUNT"] = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))

    # Sessions härten
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=_env_bool("SESSION_COOKIE_SECURE"),
        PERMANENT_SESSION_LIFETIME=timedelta(hours=int(os.getenv("SESSION_HOURS", "24"))),
    )

    # Import-Limit
    max_mb = int(os.getenv("MAX_IMPORT_MB", "20"))
    app.config["MAX_CONTENT_LENGTH"] = max_mb * 1024 * 1024

    app.config["TREE_CACHE_TTL"] = float(os.getenv("TREE_CACHE_TTL", "30"))

    # KI (OpenAI-kompatibler Endpunkt, optional)
    app.config["AI_BASE_URL"] = os.getenv("AI_BASE_URL", "")
    app.config["AI_API_KEY"] = os.getenv("AI_API_KEY", "")
    app.config["AI_MODEL"] = os.getenv("AI_MODEL", "deepseek-chat")
    app.config["AI_TIMEOUT"] = float(os.getenv("AI_TIMEOUT", "30"))

    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")

    if overrides:
        app.config.update(overrides)

    setup_logging(app.config["LOG_LEVEL"])

    _configure_password(app)

    if app.config["TRUSTED_PROXY_COUNT"] > 0:
        n = app.config["TRUSTED_PROXY_COUNT"]
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=n, x_proto=n, x_host=n)

    # DB initialisieren
    init_db(app.config["DATABASE_URL"])

    app.extensions["knowbase.tree_cache"] = TreeCache(ttl=app.config["TREE_CACHE_TTL"])
    app.extensions["knowbase.login_throttle"] = LoginThrottle()

    # Blueprints registrieren
    app.register_blueprint(meta_bp)                          # /health
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(ai_bp, url_prefix="/api/ai")

    @app.errorhandler(KnowbaseError)
    def knowbase_error(e: KnowbaseError):
        if isinstance(e, StorageError):
            # Details stehen im Log, nicht in der Antwort
            logger.warning("request.storage_error kind=%s retryable=%s", type(e).__name__, e.retryable)
            body = {"error": e.message, "retryable": e.retryable}
            return jsonify(body), e.status_code
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logger.exception("request.unhandled_error")
        return jsonify({"error": "internal server error"}), 500

    # Root
    @app.get("/")
    def index():
        return (
            "<html><body style='font-family:system-ui;background:#1a1a1a;color:#eaeff7'>"
            "<h1>knowbase</h1>"
            "<p>API unter <code>/api</code>, Schnellcheck unter <a href='/health'>/health</a>.</p>"
            "</body></html>"
        )

    return app
