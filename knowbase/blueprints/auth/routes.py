import logging
import threading
from time import time
from typing import Callable
from flask import Blueprint, current_app, jsonify, request, session
from passlib.hash import pbkdf2_sha256
from knowbase.blueprints import json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

MAX_ATTEMPTS = 5         # max. 5 Versuche ...
WINDOW_SECONDS = 10 * 60 # ... pro 10 Minuten


class LoginThrottle:
    """Fehlversuche pro IP (pro Prozess); liegt in app.extensions statt global."""

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time,
    ) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._attempts: dict[str, list[float]] = {}

    def _sweep(self, now: float) -> None:
        # abgelaufene IPs komplett entfernen, sonst wächst das Dict unbegrenzt
        for ip in [ip for ip, ts in self._attempts.items() if not ts or now - ts[-1] > self.window]:
            del self._attempts[ip]

    def is_locked(self, ip: str) -> bool:
        now = self._clock()
        with self._lock:
            attempts = [t for t in self._attempts.get(ip, []) if now - t <= self.window]
            if attempts:
                self._attempts[ip] = attempts
            else:
                self._attempts.pop(ip, None)
            return len(attempts) >= self.max_attempts

    def register_fail(self, ip: str) -> int:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._attempts.setdefault(ip, []).append(now)
            return max(0, self.max_attempts - len(self._attempts[ip]))

    def clear(self, ip: str) -> None:
        with self._lock:
            self._attempts.pop(ip, None)

    def tracked(self) -> int:
        with self._lock:
            return len(self._attempts)


def _throttle() -> LoginThrottle:
    return current_app.extensions["knowbase.login_throttle"]

def _client_ip() -> str:
    # X-Forwarded-For nur über ProxyFix (TRUSTED_PROXY_COUNT), nie direkt aus dem Header
    return request.remote_addr or "unknown"

# === Helferfunktionen ===
def is_authenticated() -> bool:
    """Einzige Stelle, die über Zugriff entscheidet."""
    if current_app.config.get("LOGIN_DISABLED"):
        return True
    return bool(session.get("authenticated"))

def require_login():
    """before_request-Hook für die API-Blueprints."""
    if not is_authenticated():
        return jsonify({"error": "Unauthorized"}), 401
    return None

# === Login / Logout ===
@auth_bp.post("/login")
def login():
    data = json_body(required=False)
    password = data.get("password") or request.form.get("password", "")
    ip = _client_ip()
    throttle = _throttle()

    if throttle.is_locked(ip):
        logger.warning("auth.login.locked ip=%s", ip)
        return jsonify({"error": "Too many failed attempts, try again later"}), 429

    pw_hash = current_app.config.get("KB_PASSWORD_HASH")
    if isinstance(password, str) and password and pw_hash and pbkdf2_sha256.verify(password, pw_hash):
        session.clear()
        session.permanent = True  # nutzt PERMANENT_SESSION_LIFETIME
        session["authenticated"] = True
        throttle.clear(ip)
        logger.info("auth.login.ok ip=%s", ip)
        return jsonify({"success": True})

    remaining = throttle.register_fail(ip)
    logger.info("auth.login.failed ip=%s remaining=%s", ip, remaining)
    return jsonify({"error": "Invalid password"}), 401

@auth_bp.post("/logout")
def logout():
    session.clear()
    return jsonify({"success": True})

@auth_bp.get("/status")
def status():
    return jsonify({"authenticated": is_authenticated()})
