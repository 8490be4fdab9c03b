from __future__ import annotations

import pytest

from knowbase.blueprints.auth.routes import LoginThrottle


@pytest.fixture()
def guarded_client(make_app):
    return make_app(LOGIN_DISABLED=False, KB_PASSWORD="s3cret").test_client()


def test_api_requires_login(guarded_client) -> None:
    resp = guarded_client.get("/api/categories")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Unauthorized"}
    assert guarded_client.post("/api/ai/summarize", json={"content": "x"}).status_code == 401


def test_health_and_status_are_public(guarded_client) -> None:
    assert guarded_client.get("/health").get_json() == {"status": "ok", "database": "ok"}
    assert guarded_client.get("/api/auth/status").get_json() == {"authenticated": False}


def test_login_logout_cycle(guarded_client) -> None:
    assert guarded_client.post("/api/auth/login", json={"password": "wrong"}).status_code == 401

    resp = guarded_client.post("/api/auth/login", json={"password": "s3cret"})
    assert resp.status_code == 200
    assert guarded_client.get("/api/auth/status").get_json() == {"authenticated": True}
    assert guarded_client.get("/api/categories").status_code == 200

    guarded_client.post("/api/auth/logout")
    assert guarded_client.get("/api/categories").status_code == 401


def test_repeated_failures_lock_the_client(guarded_client) -> None:
    for _ in range(5):
        assert guarded_client.post("/api/auth/login", json={"password": "nope"}).status_code == 401
    resp = guarded_client.post("/api/auth/login", json={"password": "s3cret"})
    assert resp.status_code == 429


def test_preset_password_hash_is_used(make_app) -> None:
    from passlib.hash import pbkdf2_sha256

    client = make_app(LOGIN_DISABLED=False, KB_PASSWORD_HASH=pbkdf2_sha256.hash("hashed-pw")).test_client()
    assert client.post("/api/auth/login", json={"password": "hashed-pw"}).status_code == 200


def test_login_rejects_non_object_body(guarded_client) -> None:
    resp = guarded_client.post("/api/auth/login", json=["s3cret"])
    assert resp.status_code == 400
    assert "error" in resp.get_json()
    assert guarded_client.post("/api/auth/login", data={"password": "s3cret"}).status_code == 200


def test_forwarded_for_header_does_not_reset_the_lock(guarded_client) -> None:
    for i in range(5):
        resp = guarded_client.post(
            "/api/auth/login", json={"password": "nope"}, headers={"X-Forwarded-For": f"10.0.0.{i}"}
        )
        assert resp.status_code == 401
    resp = guarded_client.post(
        "/api/auth/login", json={"password": "nope"}, headers={"X-Forwarded-For": "10.0.0.99"}
    )
    assert resp.status_code == 429


def test_trusted_proxy_address_is_used_for_the_lock(make_app) -> None:
    client = make_app(LOGIN_DISABLED=False, KB_PASSWORD="s3cret", TRUSTED_PROXY_COUNT=1).test_client()
    for _ in range(5):
        client.post("/api/auth/login", json={"password": "nope"}, headers={"X-Forwarded-For": "10.0.0.1"})

    locked = client.post("/api/auth/login", json={"password": "s3cret"}, headers={"X-Forwarded-For": "10.0.0.1"})
    assert locked.status_code == 429
    other = client.post("/api/auth/login", json={"password": "s3cret"}, headers={"X-Forwarded-For": "10.0.0.2"})
    assert other.status_code == 200


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_throttle_window_and_pruning() -> None:
    clock = _Clock()
    throttle = LoginThrottle(max_attempts=2, window=60, clock=clock)

    throttle.register_fail("a")
    assert throttle.is_locked("a") is False
    throttle.register_fail("a")
    assert throttle.is_locked("a") is True

    for i in range(50):
        throttle.register_fail(f"10.0.0.{i}")
    assert throttle.tracked() == 51

    clock.now += 61
    assert throttle.is_locked("a") is False
    throttle.register_fail("b")
    assert throttle.tracked() == 1


def test_refuses_to_start_without_password(make_app) -> None:
    with pytest.raises(RuntimeError):
        make_app(LOGIN_DISABLED=False, KB_PASSWORD="", KB_PASSWORD_HASH="")
    with pytest.raises(RuntimeError):
        make_app(LOGIN_DISABLED=False, KB_PASSWORD_HASH="not-a-hash")


def test_login_disabled_without_password(make_app) -> None:
    client = make_app(LOGIN_DISABLED=True, KB_PASSWORD="", KB_PASSWORD_HASH="").test_client()
    assert client.get("/api/categories").status_code == 200
    assert client.post("/api/auth/login", json={"password": "change-me"}).status_code == 401
