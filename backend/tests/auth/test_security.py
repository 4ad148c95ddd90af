import pytest

from app.core.security import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from app.services.rate_limit import SimpleRateLimiter

SECRET = "test-secret-key"


def test_password_hash_round_trip():
    hashed = hash_password("Front-Desk-Pass-1")
    assert hashed != "Front-Desk-Pass-1"
    assert verify_password("Front-Desk-Pass-1", hashed)
    assert not verify_password("wrong", hashed)


def test_token_carries_user_id():
    token = create_access_token(
        subject="17", secret=SECRET, alg="HS256", expires_minutes=5, extra={"role": "admin"}
    )
    assert decode_access_token(token, secret=SECRET, alg="HS256") == 17


@pytest.mark.parametrize(
    "token",
    [
        "not-a-token",
        create_access_token(subject="17", secret="other", alg="HS256", expires_minutes=5),
        create_access_token(subject="17", secret=SECRET, alg="HS256", expires_minutes=-1),
        create_access_token(subject="abc", secret=SECRET, alg="HS256", expires_minutes=5),
    ],
)
def test_invalid_tokens_are_rejected(token):
    with pytest.raises(InvalidTokenError):
        decode_access_token(token, secret=SECRET, alg="HS256")


def test_login_rejects_bad_password(api_client, admin_credentials):
    email, _ = admin_credentials
    res = api_client.post("/auth/login", json={"email": email, "password": "nope-nope"})
    assert res.status_code == 401


def test_rate_limiter_window():
    now = [0.0]
    limiter = SimpleRateLimiter(max_events=2, window_seconds=60, clock=lambda: now[0])
    assert limiter.allow("1.2.3.4")
    assert limiter.allow("1.2.3.4")
    assert not limiter.allow("1.2.3.4")
    assert limiter.allow("5.6.7.8")

    now[0] = 61.0
    assert limiter.allow("1.2.3.4")

    limiter.reset("1.2.3.4")
    assert limiter.allow("1.2.3.4")
    assert limiter.allow("1.2.3.4")
    assert not limiter.allow("1.2.3.4")
    limiter.reset()
    assert limiter.allow("1.2.3.4")
