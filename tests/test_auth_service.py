import asyncio
from datetime import timedelta
from types import SimpleNamespace

import pytest
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from authservice.core.exceptions import (
    ConflictError,
    InternalError,
    InvalidCredentialsError,
    TokenInvalidError,
)
from authservice.core.security import TokenCodec
from authservice.schemas.user import TokenResponse, UserLogin, UserRegister


def _register(username="alice", email="a@x.com", phone="0800", password="pw"):
    return UserRegister(username=username, email=email, phone=phone, password=password)


async def _login(service, username="alice", password="pw"):
    return await service.authenticate(UserLogin(username=username, password=password))


async def test_register_returns_email_and_hashes_password(auth_service, user_store):
    assert await auth_service.register(_register()) == "a@x.com"

    stored = await user_store.find_by_username("alice")
    assert stored.password_hash != "pw"
    assert stored.phone == "0800"


async def test_register_duplicate_username_conflicts_without_email_check(auth_service, monkeypatch):
    await auth_service.register(_register())

    email_checks = []

    async def record_email_check(email):
        email_checks.append(email)
        return False

    monkeypatch.setattr(auth_service.user_store, "is_email_exists", record_email_check)

    with pytest.raises(ConflictError) as exc_info:
        await auth_service.register(_register(email="b@x.com"))
    assert exc_info.value.message == "username or email already exists"
    assert email_checks == []


async def test_register_duplicate_email_conflicts(auth_service):
    await auth_service.register(_register())
    with pytest.raises(ConflictError):
        await auth_service.register(_register(username="bob"))


async def test_register_fails_when_store_returns_nothing(auth_service, monkeypatch):
    async def insert_nothing(identity):
        return None

    monkeypatch.setattr(auth_service.user_store, "insert", insert_nothing)
    with pytest.raises(InternalError) as exc_info:
        await auth_service.register(_register())
    assert exc_info.value.message == "failed to create user"


async def test_authenticate_issues_tokens_for_submitted_username(auth_service):
    await auth_service.register(_register())

    tokens = await _login(auth_service)

    settings = auth_service.settings
    assert auth_service.codec.extract_username(settings.ACCESS_SECRET, tokens.access_token) == "alice"
    assert auth_service.codec.extract_username(settings.REFRESH_SECRET, tokens.refresh_token) == "alice"
    assert await auth_service.refresh_tokens.is_redeemable(tokens.refresh_token) is True


async def test_authenticate_failures_are_indistinguishable(auth_service):
    await auth_service.register(_register())

    with pytest.raises(InvalidCredentialsError) as wrong_password:
        await _login(auth_service, password="wrongpw")
    with pytest.raises(InvalidCredentialsError) as unknown_user:
        await _login(auth_service, username="ghost", password="anypw")

    assert wrong_password.value.message == unknown_user.value.message == "email or password is invalid"
    assert wrong_password.value.status_code == unknown_user.value.status_code == 401


async def test_authenticate_fails_when_refresh_state_cannot_be_stored(auth_service, monkeypatch):
    await auth_service.register(_register())

    async def failing_issue(token, user_id, ttl_seconds):
        raise InternalError("failed to create authentication token")

    monkeypatch.setattr(auth_service.refresh_tokens, "issue", failing_issue)
    with pytest.raises(InternalError):
        await _login(auth_service)


async def test_refresh_mints_new_access_token_only(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    refreshed = await auth_service.refresh(tokens.refresh_token)

    assert refreshed.access_token != tokens.access_token
    settings = auth_service.settings
    assert auth_service.codec.extract_username(settings.ACCESS_SECRET, refreshed.access_token) == "alice"
    assert await auth_service.refresh_tokens.is_redeemable(tokens.refresh_token) is True


async def test_refresh_after_logout_is_rejected(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    await auth_service.logout(tokens.refresh_token)

    with pytest.raises(TokenInvalidError) as exc_info:
        await auth_service.refresh(tokens.refresh_token)
    assert exc_info.value.message == "token is invalid or expired"


async def test_logout_twice_is_silent(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    await auth_service.logout(tokens.refresh_token)
    await auth_service.logout(tokens.refresh_token)

    assert await auth_service.refresh_tokens.is_redeemable(tokens.refresh_token) is False


async def test_logout_attempts_both_steps_when_one_fails(auth_service, monkeypatch):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    async def failing_revoke(token, ttl_seconds):
        raise InternalError()

    monkeypatch.setattr(auth_service.refresh_tokens, "revoke", failing_revoke)
    await auth_service.logout(tokens.refresh_token)

    assert await auth_service.refresh_tokens.is_redeemable(tokens.refresh_token) is False


async def test_logout_never_raises_when_storage_is_down(auth_service, monkeypatch):
    async def fail(*args, **kwargs):
        raise InternalError()

    monkeypatch.setattr(auth_service.refresh_tokens, "revoke", fail)
    monkeypatch.setattr(auth_service.refresh_tokens, "consume", fail)
    await auth_service.logout("any-token")


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
async def test_refresh_rejects_malformed_tokens(auth_service, token):
    with pytest.raises(TokenInvalidError) as exc_info:
        await auth_service.refresh(token)
    assert exc_info.value.message == "token is invalid or expired"


async def test_refresh_rejects_access_token(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    with pytest.raises(TokenInvalidError):
        await auth_service.refresh(tokens.access_token)


async def test_refresh_rejects_expired_token(auth_service, clock):
    auth_service.codec = TokenCodec(issuer="https://auth.test", clock=clock)
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    clock.now += timedelta(seconds=auth_service.settings.refresh_token_ttl_seconds)
    with pytest.raises(TokenInvalidError) as exc_info:
        await auth_service.refresh(tokens.refresh_token)
    assert exc_info.value.message == "token is invalid or expired"


async def test_refresh_rejects_signed_token_without_server_state(auth_service):
    await auth_service.register(_register())
    forged = auth_service.codec.generate(
        auth_service.settings.REFRESH_SECRET,
        SimpleNamespace(username="alice"),
        auth_service.codec.now() + timedelta(minutes=5),
    )
    with pytest.raises(TokenInvalidError):
        await auth_service.refresh(forged)


async def test_refresh_rejects_token_for_unknown_user(auth_service):
    token = auth_service.codec.generate(
        auth_service.settings.REFRESH_SECRET,
        SimpleNamespace(username="ghost"),
        auth_service.codec.now() + timedelta(minutes=5),
    )
    with pytest.raises(TokenInvalidError):
        await auth_service.refresh(token)


async def test_blacklist_is_checked_before_decoding(cache_auth_service, monkeypatch):
    await cache_auth_service.register(_register())
    tokens = await _login(cache_auth_service)
    await cache_auth_service.refresh_tokens.revoke(tokens.refresh_token, 3600)

    def no_decode(*args, **kwargs):
        raise AssertionError("blacklisted token must not be decoded")

    monkeypatch.setattr(cache_auth_service.codec, "extract_username", no_decode)
    with pytest.raises(TokenInvalidError):
        await cache_auth_service.refresh(tokens.refresh_token)


async def test_current_user_from_access_token(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    user = await auth_service.get_current_user(tokens.access_token)
    assert user.username == "alice"

    with pytest.raises(TokenInvalidError):
        await auth_service.get_current_user(tokens.refresh_token)


async def test_authenticate_rejects_password_over_bcrypt_limit(auth_service):
    await auth_service.register(_register())

    with pytest.raises(InvalidCredentialsError) as exc_info:
        await _login(auth_service, password="x" * 200)
    assert exc_info.value.message == "email or password is invalid"


def test_register_rejects_password_over_bcrypt_limit_in_bytes():
    with pytest.raises(ValidationError):
        _register(password="é" * 72)
    assert _register(password="é" * 36).password == "é" * 36


async def test_refresh_continues_when_blacklist_lookup_fails(cache_auth_service, fake_redis, monkeypatch):
    await cache_auth_service.register(_register())
    tokens = await _login(cache_auth_service)

    real_exists = fake_redis.exists

    async def exists_without_blacklist(*keys):
        if any(key.startswith("blacklisted:") for key in keys):
            raise RedisConnectionError("Connection refused")
        return await real_exists(*keys)

    monkeypatch.setattr(fake_redis, "exists", exists_without_blacklist)

    refreshed = await cache_auth_service.refresh(tokens.refresh_token)
    assert refreshed.access_token


async def test_refresh_racing_logout_is_rejected_once_logout_completes(auth_service):
    await auth_service.register(_register())
    tokens = await _login(auth_service)

    results = await asyncio.gather(
        auth_service.logout(tokens.refresh_token),
        auth_service.refresh(tokens.refresh_token),
        auth_service.refresh(tokens.refresh_token),
        return_exceptions=True,
    )

    assert results[0] is None
    for outcome in results[1:]:
        assert isinstance(outcome, (TokenResponse, TokenInvalidError))

    for _ in range(3):
        with pytest.raises(TokenInvalidError):
            await auth_service.refresh(tokens.refresh_token)
