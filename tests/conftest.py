import asyncio
import inspect
import os
import sys
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

_test_tmp_dir = tempfile.mkdtemp(prefix="authservice_test_")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("LOG_FILE", os.path.join(_test_tmp_dir, "app.log"))
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("COOKIE_SECURE", "false")

import pytest  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from authservice.config import Settings  # noqa: E402
from authservice.core.cache import CacheStore  # noqa: E402
from authservice.core.database import Base, make_engine  # noqa: E402
from authservice.core.security import TokenCodec  # noqa: E402
from authservice.services.auth_service import build_auth_service  # noqa: E402
from authservice.services.user_store import UserStore  # noqa: E402


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client used by CacheStore."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self._offset = 0.0

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    def _purge(self, key: str) -> None:
        expires_at = self.ttls.get(key)
        if expires_at is not None and expires_at <= self._now():
            self.data.pop(key, None)
            self.ttls.pop(key, None)

    async def get(self, key):
        self._purge(key)
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = self._now() + ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                del self.data[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def exists(self, *keys):
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self.data
        return count

    async def ping(self):
        return True

    async def aclose(self):
        return None


class BrokenRedis:
    """Client whose every command fails like an unreachable server."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    get = set = delete = exists = ping = _fail


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return CacheStore(fake_redis)


@pytest.fixture
def broken_cache():
    return CacheStore(BrokenRedis())


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so each session gets its own connection
    engine = make_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield SessionLocal
    engine.dispose()


@pytest.fixture
def user_store(session_factory):
    return UserStore(session_factory)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def codec(clock):
    return TokenCodec(issuer="https://auth.test", clock=clock)


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "ACCESS_SECRET": "access-secret-for-tests-0123456789abcdef",
        "REFRESH_SECRET": "refresh-secret-for-tests-0123456789abcdef",
        "TOKEN_ISSUER": "https://auth.test",
        "ACCESS_TOKEN_EXPIRE_MINUTES": 15,
        "REFRESH_TOKEN_EXPIRE_MINUTES": 60,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(params=["cache", "database"])
def auth_service(request, session_factory, cache):
    return build_auth_service(
        make_settings(REFRESH_TOKEN_STORE=request.param),
        session_factory,
        cache,
    )


@pytest.fixture
def cache_auth_service(session_factory, cache):
    return build_auth_service(make_settings(REFRESH_TOKEN_STORE="cache"), session_factory, cache)


@pytest.fixture
def settings_factory():
    return make_settings
