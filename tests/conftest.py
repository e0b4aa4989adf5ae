import os

# Configure before any waitlist module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["RECOMPUTE_IN_BACKGROUND"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from waitlist.core.config import settings
from waitlist.core.database import Base
from waitlist.core.exceptions import NotificationError
from waitlist.core.rules import WaitlistRules
from waitlist import models  # noqa: F401
from waitlist.services.entry_store import EntryStore
from waitlist.services.waitlist_service import WaitlistService
from waitlist.utils import rate_limiter


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.welcomes = []
        self.position_updates = []
        self.contacts = []

    def send_welcome(self, email, name, referral_code, position, total):
        if self.fail:
            raise NotificationError("mail provider down")
        self.welcomes.append((email, position, total))

    def position_changed(self, email, position, total):
        if self.fail:
            raise NotificationError("mail provider down")
        self.position_updates.append((email, position, total))

    def contact_message(self, name, email, message):
        if self.fail:
            raise NotificationError("mail provider down")
        self.contacts.append((name, email, message))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return EntryStore(session_factory, position_threshold=150)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_service(session_factory, notifier):
    """Build an engine with an inline recompute queue and custom rules."""
    def _make(threshold: int = 150, notifier=notifier, **rule_overrides) -> WaitlistService:
        rules = WaitlistRules(position_threshold=threshold, **rule_overrides)
        return WaitlistService(
            store=EntryStore(session_factory, position_threshold=threshold),
            rules=rules,
            notifier=notifier,
        )
    return _make


@pytest.fixture
def service(make_service):
    return make_service()


class _FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def incr(self, key, amount=1):
        self.commands.append(("incr", key, amount))

    def expire(self, key, seconds, nx=False):
        self.commands.append(("expire", key, seconds))

    def execute(self):
        if self.redis.down:
            raise RedisConnectionError("Connection refused")
        results = []
        for command, key, value in self.commands:
            if command == "incr":
                self.redis.counters[key] = self.redis.counters.get(key, 0) + value
                results.append(self.redis.counters[key])
            else:
                results.append(self.redis.ttls.setdefault(key, value) == value)
        return results


class FakeRedis:
    """INCR/EXPIRE pipeline double for the rate limiter."""

    def __init__(self):
        self.counters = {}
        self.ttls = {}
        self.down = False

    def pipeline(self):
        return _FakePipeline(self)


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(rate_limiter, "get_client", lambda: redis)
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    return redis
