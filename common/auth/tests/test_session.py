# pytest common/auth/tests/test_session.py -q

import json

import pytest

from common.auth.session import (
    InMemorySessionBackend,
    RedisSessionBackend,
    SessionManager,
    build_session_manager,
)
from common.constants import (
    SESSION_ABSOLUTE_MAX_TTL,
    SESSION_SLIDING_REFRESH_INTERVAL,
    SESSION_TTL,
)
from common.errors import SessionUnavailableError
from common.redis_client import RedisClient

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeRedis:
    """Just enough of redis.Redis for RedisClient."""

    def __init__(self):
        self.data = {}
        self.sets = {}
        self.ttls = {}

    def ping(self):
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def set(self, key, value):
        self.data[key] = value
        return True

    def get(self, key):
        return self.data.get(key)

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.data.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
        return removed

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    def sadd(self, key, *values):
        members = self.sets.setdefault(key, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def srem(self, key, *values):
        members = self.sets.get(key, set())
        removed = len(members & set(values))
        members.difference_update(values)
        return removed

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def close(self):
        pass


# ----------------------------
# In-memory backend
# ----------------------------
def test_create_and_resolve_session():
    manager = SessionManager()
    sid = manager.create_session(7)

    assert sid.startswith("sess_")
    assert manager.get_user_id(sid) == 7


def test_session_ids_are_unique():
    manager = SessionManager()
    assert manager.create_session(1) != manager.create_session(1)


def test_unknown_and_empty_ids_resolve_to_none():
    manager = SessionManager()
    assert manager.get_user_id(None) is None
    assert manager.get_user_id("") is None
    assert manager.get_user_id("sess_nope") is None


def test_delete_session_is_idempotent():
    manager = SessionManager()
    sid = manager.create_session(1)

    assert manager.delete_session(sid) is True
    assert manager.delete_session(sid) is False
    assert manager.delete_session(None) is False
    assert manager.get_user_id(sid) is None


def test_delete_user_sessions_only_touches_that_user():
    manager = SessionManager()
    a1 = manager.create_session(1)
    a2 = manager.create_session(1)
    b = manager.create_session(2)

    assert manager.delete_user_sessions(1) == 2
    assert manager.get_user_id(a1) is None
    assert manager.get_user_id(a2) is None
    assert manager.get_user_id(b) == 2


def test_absolute_strategy_expires_after_ttl():
    clock = FakeClock()
    manager = SessionManager(strategy="absolute", now=clock)
    sid = manager.create_session(1)

    clock.advance(SESSION_TTL - 1)
    assert manager.get_user_id(sid) == 1

    clock.advance(2)
    assert manager.get_user_id(sid) is None


def test_sliding_strategy_capped_by_absolute_max():
    clock = FakeClock()
    manager = SessionManager(strategy="sliding", now=clock)
    sid = manager.create_session(1)

    clock.advance(SESSION_ABSOLUTE_MAX_TTL + 1)
    assert manager.get_user_id(sid) is None
    # expired sessions are removed, not just hidden
    assert manager.backend.load(sid) is None


def test_sliding_strategy_refreshes_last_seen():
    clock = FakeClock()
    manager = SessionManager(strategy="sliding", now=clock)
    sid = manager.create_session(1)

    clock.advance(SESSION_SLIDING_REFRESH_INTERVAL + 1)
    manager.get_user_id(sid)

    assert manager.get_session(sid)["last_seen_at"] == clock.value


def test_in_memory_backend_drops_expired_entries(mocker):
    backend = InMemorySessionBackend()
    backend.save("sess_x", {"user_id": 1}, ttl=10)

    mocker.patch("common.auth.session.time.time", return_value=10**12)
    assert backend.load("sess_x") is None


# ----------------------------
# Redis backend
# ----------------------------
@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_manager(fake_redis):
    return SessionManager(backend=RedisSessionBackend(RedisClient(client=fake_redis)))


def test_redis_session_round_trip(redis_manager, fake_redis):
    sid = redis_manager.create_session(5)

    stored = json.loads(fake_redis.data[f"session:{sid}"])
    assert stored["user_id"] == 5
    assert fake_redis.ttls[f"session:{sid}"] == SESSION_TTL
    assert fake_redis.sets["user_sessions:5"] == {sid}
    assert redis_manager.get_user_id(sid) == 5


def test_redis_delete_removes_index_entry(redis_manager, fake_redis):
    sid = redis_manager.create_session(5)

    assert redis_manager.delete_session(sid) is True
    assert f"session:{sid}" not in fake_redis.data
    assert fake_redis.sets["user_sessions:5"] == set()


def test_redis_logout_everywhere(redis_manager):
    first = redis_manager.create_session(5)
    second = redis_manager.create_session(5)

    assert redis_manager.delete_user_sessions(5) == 2
    assert redis_manager.get_user_id(first) is None
    assert redis_manager.get_user_id(second) is None


def test_redis_unavailable_fails_closed(mocker):
    client = RedisClient(client=FakeRedis())
    mocker.patch.object(client, "is_connected", return_value=False)
    manager = SessionManager(backend=RedisSessionBackend(client))

    with pytest.raises(SessionUnavailableError):
        manager.create_session(1)


# ----------------------------
# Backend selection
# ----------------------------
def test_build_session_manager_defaults_to_memory():
    class Settings:
        SESSION_TTL_STRATEGY = "absolute"

        @classmethod
        def uses_redis_sessions(cls):
            return False

    manager = build_session_manager(Settings)

    assert isinstance(manager.backend, InMemorySessionBackend)
    assert manager.strategy == "absolute"


def test_in_memory_backend_sweeps_unread_expired_entries(mocker):
    backend = InMemorySessionBackend()
    clock = mocker.patch("common.auth.session.time.time", return_value=1_000.0)
    backend.save("sess_old", {"user_id": 1}, ttl=10)

    clock.return_value = 2_000.0
    backend.save("sess_new", {"user_id": 2}, ttl=10)

    assert set(backend._sessions) == {"sess_new"}
    assert set(backend._expires_at) == {"sess_new"}
