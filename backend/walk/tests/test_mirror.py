from dataclasses import replace

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from walk.mirror import EphemeralSessionView, SessionMirror


@pytest.fixture
def view(clock):
    return EphemeralSessionView(
        session_id="11111111-1111-1111-1111-111111111111",
        user_id=7,
        stake=500,
        started_at=clock().isoformat(),
        hazard_second=None,
        status="ACTIVE",
    )


def test_put_get_delete(mirror, view):
    assert mirror.put(view) is True
    assert mirror.get(view.session_id) == view
    assert mirror.session_ids_for(7) == [view.session_id]

    mirror.delete(view.session_id, 7)
    assert mirror.get(view.session_id) is None
    assert mirror.session_ids_for(7) == []


def test_index_skips_expired_and_foreign_entries(mirror, view):
    mirror.put(view)
    other = replace(view, session_id="22222222-2222-2222-2222-222222222222")
    mirror.put(other)
    mirror.cache.delete(SessionMirror.SESSION_KEY.format(other.session_id))

    assert mirror.session_ids_for(7) == [view.session_id]


def test_index_skips_settled_entries(mirror, view):
    mirror.put(replace(view, status="COMPLETED_WIN"))
    assert mirror.session_ids_for(7) == []


def test_malformed_entry_is_dropped(mirror, view):
    key = SessionMirror.SESSION_KEY.format(view.session_id)
    mirror.cache.set(key, {"session_id": view.session_id})
    assert mirror.get(view.session_id) is None
    assert mirror.cache.get(key) is None


def test_touch_stamps_heartbeat(mirror, view):
    mirror.put(view)
    touched = mirror.touch(view.session_id)
    assert touched.last_heartbeat is not None
    assert mirror.get(view.session_id).last_heartbeat == touched.last_heartbeat
    assert mirror.touch("missing") is None


def test_cache_errors_are_swallowed(view, caplog):
    class FlakyCache:
        def get(self, *a, **kw):
            raise RedisTimeoutError("slow")
        set = delete = get

    mirror = SessionMirror(FlakyCache(), ttl_seconds=60)
    assert mirror.put(view) is False
    assert mirror.get(view.session_id) is None
    assert mirror.session_ids_for(7) == []
    mirror.delete(view.session_id, 7)
    assert "mirror put failed" in caplog.text
