from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import caches

from walk.config import GameConfig
from walk.mirror import SessionMirror
from walk.services import WalkEngine
from wallets.services import deposit


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture(autouse=True)
def local_backends(settings):
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
        settings.WALK_CACHE_ALIAS: {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "walk-tests",
        },
    }
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    caches[settings.WALK_CACHE_ALIAS].clear()
    yield
    caches[settings.WALK_CACHE_ALIAS].clear()


@pytest.fixture
def cfg():
    return GameConfig.from_mapping({})


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def mirror(settings, cfg):
    return SessionMirror(caches[settings.WALK_CACHE_ALIAS], ttl_seconds=cfg.mirror_ttl)


@pytest.fixture
def engine(mirror, cfg, clock):
    return WalkEngine(mirror, cfg=cfg, clock=clock)


@pytest.fixture
def make_user(db):
    counter = iter(range(1, 10_000))

    def make(balance=100_000):
        n = next(counter)
        user = get_user_model().objects.create_user(username=f"walker{n}", password="pass12345")
        if balance:
            deposit(user.pk, balance, reference=f"seed:{user.pk}")
        return user

    return make


@pytest.fixture
def user(make_user):
    return make_user()
