import time
import uuid

import redis
from django.conf import settings


def get_redis():
    # short timeouts: a sweep fails fast rather than hanging on a dead Redis
    return redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )


class LockLost(RuntimeError):
    pass


class RedisSweepLock:
    """
    Single-holder lock for background sweepers (one reaper per deployment).

    - acquire: SET NX PX
    - renew:   SET XX PX, only while we hold the token
    - release: compare-and-delete

    Settlement does not depend on it; it only keeps two nodes from sweeping
    the same backlog at once.
    """

    def __init__(self, key: str, ttl_seconds: int, client=None):
        self.key = key
        self.ttl_ms = int(ttl_seconds * 1000)
        # identifies this holder; another process never shares it
        self.token = uuid.uuid4().hex
        self.r = client if client is not None else get_redis()

    def acquire(self) -> bool:
        # only succeeds when nobody holds the key; expires on its own if we die
        return bool(self.r.set(self.key, self.token, nx=True, px=self.ttl_ms))

    def renew(self) -> bool:
        # the key may have expired and been taken by another sweeper
        if self.r.get(self.key) != self.token:
            return False
        # XX: extend only an existing key, never recreate an expired one
        return bool(self.r.set(self.key, self.token, xx=True, px=self.ttl_ms))

    def release(self) -> bool:
        # WATCH + MULTI: delete only if the token is still ours at commit time
        pipe = self.r.pipeline()
        try:
            pipe.watch(self.key)
            if pipe.get(self.key) == self.token:
                pipe.multi()
                pipe.delete(self.key)
                pipe.execute()
                return True
            pipe.unwatch()
        except redis.WatchError:
            # someone touched the key between GET and EXEC; leave it alone
            pass
        finally:
            pipe.reset()
        return False


class LockHeartbeat:
    """
    Renews the lock at most every ``every_seconds``. Call ``tick()`` from the
    sweep loop; it raises LockLost once the lock is no longer ours.
    """

    def __init__(self, lock: RedisSweepLock, every_seconds: float = 5.0, clock=time.monotonic):
        self.lock = lock
        self.every = every_seconds
        self.clock = clock
        self._next = clock() + every_seconds

    def tick(self):
        now = self.clock()
        if now >= self._next:
            if not self.lock.renew():
                raise LockLost(f"lost sweeper lock {self.lock.key}")
            self._next = now + self.every
