import logging
import signal
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from walk.redis_lock import LockHeartbeat, LockLost, RedisSweepLock
from walk.services import build_engine

logger = logging.getLogger("walk.reaper")

LOCK_KEY = "walk:reaper"


class Command(BaseCommand):
    help = "Settle abandoned walk sessions, holding a Redis single-instance lock"

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single sweep and exit",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Seconds between sweeps (default: WALK_GAME REAP_INTERVAL_SECONDS)",
        )
        parser.add_argument(
            "--lock-ttl",
            type=int,
            default=settings.WALK_REAPER_LOCK_TTL,
            help="Lock TTL in seconds",
        )
        parser.add_argument(
            "--no-lock",
            action="store_true",
            help="Skip the Redis lock (single-node setups)",
        )

    def handle(self, *args, **options):
        engine = build_engine()
        interval = options["interval"] or engine.cfg.reap_interval
        lock_ttl = options["lock_ttl"]

        if options["once"] and options["no_lock"]:
            self._sweep(engine)
            return

        lock = None
        heartbeat = None
        if not options["no_lock"]:
            lock = RedisSweepLock(LOCK_KEY, lock_ttl)
            if not lock.acquire():
                self.stdout.write(self.style.WARNING("[REAPER] Another reaper already running. Exiting."))
                return
            heartbeat = LockHeartbeat(lock, every_seconds=max(lock_ttl / 3, 1))
            self.stdout.write(self.style.SUCCESS(f"[REAPER] Lock acquired (ttl {lock_ttl}s)."))

        running = True

        def shutdown(*_):
            nonlocal running
            running = False
            self.stdout.write(self.style.WARNING("[REAPER] Shutdown requested."))

        signal.signal(signal.SIGINT, shutdown)
        signal.signal(signal.SIGTERM, shutdown)

        try:
            while running:
                if heartbeat is not None:
                    heartbeat.tick()
                self._sweep(engine)
                if options["once"]:
                    break
                self._sleep(interval, heartbeat, lambda: running)
        except LockLost:
            self.stdout.write(self.style.ERROR("[REAPER] Lock lost. Another instance may have taken over."))
        finally:
            if lock is not None and lock.release():
                self.stdout.write(self.style.SUCCESS("[REAPER] Lock released. Reaper stopped."))

    def _sweep(self, engine):
        started = time.monotonic()
        report = engine.reap_abandoned()
        elapsed = time.monotonic() - started
        if report.settled or report.failed:
            logger.info(
                "sweep settled=%d skipped=%d failed=%d in %.2fs",
                len(report.settled), len(report.skipped), len(report.failed), elapsed,
            )
        self.stdout.write(
            f"[REAPER] settled={len(report.settled)} skipped={len(report.skipped)} "
            f"failed={len(report.failed)}"
        )
        return report

    def _sleep(self, seconds, heartbeat, still_running):
        deadline = time.monotonic() + seconds
        while still_running() and time.monotonic() < deadline:
            if heartbeat is not None:
                heartbeat.tick()
            time.sleep(min(1.0, max(deadline - time.monotonic(), 0)))
