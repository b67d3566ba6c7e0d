# walk/services.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.cache import caches
from django.db import IntegrityError, transaction
from django.utils import timezone

from wallets.services import InsufficientFunds, credit_payout, debit_for_stake

from .config import GameConfig, load_config
from .errors import WalkError, WalkErrorCode
from .mirror import EphemeralSessionView, SessionMirror
from .models import WalkSession
from .payouts import hazard_probability, payout_for, payout_multiplier
from .provably_fair import (
    commitment_hash,
    derive_hazard_second,
    generate_client_seed,
    generate_server_seed,
)

logger = logging.getLogger(__name__)

WIN = "WIN"
LOSS = "LOSS"


# =====================================================
# RESULTS
# =====================================================

@dataclass(frozen=True)
class StartReceipt:
    session_id: str
    commitment_hash: str
    client_seed: str
    nonce: int
    max_duration: int


@dataclass(frozen=True)
class CashoutReceipt:
    session_id: str
    outcome: str
    status: str
    payout: int
    duration: int
    multiplier: Decimal | None
    hazard_second: int | None
    revealed_server_seed: str
    commitment_hash: str
    client_seed: str
    nonce: int


@dataclass(frozen=True)
class Verification:
    session_id: str
    is_valid: bool
    server_seed: str
    client_seed: str
    nonce: int
    hazard_second: int | None
    commitment_hash: str


@dataclass(frozen=True)
class TickEvent:
    session_id: str
    second: int
    preview_payout: int
    next_second_hazard_risk: Decimal


@dataclass
class ReapReport:
    settled: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    failed: list = field(default_factory=list)


# =====================================================
# PURE RULES
# =====================================================

def resolve_outcome(stake: int, second: int, hazard_second: int | None, cfg: GameConfig):
    """
    Returns (outcome, payout, multiplier). The one place WIN/LOSS is decided,
    for manual cashouts and reaped sessions alike.
    """
    if hazard_second is None or second < hazard_second:
        return WIN, payout_for(stake, second, cfg), payout_multiplier(second, cfg)
    return LOSS, 0, None


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    return max(int((now - started_at).total_seconds()), 0)


def view_elapsed(view: EphemeralSessionView, now: datetime) -> int:
    return elapsed_seconds(datetime.fromisoformat(view.started_at), now)


def tick_for(view: EphemeralSessionView, now: datetime, cfg: GameConfig) -> TickEvent:
    second = min(view_elapsed(view, now), cfg.max_duration)
    return TickEvent(
        session_id=view.session_id,
        second=second,
        # no cashout can claim second 0
        preview_payout=payout_for(view.stake, second, cfg) if second >= 1 else 0,
        next_second_hazard_risk=hazard_probability(second + 1, cfg),
    )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _user_id(user):
    return getattr(user, "pk", user)


def _session_uuid(session_id) -> uuid.UUID:
    try:
        return session_id if isinstance(session_id, uuid.UUID) else uuid.UUID(str(session_id))
    except (TypeError, ValueError, AttributeError):
        raise WalkError(WalkErrorCode.SESSION_NOT_FOUND) from None


# =====================================================
# ENGINE
# =====================================================

class WalkEngine:
    """
    Session lifecycle: start, cash out, reap, verify.

    The database is the source of truth for sessions, balances and the
    ledger. ``mirror`` holds a TTL copy of live sessions for tick reads and
    is written after, and cleared after, every durable change.
    """

    def __init__(self, mirror: SessionMirror, cfg: GameConfig | None = None, clock=None):
        self.mirror = mirror
        self.cfg = cfg or load_config()
        self.clock = clock or timezone.now

    # ---------------------------------------------------
    # START
    # ---------------------------------------------------
    def start(self, user, stake) -> StartReceipt:
        cfg = self.cfg
        if not _is_int(stake) or not cfg.min_stake <= stake <= cfg.max_stake:
            raise WalkError(
                WalkErrorCode.INVALID_STAKE,
                f"Stake must be between {cfg.min_stake} and {cfg.max_stake}",
                min_stake=cfg.min_stake,
                max_stake=cfg.max_stake,
            )

        user_id = _user_id(user)
        if self.get_active_sessions(user_id):
            raise WalkError(WalkErrorCode.ALREADY_ACTIVE)

        server_seed = generate_server_seed()
        client_seed = generate_client_seed()

        try:
            with transaction.atomic():
                last_nonce = (
                    WalkSession.objects.filter(user_id=user_id)
                    .order_by("-nonce")
                    .values_list("nonce", flat=True)
                    .first()
                )
                nonce = (last_nonce or 0) + 1
                hazard_second = derive_hazard_second(server_seed, client_seed, nonce, cfg)
                self._check_hazard(hazard_second, f"new session for user {user_id}")

                session = WalkSession.objects.create(
                    user_id=user_id,
                    stake=stake,
                    server_seed=server_seed,
                    server_seed_hash=commitment_hash(server_seed),
                    client_seed=client_seed,
                    nonce=nonce,
                    hazard_second=hazard_second,
                    created_at=self.clock(),
                )
                debit_for_stake(
                    user_id,
                    stake,
                    reference=f"walk:{session.pk}:stake",
                    meta={"session_id": str(session.pk)},
                )
        except InsufficientFunds:
            raise WalkError(WalkErrorCode.INSUFFICIENT_BALANCE) from None
        except IntegrityError:
            # the partial unique index lost us a race with another start
            raise WalkError(WalkErrorCode.ALREADY_ACTIVE) from None

        self.mirror.put(EphemeralSessionView.from_session(session))
        logger.info("walk started session=%s user=%s stake=%s", session.pk, user_id, stake)

        return StartReceipt(
            session_id=str(session.pk),
            commitment_hash=session.server_seed_hash,
            client_seed=session.client_seed,
            nonce=session.nonce,
            max_duration=cfg.max_duration,
        )

    # ---------------------------------------------------
    # CASH OUT
    # ---------------------------------------------------
    def cash_out(self, user, session_id, claimed_second) -> CashoutReceipt:
        cfg = self.cfg
        if not _is_int(claimed_second) or not 1 <= claimed_second <= cfg.max_duration:
            raise WalkError(
                WalkErrorCode.INVALID_CASHOUT_TIME,
                f"Cashout second must be between 1 and {cfg.max_duration}",
            )

        user_id = _user_id(user)
        pk = _session_uuid(session_id)

        with transaction.atomic():
            try:
                session = WalkSession.objects.select_for_update().get(pk=pk, user_id=user_id)
            except WalkSession.DoesNotExist:
                raise WalkError(WalkErrorCode.SESSION_NOT_FOUND) from None

            if not session.is_active:
                self.mirror.delete(session.pk, session.user_id)
                raise WalkError(WalkErrorCode.ALREADY_COMPLETED)

            self._check_mirror(session)

            now = self.clock()
            elapsed = elapsed_seconds(session.created_at, now)
            if claimed_second > elapsed + cfg.cashout_tolerance:
                raise WalkError(
                    WalkErrorCode.INVALID_CASHOUT_TIME,
                    elapsed=elapsed,
                )

            self._check_hazard(session.hazard_second, f"session {session.pk}")
            outcome, payout, multiplier = resolve_outcome(
                session.stake, claimed_second, session.hazard_second, cfg
            )
            status = (
                WalkSession.STATUS_COMPLETED_WIN if outcome == WIN
                else WalkSession.STATUS_COMPLETED_LOSS
            )
            self._settle(session, status, claimed_second, payout, multiplier, now)

        self.mirror.delete(session.pk, session.user_id)
        logger.info(
            "walk cashed out session=%s user=%s second=%s outcome=%s payout=%s",
            session.pk, user_id, claimed_second, outcome, payout,
        )

        return CashoutReceipt(
            session_id=str(session.pk),
            outcome=outcome,
            status=session.status,
            payout=payout,
            duration=claimed_second,
            multiplier=multiplier,
            hazard_second=session.hazard_second,
            revealed_server_seed=session.server_seed,
            commitment_hash=session.server_seed_hash,
            client_seed=session.client_seed,
            nonce=session.nonce,
        )

    # ---------------------------------------------------
    # REAPER
    # ---------------------------------------------------
    def reap_abandoned(self, now: datetime | None = None) -> ReapReport:
        """
        Settle ACTIVE sessions older than the liveness threshold at the
        elapsed second, exactly as a cashout at that second would.
        Each session is its own unit: failures are logged and left ACTIVE
        for the next sweep.
        """
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.cfg.abandon_after)
        report = ReapReport()

        stale_ids = list(
            WalkSession.objects.filter(status=WalkSession.STATUS_ACTIVE, created_at__lt=cutoff)
            .order_by("created_at")
            .values_list("pk", flat=True)
        )

        for pk in stale_ids:
            try:
                session = self._reap_one(pk, now)
            except WalkError as exc:
                if exc.code == WalkErrorCode.ALREADY_COMPLETED:
                    report.skipped.append(str(pk))
                    continue
                logger.error("reap failed for session %s: %s", pk, exc.message)
                report.failed.append(str(pk))
            except Exception:
                logger.exception("reap failed for session %s", pk)
                report.failed.append(str(pk))
            else:
                report.settled.append(str(pk))
                logger.info(
                    "walk reaped session=%s status=%s payout=%s",
                    pk, session.status, session.payout,
                )

        return report

    def _reap_one(self, pk, now: datetime) -> WalkSession:
        cfg = self.cfg
        with transaction.atomic():
            session = WalkSession.objects.select_for_update().get(pk=pk)
            if not session.is_active:
                raise WalkError(WalkErrorCode.ALREADY_COMPLETED)

            # a manual cashout can claim no more than the horizon
            second = min(max(elapsed_seconds(session.created_at, now), 1), cfg.max_duration)

            self._check_hazard(session.hazard_second, f"session {session.pk}")
            outcome, payout, multiplier = resolve_outcome(
                session.stake, second, session.hazard_second, cfg
            )
            status = (
                WalkSession.STATUS_ABANDONED_WIN if outcome == WIN
                else WalkSession.STATUS_ABANDONED_LOSS
            )
            self._settle(session, status, second, payout, multiplier, now)

        self.mirror.delete(session.pk, session.user_id)
        return session

    # ---------------------------------------------------
    # SETTLEMENT (shared by cashout and reaper)
    # ---------------------------------------------------
    def _settle(self, session, status, second, payout, multiplier, now) -> None:
        """
        Compare-and-set ACTIVE -> terminal, then credit. Must run inside the
        caller's transaction so the status flip, the credit and the PAYOUT
        entry commit or roll back together.
        """
        updated = WalkSession.objects.filter(
            pk=session.pk,
            status=WalkSession.STATUS_ACTIVE,
        ).update(
            status=status,
            duration_seconds=second,
            payout=payout,
            multiplier=multiplier,
            completed_at=now,
        )
        if updated != 1:
            raise WalkError(WalkErrorCode.ALREADY_COMPLETED)

        if payout > 0:
            credit_payout(
                session.user_id,
                payout,
                reference=f"walk:{session.pk}:payout",
                meta={"session_id": str(session.pk), "second": second, "status": status},
            )

        session.status = status
        session.duration_seconds = second
        session.payout = payout
        session.multiplier = multiplier
        session.completed_at = now

    # ---------------------------------------------------
    # QUERIES
    # ---------------------------------------------------
    def get_active_sessions(self, user) -> list[str]:
        """
        Union of mirror and database, deduplicated. A mirror entry without
        a matching ACTIVE row is stale (crash between settle and evict) and
        is evicted rather than reported.
        """
        user_id = _user_id(user)
        mirrored = self.mirror.session_ids_for(user_id)
        durable = [
            str(pk) for pk in WalkSession.objects.filter(
                user_id=user_id, status=WalkSession.STATUS_ACTIVE
            ).values_list("pk", flat=True)
        ]

        live = set(durable)
        for sid in mirrored:
            if sid not in live:
                logger.warning("evicting stale mirror entry session=%s user=%s", sid, user_id)
                self.mirror.delete(sid, user_id)

        return list(dict.fromkeys([sid for sid in mirrored if sid in live] + durable))

    def verify(self, session_id) -> Verification:
        pk = _session_uuid(session_id)
        try:
            session = WalkSession.objects.get(pk=pk)
        except WalkSession.DoesNotExist:
            raise WalkError(WalkErrorCode.SESSION_NOT_FOUND) from None

        if not session.is_terminal:
            return Verification(
                session_id=str(session.pk),
                is_valid=False,
                server_seed="",
                client_seed=session.client_seed,
                nonce=session.nonce,
                hazard_second=None,
                commitment_hash=session.server_seed_hash,
            )

        try:
            recomputed = derive_hazard_second(
                session.server_seed, session.client_seed, session.nonce, self.cfg
            )
            is_valid = (
                recomputed == session.hazard_second
                and commitment_hash(session.server_seed) == session.server_seed_hash
            )
        except ValueError:
            logger.error("stored seed material for session %s is malformed", session.pk)
            is_valid = False

        return Verification(
            session_id=str(session.pk),
            is_valid=is_valid,
            server_seed=session.server_seed,
            client_seed=session.client_seed,
            nonce=session.nonce,
            hazard_second=session.hazard_second,
            commitment_hash=session.server_seed_hash,
        )

    def get_session(self, user, session_id) -> WalkSession:
        try:
            return WalkSession.objects.get(pk=_session_uuid(session_id), user_id=_user_id(user))
        except WalkSession.DoesNotExist:
            raise WalkError(WalkErrorCode.SESSION_NOT_FOUND) from None

    def preview(self, session: WalkSession) -> TickEvent:
        return tick_for(EphemeralSessionView.from_session(session), self.clock(), self.cfg)

    def history(self, user, limit: int = 20, offset: int = 0):
        qs = WalkSession.objects.filter(user_id=_user_id(user)).order_by("-created_at")
        return list(qs[offset:offset + limit]), qs.count()

    def heartbeat(self, user, session_id) -> bool:
        """Refreshes the mirror TTL of a live session; settled entries are evicted instead."""
        user_id = _user_id(user)
        try:
            pk = _session_uuid(session_id)
        except WalkError:
            return False

        live = WalkSession.objects.filter(
            pk=pk, user_id=user_id, status=WalkSession.STATUS_ACTIVE
        ).exists()
        view = self.mirror.get(session_id)
        if not live:
            if view is not None and view.user_id == user_id:
                logger.warning("heartbeat for settled session %s, evicting mirror entry", session_id)
                self.mirror.delete(session_id, user_id)
            return False

        if view is None:
            return False
        self.mirror.touch(session_id)
        return True

    # ---------------------------------------------------
    # TICKS
    # ---------------------------------------------------
    def poll_tick(self, session_id) -> dict:
        """
        One tick for the broadcast loop. Reads the mirror for session data
        but trusts only the database for liveness.

        While ACTIVE this is a ``tick``, or a final ``hazard`` payload once
        the hazard second has been reached, or a final ``horizon`` payload
        once MAX_DURATION has passed. Settled sessions give a final
        ``result``, unknown ones ``missing``. Neither final payload of a
        live session carries the server seed; settlement stays with
        cashout and the reaper.
        """
        session_id = str(session_id)
        try:
            pk = _session_uuid(session_id)
        except WalkError:
            return {"type": "missing", "session_id": session_id}

        status = WalkSession.objects.filter(pk=pk).values_list("status", flat=True).first()
        view = self.mirror.get(session_id)

        if status is None:
            if view is not None:
                logger.error("mirror holds session %s that the database does not", session_id)
                self.mirror.delete(session_id, view.user_id)
            return {"type": "missing", "session_id": session_id}

        if status != WalkSession.STATUS_ACTIVE:
            session = WalkSession.objects.get(pk=pk)
            if view is not None:
                self.mirror.delete(session_id, session.user_id)
            return result_payload(session)

        if view is None:
            session = WalkSession.objects.get(pk=pk)
            view = EphemeralSessionView.from_session(session)
            self.mirror.put(view)

        now = self.clock()
        elapsed = view_elapsed(view, now)
        if view.hazard_second is not None and elapsed >= view.hazard_second:
            return {
                "type": "hazard",
                "session_id": session_id,
                "outcome": LOSS,
                "second": elapsed,
                "preview_payout": 0,
            }
        if elapsed > self.cfg.max_duration:
            return {
                "type": "horizon",
                "session_id": session_id,
                "second": self.cfg.max_duration,
                "preview_payout": payout_for(view.stake, self.cfg.max_duration, self.cfg),
            }

        event = tick_for(view, now, self.cfg)
        return {
            "type": "tick",
            "session_id": event.session_id,
            "second": event.second,
            "preview_payout": event.preview_payout,
            "next_second_hazard_risk": str(event.next_second_hazard_risk),
        }

    # ---------------------------------------------------
    # CONSISTENCY CHECKS
    # ---------------------------------------------------
    def _check_hazard(self, hazard_second, context: str) -> None:
        if hazard_second is None:
            return
        if not _is_int(hazard_second) or not 1 <= hazard_second <= self.cfg.max_duration:
            logger.error("hazard second %r out of range for %s", hazard_second, context)
            raise WalkError(WalkErrorCode.INCONSISTENT_STATE)

    def _check_mirror(self, session: WalkSession) -> None:
        view = self.mirror.get(session.pk)
        if view is None:
            return
        if (
            view.user_id != session.user_id
            or view.stake != session.stake
            or view.hazard_second != session.hazard_second
        ):
            logger.error(
                "mirror diverges from database for session %s (mirror=%s)",
                session.pk, view,
            )
            raise WalkError(WalkErrorCode.INCONSISTENT_STATE)


def result_payload(session: WalkSession) -> dict:
    return {
        "type": "result",
        "session_id": str(session.pk),
        "status": session.status,
        "outcome": session.outcome,
        "payout": session.payout,
        "duration": session.duration_seconds,
        "hazard_second": session.revealed_hazard_second,
        "server_seed": session.revealed_server_seed,
    }


def build_engine(cfg: GameConfig | None = None, clock=None) -> WalkEngine:
    cfg = cfg or load_config()
    mirror = SessionMirror(caches[settings.WALK_CACHE_ALIAS], ttl_seconds=cfg.mirror_ttl)
    return WalkEngine(mirror, cfg=cfg, clock=clock)
