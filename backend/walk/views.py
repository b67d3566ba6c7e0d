# walk/views.py
from __future__ import annotations

import logging
from dataclasses import asdict

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .errors import WalkError, WalkErrorCode
from .payouts import multiplier_table
from .serializers import (
    CashoutIn,
    CashoutOut,
    CurveRowOut,
    HistoryIn,
    StartSessionIn,
    StartSessionOut,
    TickOut,
    VerificationOut,
    WalkSessionOut,
)
from .services import build_engine

logger = logging.getLogger(__name__)


# Every error kind must be listed; tests fail when one is missing.
ERROR_STATUS = {
    WalkErrorCode.INVALID_STAKE: status.HTTP_400_BAD_REQUEST,
    WalkErrorCode.ALREADY_ACTIVE: status.HTTP_409_CONFLICT,
    WalkErrorCode.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    WalkErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    WalkErrorCode.ALREADY_COMPLETED: status.HTTP_409_CONFLICT,
    WalkErrorCode.INVALID_CASHOUT_TIME: status.HTTP_400_BAD_REQUEST,
    WalkErrorCode.INCONSISTENT_STATE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(exc: WalkError) -> Response:
    return Response(
        {"detail": exc.message, "code": exc.code.value},
        status=ERROR_STATUS[exc.code],
    )


# =====================================================
# START
# =====================================================

@api_view(["POST"])
@permission_classes([IsAuthenticated])
def start_session(request):
    serializer = StartSessionIn(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        receipt = build_engine().start(request.user, serializer.validated_data["stake"])
    except WalkError as exc:
        return error_response(exc)

    return Response(StartSessionOut(asdict(receipt)).data, status=status.HTTP_201_CREATED)


# =====================================================
# CASHOUT
# =====================================================

@api_view(["POST"])
@permission_classes([IsAuthenticated])
def cashout(request):
    serializer = CashoutIn(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        receipt = build_engine().cash_out(
            request.user,
            serializer.validated_data["session_id"],
            serializer.validated_data["cashout_second"],
        )
    except WalkError as exc:
        return error_response(exc)

    return Response(CashoutOut(asdict(receipt)).data)


# =====================================================
# QUERIES
# =====================================================

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def active_sessions(request):
    return Response({"sessions": build_engine().get_active_sessions(request.user)})


@api_view(["GET"])
@permission_classes([AllowAny])
def verify(request, session_id):
    try:
        result = build_engine().verify(session_id)
    except WalkError as exc:
        return error_response(exc)
    return Response(VerificationOut(asdict(result)).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def session_state(request, session_id):
    engine = build_engine()
    try:
        session = engine.get_session(request.user, session_id)
    except WalkError as exc:
        return error_response(exc)

    data = WalkSessionOut(session).data
    if session.is_active:
        data["tick"] = TickOut(asdict(engine.preview(session))).data
    return Response(data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def history(request):
    params = HistoryIn(data=request.query_params)
    params.is_valid(raise_exception=True)

    sessions, total = build_engine().history(
        request.user,
        limit=params.validated_data["limit"],
        offset=params.validated_data["offset"],
    )
    return Response({
        "games": WalkSessionOut(sessions, many=True).data,
        "total": total,
    })


@api_view(["GET"])
@permission_classes([AllowAny])
def curve(request):
    engine = build_engine()
    return Response({
        "house_edge": str(engine.cfg.house_edge),
        "max_duration": engine.cfg.max_duration,
        "min_stake": engine.cfg.min_stake,
        "max_stake": engine.cfg.max_stake,
        "rows": CurveRowOut(multiplier_table(engine.cfg), many=True).data,
    })
