# walk/serializers.py
from __future__ import annotations

from rest_framework import serializers

from .models import WalkSession


class StartSessionIn(serializers.Serializer):
    # minor units; range checks belong to the engine so the error kind stays INVALID_STAKE
    stake = serializers.IntegerField()


class CashoutIn(serializers.Serializer):
    session_id = serializers.UUIDField()
    cashout_second = serializers.IntegerField()


class HistoryIn(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(min_value=0, default=0)


class StartSessionOut(serializers.Serializer):
    session_id = serializers.UUIDField()
    commitment_hash = serializers.CharField()
    client_seed = serializers.CharField()
    nonce = serializers.IntegerField()
    max_duration = serializers.IntegerField()


class CashoutOut(serializers.Serializer):
    session_id = serializers.UUIDField()
    outcome = serializers.CharField()
    status = serializers.CharField()
    payout = serializers.IntegerField()
    duration = serializers.IntegerField()
    multiplier = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    hazard_second = serializers.IntegerField(allow_null=True)
    revealed_server_seed = serializers.CharField()
    commitment_hash = serializers.CharField()
    client_seed = serializers.CharField()
    nonce = serializers.IntegerField()


class VerificationOut(serializers.Serializer):
    session_id = serializers.UUIDField()
    is_valid = serializers.BooleanField()
    server_seed = serializers.CharField(allow_blank=True)
    client_seed = serializers.CharField()
    nonce = serializers.IntegerField()
    hazard_second = serializers.IntegerField(allow_null=True)
    commitment_hash = serializers.CharField()


class TickOut(serializers.Serializer):
    session_id = serializers.CharField()
    second = serializers.IntegerField()
    preview_payout = serializers.IntegerField()
    next_second_hazard_risk = serializers.DecimalField(max_digits=6, decimal_places=4)


class WalkSessionOut(serializers.ModelSerializer):
    """Never exposes seed or hazard second while the session is live."""

    session_id = serializers.UUIDField(source="id")
    outcome = serializers.CharField(allow_null=True)
    server_seed = serializers.CharField(source="revealed_server_seed")
    hazard_second = serializers.IntegerField(source="revealed_hazard_second", allow_null=True)

    class Meta:
        model = WalkSession
        fields = [
            "session_id",
            "stake",
            "status",
            "outcome",
            "duration_seconds",
            "multiplier",
            "payout",
            "server_seed_hash",
            "client_seed",
            "nonce",
            "server_seed",
            "hazard_second",
            "created_at",
            "completed_at",
        ]


class CurveRowOut(serializers.Serializer):
    second = serializers.IntegerField()
    hazard_probability = serializers.DecimalField(max_digits=6, decimal_places=4)
    survival_probability = serializers.DecimalField(max_digits=20, decimal_places=12)
    multiplier = serializers.DecimalField(max_digits=12, decimal_places=2)
