# walk/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class WalkSession(models.Model):
    STATUS_ACTIVE = "ACTIVE"
    STATUS_COMPLETED_WIN = "COMPLETED_WIN"
    STATUS_COMPLETED_LOSS = "COMPLETED_LOSS"
    STATUS_ABANDONED_WIN = "ABANDONED_WIN"
    STATUS_ABANDONED_LOSS = "ABANDONED_LOSS"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_COMPLETED_WIN, "Completed (win)"),
        (STATUS_COMPLETED_LOSS, "Completed (loss)"),
        (STATUS_ABANDONED_WIN, "Abandoned (win)"),
        (STATUS_ABANDONED_LOSS, "Abandoned (loss)"),
    ]
    WIN_STATUSES = (STATUS_COMPLETED_WIN, STATUS_ABANDONED_WIN)
    TERMINAL_STATUSES = (
        STATUS_COMPLETED_WIN,
        STATUS_COMPLETED_LOSS,
        STATUS_ABANDONED_WIN,
        STATUS_ABANDONED_LOSS,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="walk_sessions")

    # minor currency units
    stake = models.BigIntegerField()

    # Commit-reveal: the hash is public from the start, the seed only after resolution
    server_seed = models.CharField(max_length=128)
    server_seed_hash = models.CharField(max_length=64, db_index=True)
    client_seed = models.CharField(max_length=64)
    nonce = models.PositiveBigIntegerField()
    # fixed at creation, never recomputed; null means no hazard within the horizon
    hazard_second = models.PositiveSmallIntegerField(null=True, blank=True)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    duration_seconds = models.PositiveSmallIntegerField(null=True, blank=True)
    multiplier = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payout = models.BigIntegerField(default=0)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status="ACTIVE"),
                name="one_active_walk_per_user",
            ),
            models.UniqueConstraint(
                fields=["user", "nonce"],
                name="unique_walk_nonce_per_user",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="walk_status_created_idx"),
            models.Index(fields=["user", "created_at"], name="walk_user_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Walk {self.id} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def outcome(self) -> str | None:
        if not self.is_terminal:
            return None
        return "WIN" if self.status in self.WIN_STATUSES else "LOSS"

    @property
    def revealed_server_seed(self) -> str:
        return self.server_seed if self.is_terminal else ""

    @property
    def revealed_hazard_second(self) -> int | None:
        return self.hazard_second if self.is_terminal else None
