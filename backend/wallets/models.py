from django.conf import settings
from django.db import models


class Wallet(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    # minor currency units (cents)
    balance = models.BigIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"Wallet({self.user_id})"


class LedgerEntryQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("Ledger entries are append-only")

    def delete(self):
        raise TypeError("Ledger entries are append-only")


class LedgerEntry(models.Model):
    STAKE = "STAKE"
    PAYOUT = "PAYOUT"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    KIND_CHOICES = [
        (STAKE, "Stake"),
        (PAYOUT, "Payout"),
        (DEPOSIT, "Deposit"),
        (WITHDRAWAL, "Withdrawal"),
    ]

    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    FAILED = "FAILED"
    STATUS_CHOICES = [
        (CONFIRMED, "Confirmed"),
        (PENDING, "Pending"),
        (FAILED, "Failed"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="ledger_entries"
    )
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)
    # signed: stakes and withdrawals are negative
    amount = models.BigIntegerField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=CONFIRMED)
    reference = models.CharField(max_length=96, unique=True)
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="wallets_led_user_id_3c1f0a_idx"),
            models.Index(fields=["kind", "created_at"], name="wallets_led_kind_8e2b7d_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise TypeError("Ledger entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Ledger entries are append-only")

    def __str__(self):
        return f"{self.kind} {self.amount} for {self.user_id}"
