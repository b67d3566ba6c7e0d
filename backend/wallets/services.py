import logging

from django.db import transaction
from django.db.models import F

from .models import Wallet, LedgerEntry

logger = logging.getLogger(__name__)


class WalletError(Exception):
    pass


class InsufficientFunds(WalletError):
    pass


# ======================================================
# INTERNAL
# ======================================================
def _get_wallet_for_update(user_id):
    wallet, _ = Wallet.objects.get_or_create(user_id=user_id)
    return Wallet.objects.select_for_update().get(pk=wallet.pk)


def _check_amount(amount):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise WalletError("Invalid amount")


def balance_of(user_id) -> int:
    wallet = Wallet.objects.filter(user_id=user_id).only("balance").first()
    return wallet.balance if wallet else 0


# ======================================================
# STAKE (DEBIT + STAKE ENTRY)
# ======================================================
@transaction.atomic
def debit_for_stake(user_id, amount: int, reference: str, meta=None) -> LedgerEntry:
    """
    Debit a stake and append the matching STAKE entry.

    Both happen in the caller's transaction when there is one, so the
    session row, the balance and the ledger move together.
    """
    _check_amount(amount)

    wallet = _get_wallet_for_update(user_id)
    if wallet.balance < amount:
        raise InsufficientFunds("Insufficient funds")

    wallet.balance = F("balance") - amount
    wallet.save(update_fields=["balance", "updated_at"])

    return LedgerEntry.objects.create(
        user_id=user_id,
        kind=LedgerEntry.STAKE,
        amount=-amount,
        reference=reference,
        meta=meta or {},
    )


# ======================================================
# PAYOUT (CREDIT + PAYOUT ENTRY)
# ======================================================
@transaction.atomic
def credit_payout(user_id, amount: int, reference: str, meta=None) -> LedgerEntry:
    """
    The reference is unique in the ledger: a second payout for the same
    reference fails with IntegrityError and rolls the credit back with it.
    """
    _check_amount(amount)

    wallet = _get_wallet_for_update(user_id)
    wallet.balance = F("balance") + amount
    wallet.save(update_fields=["balance", "updated_at"])

    return LedgerEntry.objects.create(
        user_id=user_id,
        kind=LedgerEntry.PAYOUT,
        amount=amount,
        reference=reference,
        meta=meta or {},
    )


# ======================================================
# DEPOSIT / WITHDRAWAL
# ======================================================
@transaction.atomic
def deposit(user_id, amount: int, reference: str, meta=None) -> LedgerEntry:
    _check_amount(amount)

    wallet = _get_wallet_for_update(user_id)
    wallet.balance = F("balance") + amount
    wallet.save(update_fields=["balance", "updated_at"])

    logger.info("deposit user=%s amount=%s ref=%s", user_id, amount, reference)
    return LedgerEntry.objects.create(
        user_id=user_id,
        kind=LedgerEntry.DEPOSIT,
        amount=amount,
        reference=reference,
        meta=meta or {},
    )


@transaction.atomic
def withdraw(user_id, amount: int, reference: str, meta=None) -> LedgerEntry:
    _check_amount(amount)

    wallet = _get_wallet_for_update(user_id)
    if wallet.balance < amount:
        raise InsufficientFunds("Insufficient funds")

    wallet.balance = F("balance") - amount
    wallet.save(update_fields=["balance", "updated_at"])

    logger.info("withdrawal user=%s amount=%s ref=%s", user_id, amount, reference)
    return LedgerEntry.objects.create(
        user_id=user_id,
        kind=LedgerEntry.WITHDRAWAL,
        amount=-amount,
        reference=reference,
        meta=meta or {},
    )
