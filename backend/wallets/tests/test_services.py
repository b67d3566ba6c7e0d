import pytest
from django.db import IntegrityError
from django.urls import reverse
from rest_framework.test import APIClient

from wallets.models import LedgerEntry, Wallet
from wallets.services import (
    InsufficientFunds,
    WalletError,
    balance_of,
    credit_payout,
    debit_for_stake,
    deposit,
    withdraw,
)

pytestmark = pytest.mark.django_db


def test_deposit_and_withdraw(make_user):
    user = make_user(balance=0)
    assert balance_of(user.pk) == 0

    deposit(user.pk, 5000, reference="dep-1")
    entry = withdraw(user.pk, 1200, reference="wd-1")

    assert balance_of(user.pk) == 3800
    assert entry.kind == LedgerEntry.WITHDRAWAL
    assert entry.amount == -1200


def test_stake_and_payout_entries(user):
    stake = debit_for_stake(user.pk, 1000, reference="walk:x:stake")
    payout = credit_payout(user.pk, 1500, reference="walk:x:payout")

    assert stake.amount == -1000
    assert payout.amount == 1500
    assert balance_of(user.pk) == 100_000 + 500


def test_overdraw_is_refused(make_user):
    user = make_user(balance=100)
    with pytest.raises(InsufficientFunds):
        debit_for_stake(user.pk, 101, reference="s")
    with pytest.raises(InsufficientFunds):
        withdraw(user.pk, 101, reference="w")
    assert balance_of(user.pk) == 100
    assert not LedgerEntry.objects.filter(reference__in=["s", "w"]).exists()


@pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True])
def test_bad_amounts(user, amount):
    with pytest.raises(WalletError):
        deposit(user.pk, amount, reference="bad")


def test_duplicate_payout_reference_rolls_back(user):
    credit_payout(user.pk, 300, reference="walk:y:payout")
    with pytest.raises(IntegrityError):
        credit_payout(user.pk, 300, reference="walk:y:payout")

    assert balance_of(user.pk) == 100_300
    assert LedgerEntry.objects.filter(kind=LedgerEntry.PAYOUT).count() == 1


def test_ledger_is_append_only(user):
    entry = LedgerEntry.objects.filter(user=user).first()
    with pytest.raises(TypeError):
        entry.save()
    with pytest.raises(TypeError):
        entry.delete()
    with pytest.raises(TypeError):
        LedgerEntry.objects.filter(user=user).update(amount=0)
    with pytest.raises(TypeError):
        LedgerEntry.objects.filter(user=user).delete()


def test_balance_matches_ledger(user):
    debit_for_stake(user.pk, 400, reference="a")
    credit_payout(user.pk, 250, reference="b")
    withdraw(user.pk, 50, reference="c")

    total = sum(LedgerEntry.objects.filter(user=user).values_list("amount", flat=True))
    assert Wallet.objects.get(user=user).balance == total


def test_wallet_endpoints(user):
    client = APIClient()
    client.force_authenticate(user=user)

    balance = client.get(reverse("wallet-balance"))
    assert balance.status_code == 200
    assert balance.data["balance"] == 100_000

    ledger = client.get(reverse("wallet-transactions"), {"limit": "nope"})
    assert ledger.status_code == 200
    assert len(ledger.data) == 1
    assert ledger.data[0]["kind"] == LedgerEntry.DEPOSIT
