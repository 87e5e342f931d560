import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection, connections

from billing.models import CreditLedgerEntry
from billing.services.credits import CreditService, get_credit_service
from billing.services.ledger_store import AccountNotFound, InsufficientBalance
from billing.tests.fakes import InMemoryLedgerStore

Reason = CreditLedgerEntry.Reason


@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
def service(memory_store):
    return CreditService(memory_store)


def test_check_sufficient_is_read_only(service, memory_store):
    account = memory_store.add_account(balance=50)

    check = service.check_sufficient(account.id, 15)

    assert check.ok is True
    assert check.current_balance == 50
    assert service.check_sufficient(account.id, 51).ok is False
    assert service.check_sufficient(account.id, 50).ok is True
    assert len(memory_store.entries[account.id]) == 1


def test_spend_then_overdraw_scenario(service, memory_store):
    account = memory_store.add_account(balance=50)

    result = service.spend(account.id, 15, Reason.STYLE_GENERATION)
    assert result.new_balance == 35
    assert result.entry.amount == -15
    assert result.entry.balance_after == 35

    with pytest.raises(InsufficientBalance):
        service.spend(account.id, 40, Reason.ASSET_GENERATION)

    assert service.get_balance(account.id) == 35
    assert len(memory_store.entries[account.id]) == 2


@pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, None])
def test_spend_and_grant_reject_non_positive_or_non_integer_amounts(service, memory_store, amount):
    account = memory_store.add_account(balance=50)

    with pytest.raises(ValueError):
        service.spend(account.id, amount, Reason.STYLE_GENERATION)
    with pytest.raises(ValueError):
        service.grant(account.id, amount, Reason.CREDIT_PACK_PURCHASE)

    assert service.get_balance(account.id) == 50


def test_grant_is_idempotent_on_reference(service, memory_store):
    account = memory_store.add_account(balance=50)

    first = service.grant(account.id, 500, Reason.CREDIT_PACK_PURCHASE, "cs_pack")
    second = service.grant(account.id, 500, Reason.CREDIT_PACK_PURCHASE, "cs_pack")

    assert first.new_balance == second.new_balance == 550
    assert second.created is False
    assert service.get_balance(account.id) == 550


def test_spend_is_idempotent_on_reference(service, memory_store):
    account = memory_store.add_account(balance=50)

    service.spend(account.id, 8, Reason.ASSET_GENERATION, "attempt-1")
    repeat = service.spend(account.id, 8, Reason.ASSET_GENERATION, "attempt-1")

    assert repeat.duplicate is True
    assert service.get_balance(account.id) == 42


def test_set_monthly_allowance_is_absolute(service, memory_store):
    account = memory_store.add_account(balance=35)

    raised = service.set_monthly_allowance(account.id, "starter", 200, Reason.SUBSCRIPTION_START, "cs_1")
    lowered = service.set_monthly_allowance(account.id, "free", 50, Reason.SUBSCRIPTION_RENEWAL, "in_1")

    assert raised.entry.amount == 165
    assert lowered.entry.amount == -150
    assert service.get_balance(account.id) == 50
    assert memory_store.get_account(account.id).monthly_credit_grant == 50


def test_set_monthly_allowance_zero_delta_writes_no_entry(service, memory_store):
    account = memory_store.add_account(balance=200, monthly_credit_grant=50)

    result = service.set_monthly_allowance(account.id, "starter", 200, Reason.SUBSCRIPTION_RENEWAL, "in_2")

    assert result.created is False
    assert result.entry is None
    assert len(memory_store.entries[account.id]) == 1
    assert memory_store.get_account(account.id).monthly_credit_grant == 200


def test_set_monthly_allowance_redelivery_after_zero_delta_is_a_duplicate(service, memory_store):
    account = memory_store.add_account(balance=200, monthly_credit_grant=200)
    service.set_monthly_allowance(account.id, "starter", 200, Reason.SUBSCRIPTION_RENEWAL, "in_2")
    service.spend(account.id, 15, Reason.STYLE_GENERATION)

    repeat = service.set_monthly_allowance(account.id, "starter", 200, Reason.SUBSCRIPTION_RENEWAL, "in_2")

    assert repeat.duplicate is True
    assert service.get_balance(account.id) == 185
    assert [entry.amount for entry in memory_store.entries[account.id]] == [200, -15]


def test_spend_reusing_a_zero_delta_reference_is_a_duplicate(service, memory_store):
    account = memory_store.add_account(balance=50)
    service.set_monthly_allowance(account.id, "free", 50, Reason.SUBSCRIPTION_RENEWAL, "ref-1")

    repeat = service.spend(account.id, 15, Reason.STYLE_GENERATION, "ref-1")

    assert repeat.duplicate is True
    assert service.get_balance(account.id) == 50


def test_set_monthly_allowance_rejects_unknown_plan_and_bad_target(service, memory_store):
    account = memory_store.add_account(balance=10)

    with pytest.raises(ValueError):
        service.set_monthly_allowance(account.id, "enterprise", 1000, Reason.SUBSCRIPTION_START)
    with pytest.raises(ValueError):
        service.set_monthly_allowance(account.id, "starter", -1, Reason.SUBSCRIPTION_START)


def test_unknown_account_propagates_not_found(service):
    with pytest.raises(AccountNotFound):
        service.check_sufficient("missing", 1)
    with pytest.raises(AccountNotFound):
        service.spend("missing", 1, Reason.STYLE_GENERATION)


def test_ledger_reconstructs_balance_after_mixed_operations(service, memory_store):
    account = memory_store.add_account(balance=50)

    service.spend(account.id, 15, Reason.STYLE_GENERATION)
    service.set_monthly_allowance(account.id, "pro", 600, Reason.SUBSCRIPTION_START, "cs_pro")
    service.grant(account.id, 1500, Reason.CREDIT_PACK_PURCHASE, "cs_pack")
    service.spend(account.id, 5, Reason.ASSET_REFINEMENT)
    with pytest.raises(InsufficientBalance):
        service.spend(account.id, 10_000, Reason.STYLE_GENERATION)

    report = service.audit(account.id)
    assert report.consistent
    assert report.ledger_sum == service.get_balance(account.id) == 2095


def test_check_then_spend_race_is_rejected_by_the_spend(service, memory_store):
    account = memory_store.add_account(balance=15)

    # Two requests both pass the advisory check before either spends
    assert service.check_sufficient(account.id, 15).ok
    assert service.check_sufficient(account.id, 15).ok

    service.spend(account.id, 15, Reason.STYLE_GENERATION, "request-a")
    with pytest.raises(InsufficientBalance):
        service.spend(account.id, 15, Reason.STYLE_GENERATION, "request-b")

    assert service.get_balance(account.id) == 0
    assert [entry.amount for entry in memory_store.entries[account.id]] == [15, -15]


def test_concurrent_spends_against_memory_store_allow_exactly_one(service, memory_store):
    account = memory_store.add_account(balance=10)
    barrier = threading.Barrier(8)

    def attempt(index):
        barrier.wait()
        try:
            service.spend(account.id, 10, Reason.STYLE_GENERATION, f"spend-{index}")
        except InsufficientBalance:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count(True) == 1
    assert service.get_balance(account.id) == 0
    assert service.audit(account.id).consistent


@pytest.mark.django_db
def test_service_over_django_store_opens_account_once(user):
    service = get_credit_service()

    again = service.open_account(user)

    assert again.id == user.credit_account.id
    assert again.ledger_entries.count() == 1


@pytest.mark.django_db(transaction=True)
def test_concurrent_spends_against_database_allow_exactly_one(make_user):
    if connection.vendor != "postgresql":
        pytest.skip("Row-level locking requires PostgreSQL.")

    account = make_user().credit_account
    service = get_credit_service()
    barrier = threading.Barrier(2)

    def attempt(index):
        try:
            barrier.wait()
            service.spend(account.id, 50, Reason.STYLE_GENERATION, f"db-spend-{index}")
            return True
        except InsufficientBalance:
            return False
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(attempt, range(2)))

    account.refresh_from_db()
    assert sorted(outcomes) == [False, True]
    assert account.credit_balance == 0
    assert account.ledger_entries.count() == 2
    assert service.audit(account.id).consistent
