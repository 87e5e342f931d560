import uuid

import pytest
from django.core.exceptions import ValidationError

from billing.models import CreditAccount, CreditLedgerEntry
from billing.services.ledger_store import AccountNotFound, DjangoLedgerStore, InsufficientBalance

Reason = CreditLedgerEntry.Reason


@pytest.fixture
def store():
    return DjangoLedgerStore()


@pytest.mark.django_db
def test_new_user_account_starts_with_signup_grant_entry(account):
    assert account.plan == "free"
    assert account.credit_balance == 50
    assert account.monthly_credit_grant == 50

    entries = list(account.ledger_entries.all())
    assert len(entries) == 1
    assert entries[0].reason == Reason.SIGNUP_GRANT
    assert entries[0].amount == 50
    assert entries[0].balance_after == 50
    assert entries[0].sequence == 1


@pytest.mark.django_db
def test_apply_delta_updates_balance_and_writes_one_entry(store, account):
    result = store.apply_delta(account.id, -15, Reason.STYLE_GENERATION)

    account.refresh_from_db()
    assert result.created is True
    assert result.new_balance == 35 == account.credit_balance
    assert result.entry.amount == -15
    assert result.entry.balance_after == 35
    assert result.entry.sequence == 2
    assert account.ledger_entries.count() == 2


@pytest.mark.django_db
def test_apply_delta_rejects_overdraw_without_writing(store, account):
    with pytest.raises(InsufficientBalance) as exc:
        store.apply_delta(account.id, -51, Reason.ASSET_GENERATION)

    account.refresh_from_db()
    assert exc.value.required == 51
    assert exc.value.current_balance == 50
    assert account.credit_balance == 50
    assert account.ledger_entries.count() == 1


@pytest.mark.django_db
def test_apply_delta_can_spend_balance_to_exactly_zero(store, account):
    result = store.apply_delta(account.id, -50, Reason.STYLE_GENERATION)

    assert result.new_balance == 0
    assert store.get_balance(account.id) == 0


@pytest.mark.django_db
def test_apply_delta_rejects_zero_amount(store, account):
    with pytest.raises(ValueError):
        store.apply_delta(account.id, 0, Reason.MANUAL_ADJUSTMENT)


@pytest.mark.django_db
def test_duplicate_reference_returns_original_balance_after(store, account):
    first = store.apply_delta(account.id, 500, Reason.CREDIT_PACK_PURCHASE, "cs_123")
    store.apply_delta(account.id, -20, Reason.STYLE_GENERATION)

    second = store.apply_delta(account.id, 500, Reason.CREDIT_PACK_PURCHASE, "cs_123")

    assert first.created is True
    assert second.created is False
    assert second.duplicate is True
    assert second.new_balance == 550
    assert second.entry.pk == first.entry.pk
    assert store.get_balance(account.id) == 530
    assert account.ledger_entries.filter(reference_id="cs_123").count() == 1


@pytest.mark.django_db
def test_reference_ids_are_scoped_per_account(store, make_user):
    first = make_user().credit_account
    second = make_user().credit_account

    store.apply_delta(first.id, 10, Reason.MANUAL_ADJUSTMENT, "shared-ref")
    result = store.apply_delta(second.id, 10, Reason.MANUAL_ADJUSTMENT, "shared-ref")

    assert result.created is True
    assert store.get_balance(second.id) == 60


@pytest.mark.django_db
def test_reset_balance_writes_signed_delta(store, account):
    store.apply_delta(account.id, -15, Reason.STYLE_GENERATION)

    result = store.reset_balance(account.id, 200, Reason.SUBSCRIPTION_START, "cs_sub", monthly_credit_grant=200)

    account.refresh_from_db()
    assert result.entry.amount == 165
    assert result.new_balance == 200 == account.credit_balance
    assert account.monthly_credit_grant == 200


@pytest.mark.django_db
def test_reset_balance_can_lower_the_balance(store, account):
    store.apply_delta(account.id, 500, Reason.CREDIT_PACK_PURCHASE, "cs_pack")

    result = store.reset_balance(account.id, 200, Reason.SUBSCRIPTION_RENEWAL, "in_1")

    assert result.entry.amount == -350
    assert store.get_balance(account.id) == 200


@pytest.mark.django_db
def test_reset_balance_with_zero_delta_writes_no_entry_but_records_grant(store, account):
    result = store.reset_balance(account.id, 50, Reason.SUBSCRIPTION_RENEWAL, "in_same", monthly_credit_grant=75)

    account.refresh_from_db()
    assert result.created is False
    assert result.duplicate is False
    assert result.entry is None
    assert account.ledger_entries.count() == 1
    assert account.monthly_credit_grant == 75


@pytest.mark.django_db
def test_reset_balance_zero_delta_reference_is_not_reapplied(store, account):
    store.reset_balance(account.id, 50, Reason.SUBSCRIPTION_RENEWAL, "in_same")
    store.apply_delta(account.id, -15, Reason.STYLE_GENERATION)

    repeat = store.reset_balance(account.id, 50, Reason.SUBSCRIPTION_RENEWAL, "in_same")

    account.refresh_from_db()
    assert repeat.duplicate is True
    assert repeat.created is False
    assert repeat.entry is None
    assert repeat.new_balance == 50
    assert account.credit_balance == 35
    assert account.ledger_entries.count() == 2


@pytest.mark.django_db
def test_reset_balance_zero_delta_without_reference_records_nothing(store, account):
    store.reset_balance(account.id, 50, Reason.SUBSCRIPTION_RENEWAL)

    assert not account.applied_references.exists()


@pytest.mark.django_db
def test_reset_balance_rejects_negative_target(store, account):
    with pytest.raises(ValueError):
        store.reset_balance(account.id, -1, Reason.SUBSCRIPTION_RENEWAL)


@pytest.mark.django_db
def test_unknown_account_raises_not_found(store):
    missing = uuid.uuid4()

    with pytest.raises(AccountNotFound):
        store.get_balance(missing)
    with pytest.raises(AccountNotFound):
        store.apply_delta(missing, 5, Reason.MANUAL_ADJUSTMENT)
    with pytest.raises(AccountNotFound):
        store.apply_delta("not-a-uuid", 5, Reason.MANUAL_ADJUSTMENT)
    with pytest.raises(AccountNotFound):
        store.list_recent(missing, limit=5)


@pytest.mark.django_db
def test_list_recent_is_most_recent_first_and_restartable(store, account):
    for amount in (1, 2, 3, 4):
        store.apply_delta(account.id, amount, Reason.MANUAL_ADJUSTMENT)

    first_page = store.list_recent(account.id, limit=2)
    second_page = store.list_recent(account.id, limit=2, offset=2)

    assert [entry.amount for entry in first_page] == [4, 3]
    assert [entry.amount for entry in second_page] == [2, 1]
    assert store.list_recent(account.id, limit=0) == []


@pytest.mark.django_db
def test_find_by_reference(store, account):
    store.apply_delta(account.id, 5, Reason.MANUAL_ADJUSTMENT, "ref-1")

    assert store.find_by_reference(account.id, "ref-1").amount == 5
    assert store.find_by_reference(account.id, "ref-2") is None
    assert store.find_by_reference(account.id, "") is None


@pytest.mark.django_db
def test_assign_plan_reports_changed_fields_only(store, account):
    changed = store.assign_plan(account.id, "starter", subscription_ref="sub_1", customer_ref="cus_1")
    unchanged = store.assign_plan(account.id, "starter", subscription_ref="sub_1")
    customer_only = store.assign_plan(account.id, customer_ref="cus_1")

    account.refresh_from_db()
    assert set(changed) == {"plan", "stripe_subscription_id", "stripe_customer_id"}
    assert unchanged == []
    assert customer_only == []
    assert (account.plan, account.stripe_subscription_id, account.stripe_customer_id) == ("starter", "sub_1", "cus_1")


@pytest.mark.django_db
def test_resolve_account_prefers_user_then_customer(store, make_user):
    owner = make_user()
    other = make_user()
    store.assign_plan(other.credit_account.id, customer_ref="cus_other")

    assert store.resolve_account(user_ref=owner.pk, customer_ref="cus_other").id == owner.credit_account.id
    assert store.resolve_account(user_ref="999999", customer_ref="cus_other").id == other.credit_account.id
    assert store.resolve_account(user_ref="not-a-number") is None
    assert store.resolve_account(customer_ref="cus_missing") is None


@pytest.mark.django_db
def test_ledger_entries_are_immutable(store, account):
    entry = account.ledger_entries.get()

    entry.amount = 999
    with pytest.raises(ValidationError):
        entry.save()
    with pytest.raises(ValidationError):
        entry.delete()


@pytest.mark.django_db
def test_audit_replays_ledger_to_current_balance(store, account):
    store.apply_delta(account.id, -15, Reason.STYLE_GENERATION)
    store.reset_balance(account.id, 200, Reason.SUBSCRIPTION_START, "cs_1")
    store.apply_delta(account.id, -8, Reason.ASSET_GENERATION)

    report = store.audit(account.id)

    assert report.consistent
    assert report.entry_count == 4
    assert report.ledger_sum == 192 == report.current_balance


@pytest.mark.django_db
def test_audit_detects_balance_written_outside_the_ledger(store, account):
    CreditAccount.objects.filter(pk=account.pk).update(credit_balance=999)

    report = store.audit(account.id)

    assert not report.consistent
    assert report.drifts == ()
    assert report.ledger_sum == 50
    assert report.current_balance == 999
