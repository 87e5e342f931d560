import io

import pytest
from django.core.management import CommandError, call_command

from billing.models import CreditAccount, CreditLedgerEntry
from billing.services.credits import get_credit_service


@pytest.mark.django_db
def test_audit_passes_for_consistent_ledgers(make_user):
    account = make_user().credit_account
    make_user()
    get_credit_service().spend(account.id, 15, CreditLedgerEntry.Reason.STYLE_GENERATION)
    out = io.StringIO()

    call_command("audit_credit_ledger", stdout=out)

    assert "Audited 2 account(s); 0 inconsistent." in out.getvalue()


@pytest.mark.django_db
def test_audit_reports_drifted_account(make_user):
    healthy = make_user().credit_account
    drifted = make_user().credit_account
    CreditAccount.objects.filter(pk=drifted.pk).update(credit_balance=70)
    out = io.StringIO()

    with pytest.raises(CommandError, match="1 inconsistent"):
        call_command("audit_credit_ledger", stdout=out)

    assert f"Account {drifted.id}: ledger sum 50 != balance 70" in out.getvalue()
    assert str(healthy.id) not in out.getvalue()


@pytest.mark.django_db
def test_audit_limited_to_selected_accounts(make_user):
    healthy = make_user().credit_account
    drifted = make_user().credit_account
    CreditAccount.objects.filter(pk=drifted.pk).update(credit_balance=70)
    out = io.StringIO()

    call_command("audit_credit_ledger", "--account", str(healthy.id), stdout=out)

    assert "Audited 1 account(s); 0 inconsistent." in out.getvalue()


@pytest.mark.django_db
def test_audit_rejects_unknown_account():
    with pytest.raises(CommandError):
        call_command("audit_credit_ledger", "--account", "00000000-0000-0000-0000-000000000000")
