"""Management command replaying credit ledgers to detect balance drift."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from billing.models import CreditAccount
from billing.services.credits import get_credit_service
from billing.services.ledger_store import AccountNotFound


class Command(BaseCommand):
    help = "Replay credit ledgers and report accounts whose balance disagrees with their entries."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--account",
            dest="account_ids",
            action="append",
            help="Audit only the specified credit account id. Can be supplied multiple times.",
        )
        parser.add_argument(
            "--fail-fast",
            action="store_true",
            help="Stop at the first inconsistent account.",
        )

    def handle(self, *args, **options) -> None:
        account_ids = options.get("account_ids")
        fail_fast: bool = options.get("fail_fast")
        service = get_credit_service()

        if not account_ids:
            account_ids = list(CreditAccount.objects.order_by("created_at").values_list("id", flat=True))

        audited = 0
        inconsistent = 0
        for account_id in account_ids:
            try:
                report = service.audit(account_id)
            except AccountNotFound as exc:
                raise CommandError(str(exc)) from exc

            audited += 1
            if report.consistent:
                continue

            inconsistent += 1
            self.stdout.write(
                self.style.ERROR(
                    f"Account {report.account_id}: ledger sum {report.ledger_sum} "
                    f"!= balance {report.current_balance} ({len(report.drifts)} drifted entries)"
                )
            )
            for drift in report.drifts:
                self.stdout.write(
                    f"  entry #{drift.sequence}: recorded {drift.recorded_balance}, expected {drift.expected_balance}"
                )
            if fail_fast:
                break

        summary = f"Audited {audited} account(s); {inconsistent} inconsistent."
        if inconsistent:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
