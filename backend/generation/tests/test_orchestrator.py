import uuid

import pytest

from billing.models import CreditLedgerEntry
from billing.services.credits import get_credit_service
from generation.models import GenerationAttempt
from generation.services.orchestrator import (
    AttemptAlreadyCompleted,
    AttemptNotFound,
    AttemptOutcome,
    GenerationFailed,
    GenerationOrchestrator,
    InsufficientCredits,
)

Reason = CreditLedgerEntry.Reason


@pytest.fixture
def credits():
    return get_credit_service()


@pytest.fixture
def orchestrator(credits):
    return GenerationOrchestrator(credits)


@pytest.fixture
def starter_account(account, credits):
    credits.assign_plan(account.id, "starter")
    credits.set_monthly_allowance(account.id, "starter", 200, Reason.SUBSCRIPTION_START, "cs_seed")
    return account


@pytest.mark.django_db
def test_failed_generation_charges_nothing(orchestrator, credits, starter_account):
    attempt_id = orchestrator.begin_attempt(starter_account.id, GenerationAttempt.KIND_ASSET, 8)

    attempt = orchestrator.complete_attempt(attempt_id, AttemptOutcome.failure("upstream timeout"))

    assert credits.get_balance(starter_account.id) == 200
    assert attempt.status == GenerationAttempt.STATUS_FAILED
    assert attempt.error_detail == "upstream timeout"
    assert attempt.ledger_entry is None
    assert attempt.completed_at is not None


@pytest.mark.django_db
def test_successful_generation_spends_once(orchestrator, credits, starter_account):
    attempt_id = orchestrator.begin_attempt(
        starter_account.id, GenerationAttempt.KIND_STYLE, 15, metadata={"project": "p1"}
    )

    attempt = orchestrator.complete_attempt(attempt_id, AttemptOutcome.success({"images": 4}))

    attempt.refresh_from_db()
    assert credits.get_balance(starter_account.id) == 185
    assert attempt.status == GenerationAttempt.STATUS_SUCCEEDED
    assert attempt.metadata == {"project": "p1", "images": 4}
    assert attempt.ledger_entry.amount == -15
    assert attempt.ledger_entry.reason == Reason.STYLE_GENERATION
    assert attempt.ledger_entry.reference_id == str(attempt.id)
    assert attempt.duration_ms is not None


@pytest.mark.django_db
def test_begin_attempt_rejects_short_balance_without_recording(orchestrator, account):
    with pytest.raises(InsufficientCredits) as exc:
        orchestrator.begin_attempt(account.id, GenerationAttempt.KIND_STYLE, 51)

    assert exc.value.required == 51
    assert exc.value.current_balance == 50
    assert not GenerationAttempt.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize("kind, credits_required", [("video", 5), ("style", 0), ("style", -3), ("style", 2.5)])
def test_begin_attempt_validates_arguments(orchestrator, account, kind, credits_required):
    with pytest.raises(ValueError):
        orchestrator.begin_attempt(account.id, kind, credits_required)


@pytest.mark.django_db
def test_attempt_completes_only_once(orchestrator, credits, account):
    attempt_id = orchestrator.begin_attempt(account.id, GenerationAttempt.KIND_ASSET_REFINEMENT, 5)
    orchestrator.complete_attempt(attempt_id, AttemptOutcome.success())

    with pytest.raises(AttemptAlreadyCompleted):
        orchestrator.complete_attempt(attempt_id, AttemptOutcome.success())

    assert credits.get_balance(account.id) == 45


@pytest.mark.django_db
def test_complete_unknown_attempt(orchestrator):
    with pytest.raises(AttemptNotFound):
        orchestrator.complete_attempt(uuid.uuid4(), AttemptOutcome.success())
    with pytest.raises(AttemptNotFound):
        orchestrator.complete_attempt("not-a-uuid", AttemptOutcome.success())


@pytest.mark.django_db
def test_balance_drained_between_begin_and_complete(orchestrator, credits, account):
    attempt_id = orchestrator.begin_attempt(account.id, GenerationAttempt.KIND_STYLE, 15)
    credits.spend(account.id, 40, Reason.ASSET_GENERATION)

    with pytest.raises(InsufficientCredits) as exc:
        orchestrator.complete_attempt(attempt_id, AttemptOutcome.success())

    attempt = GenerationAttempt.objects.get(pk=attempt_id)
    assert exc.value.current_balance == 10
    assert attempt.status == GenerationAttempt.STATUS_FAILED
    assert attempt.ledger_entry is None
    assert credits.get_balance(account.id) == 10


@pytest.mark.django_db
def test_run_returns_action_output_and_charges(orchestrator, credits, account):
    run = orchestrator.run(account.id, GenerationAttempt.KIND_ASSET, 8, lambda: {"url": "https://cdn.test/a.png"})

    assert run.output == {"url": "https://cdn.test/a.png"}
    assert run.attempt.status == GenerationAttempt.STATUS_SUCCEEDED
    assert credits.get_balance(account.id) == 42


@pytest.mark.django_db
def test_run_wraps_action_errors_and_charges_nothing(orchestrator, credits, account):
    def explode():
        raise TimeoutError("model endpoint timed out")

    with pytest.raises(GenerationFailed) as exc:
        orchestrator.run(account.id, GenerationAttempt.KIND_ASSET, 8, explode)

    attempt = GenerationAttempt.objects.get(pk=exc.value.attempt_id)
    assert attempt.status == GenerationAttempt.STATUS_FAILED
    assert attempt.error_detail == "model endpoint timed out"
    assert isinstance(exc.value.__cause__, TimeoutError)
    assert credits.get_balance(account.id) == 50
