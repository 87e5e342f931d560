import logging

import pytest

from billing.observability.logging import log_billing_event


def test_log_billing_event_emits_structured_payload(caplog):
    with caplog.at_level(logging.INFO, logger="billing"):
        log_billing_event(message="credits.granted", account_id="acc-1", extra={"amount": 5})

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.msg == {"message": "credits.granted", "account_id": "acc-1", "amount": 5}


def test_log_billing_event_omits_missing_account(caplog):
    with caplog.at_level(logging.WARNING, logger="billing"):
        log_billing_event(message="billing.event_reconciled", level=logging.WARNING)

    assert caplog.records[-1].msg == {"message": "billing.event_reconciled"}


def test_log_billing_event_accepts_only_known_fields():
    with pytest.raises(TypeError):
        log_billing_event(message="credits.granted", request_id="req-1")
