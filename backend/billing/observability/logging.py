"""Structured logging helper for billing and credit events."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("billing")


def log_billing_event(*, message: str, account_id: Optional[str] = None,
                      extra: Optional[Dict[str, Any]] = None, level: int = logging.INFO) -> None:
    payload: Dict[str, Any] = {"message": message}
    if account_id:
        payload["account_id"] = account_id
    if extra:
        payload.update(extra)
    logger.log(level, payload)
