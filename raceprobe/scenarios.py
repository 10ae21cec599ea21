"""
Ready-made scenarios for the bank-account command endpoint.

    POST /v1/bank_account
    Authorization: Bearer <token>
    {"Withdrawal": {"id": "<unique>", "amount": {"amount": "30", "currency": "TWD"}}}

Every request carries a fresh id, so a service that treats the id as an
idempotency key sees distinct commands and must serialize them correctly.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence

from raceprobe.checks import status_is
from raceprobe.exceptions import ProbeConfigError
from raceprobe.scenario import ScenarioDefinition

BANK_ACCOUNT_PATH = "/v1/bank_account"
WITHDRAWAL = "Withdrawal"
DEPOSIT = "Deposit"

_CURRENCY = re.compile(r"^[A-Z]{3}$")


def join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def _validate_amount(amount: Any) -> str:
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ProbeConfigError(
            f"Amount {amount!r} is not a decimal", code="invalid_amount"
        ) from exc
    if not value.is_finite() or value <= 0:
        raise ProbeConfigError(
            f"Amount {amount!r} must be a positive decimal", code="invalid_amount"
        )
    return str(amount)


def _validate_currency(currency: str) -> str:
    if not _CURRENCY.match(currency):
        raise ProbeConfigError(
            f"Currency {currency!r} is not an ISO 4217 code", code="invalid_currency"
        )
    return currency


def bank_account_command(
    operation: str,
    target: str,
    *,
    amount: Any = "30",
    currency: str = "TWD",
    path: str = BANK_ACCOUNT_PATH,
    name: Optional[str] = None,
    checks: Optional[Sequence[Any]] = None,
) -> ScenarioDefinition:
    """
    Build a scenario posting one money command to the bank-account endpoint.

    Args:
        operation: Top-level command key ("Withdrawal", "Deposit").
        target: Base URL of the service (e.g. "http://localhost:3030").
        amount: Decimal amount, sent as a string.
        currency: ISO currency code.
        path: Endpoint path appended to target.
        name: Scenario name (defaults to the lowercased operation).
        checks: Checks to apply; defaults to status 200.
    """
    if not operation:
        raise ProbeConfigError("operation is required", code="invalid_operation")
    check_list: List[Any] = list(checks) if checks is not None else [status_is(200)]
    return ScenarioDefinition(
        name=name or operation.lower(),
        target=join_url(target, path),
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Authorization": "Bearer ${token}",
        },
        body={
            operation: {
                "id": "${request_id}",
                "amount": {"amount": "${amount}", "currency": "${currency}"},
            }
        },
        variables={
            "amount": _validate_amount(amount),
            "currency": _validate_currency(currency),
        },
        checks=check_list,
    )


def withdrawal_scenario(target: str, **kwargs: Any) -> ScenarioDefinition:
    return bank_account_command(WITHDRAWAL, target, **kwargs)


def deposit_scenario(target: str, **kwargs: Any) -> ScenarioDefinition:
    return bank_account_command(DEPOSIT, target, **kwargs)
