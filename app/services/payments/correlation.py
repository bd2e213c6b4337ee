"""
Correlation string: "{userId}_{tier}_{durationMonths}".
Embedded in the payment description / order id and echoed back in the callback.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import MalformedCorrelation
from app.services.plans import is_valid_tier

SEPARATOR = "_"


@dataclass(frozen=True)
class Correlation:
    user_id: int
    tier: int
    months: int


def encode_correlation(user_id: int, tier: int, months: int) -> str:
    return SEPARATOR.join(str(part) for part in (user_id, tier, months))


def _positive_int(token: str, name: str, raw: str) -> int:
    # isdigit() rejects signs, spaces and decimals: "+1", " 1", "1.0"
    if not token.isdigit() or not token.isascii():
        raise MalformedCorrelation(f"{name} is not a positive integer", detail={"correlation": raw})
    value = int(token)
    if value < 1:
        raise MalformedCorrelation(f"{name} must be positive", detail={"correlation": raw})
    return value


def decode_correlation(raw: str | None) -> Correlation:
    """Exactly three positive integer tokens, known tier. Raises MalformedCorrelation."""
    if not raw:
        raise MalformedCorrelation("empty correlation")
    parts = raw.split(SEPARATOR)
    if len(parts) != 3:
        raise MalformedCorrelation("expected three tokens", detail={"correlation": raw})
    user_id = _positive_int(parts[0], "user_id", raw)
    tier = _positive_int(parts[1], "tier", raw)
    months = _positive_int(parts[2], "months", raw)
    if not is_valid_tier(tier):
        raise MalformedCorrelation("unknown tier", detail={"correlation": raw})
    return Correlation(user_id=user_id, tier=tier, months=months)
