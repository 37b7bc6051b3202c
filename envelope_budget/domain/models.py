"""
Domain models for the Envelope Budget API.

Defines the envelope and transaction records aligned with the persisted
schema, the validated input payloads for registry and ledger operations,
and the posting result. JSON field names are camelCase; Python attributes
stay snake_case.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Annotated, Any, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from envelope_budget.errors import ValidationError

# Decimals travel as JSON numbers, not strings.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda value: float(value), return_type=float, when_used="json"),
]

_RECORD_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
    from_attributes=True,
)

_INPUT_CONFIG = ConfigDict(
    populate_by_name=True,
    alias_generator=to_camel,
    str_strip_whitespace=True,
    extra="ignore",
)


_CENT = Decimal("0.01")
# NUMERIC(14, 2): anything this large is left for max_digits to reject.
_MAX_MONEY = 1e12


def _round_float_cents(value: Any) -> Any:
    """
    Round binary floats (e.g. 0.1 + 0.2 from a JSON client) half-even to cents.

    Strings and Decimals pass through untouched and are validated as written.
    """
    if isinstance(value, float) and math.isfinite(value) and abs(value) < _MAX_MONEY:
        return Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_EVEN)
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Direction(str, Enum):
    IN = "in"
    OUT = "out"


class Envelope(BaseModel):
    """
    A row of the `envelope_balances` view: the envelope plus its derived balance.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    name: str = Field(..., description="Display name of the budget bucket.")
    initial_amount: Money = Field(Decimal("0"), description="Opening amount, may be negative.")
    start_date: Optional[datetime] = Field(None, description="Optional start of the budget window.")
    end_date: Optional[datetime] = Field(None, description="Optional end of the budget window.")
    active: bool = Field(True, description="False once soft deleted.")
    created_at: datetime = Field(..., description="Creation timestamp.")
    balance: Money = Field(..., description="initial_amount + inflows - outflows.")

    model_config = _RECORD_CONFIG


class Transaction(BaseModel):
    """
    A row of the `transactions` table. Immutable once written.
    """

    id: int = Field(..., description="Primary key (BIGSERIAL).")
    envelope_id: int = Field(..., description="Owning envelope.")
    direction: Direction
    amount: Money = Field(..., description="Unsigned magnitude; sign comes from direction.")
    who: str = Field(..., description="Actor that moved the money.")
    note: Optional[str] = None
    occurred_at: datetime

    model_config = _RECORD_CONFIG

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction is Direction.IN else -self.amount


class PostingResult(BaseModel):
    """Outcome of a committed posting: the new row and the post-insert balance."""

    tx: Transaction
    new_balance: Money

    model_config = _RECORD_CONFIG


class EnvelopeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    initial_amount: Money = Field(Decimal("0"), max_digits=14, decimal_places=2)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    model_config = _INPUT_CONFIG

    @field_validator("initial_amount", mode="before")
    @classmethod
    def _default_null_amount(cls, value: Any) -> Any:
        return Decimal("0") if value is None else _round_float_cents(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class TransactionCreate(BaseModel):
    envelope_id: int = Field(..., gt=0)
    direction: Direction
    amount: Money = Field(..., gt=0, max_digits=14, decimal_places=2)
    who: str = Field(..., min_length=1, max_length=200)
    note: Optional[str] = None
    occurred_at: Optional[datetime] = None
    prevent_negative: bool = True

    model_config = _INPUT_CONFIG

    @field_validator("amount", mode="before")
    @classmethod
    def _round_amount(cls, value: Any) -> Any:
        return _round_float_cents(value)

    @field_validator("occurred_at")
    @classmethod
    def _normalize_occurred_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("prevent_negative", mode="before")
    @classmethod
    def _default_null_policy(cls, value: Any) -> Any:
        return True if value is None else value


class TransactionQuery(BaseModel):
    """Filters for listing transactions. Bounds apply to `occurred_at`: [from, to)."""

    envelope_id: Optional[int] = None
    who: Optional[str] = None
    from_: Optional[datetime] = Field(None, alias="from")
    to: Optional[datetime] = None
    limit: int = 200

    model_config = _INPUT_CONFIG

    @field_validator("from_", "to")
    @classmethod
    def _normalize_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("who")
    @classmethod
    def _blank_who_is_unset(cls, value: Optional[str]) -> Optional[str]:
        return value or None


M = TypeVar("M", bound=BaseModel)


def parse_input(model: Type[M], **data: Any) -> M:
    """
    Validate keyword input into `model`, raising the domain ValidationError.

    Keys may be given either as field names or as their camelCase aliases.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or model.__name__
            problems.append(f"{location}: {error['msg']}")
        raise ValidationError("; ".join(problems)) from exc


__all__ = [
    "Money",
    "Direction",
    "Envelope",
    "Transaction",
    "PostingResult",
    "EnvelopeCreate",
    "TransactionCreate",
    "TransactionQuery",
    "parse_input",
]
