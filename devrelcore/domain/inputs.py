"""Typed input objects for the identity and funnel services.

Raw caller input is turned into these models through the ``validate_*``
functions, which never raise: they return a :class:`ValidationResult` that the
caller inspects or unwraps. Services unwrap at their boundary, so a bad input
becomes a ``ValidationError`` before any transaction is opened.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Literal, Mapping, TypeVar

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from devrelcore.core.errors import ValidationError


IdentifierKind = Literal["email", "domain", "phone", "mlid", "click_id", "key_fp"]
IDENTIFIER_KINDS: tuple[str, ...] = ("email", "domain", "phone", "mlid", "click_id", "key_fp")

Granularity = Literal["day", "week", "month"]
GRANULARITIES: tuple[str, ...] = ("day", "week", "month")

T = TypeVar("T", bound=BaseModel)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are read as UTC and aware ones are converted, since SQLite stores wall time only.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AccountLookup(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    provider: str = Field(min_length=1)
    external_user_id: str = Field(min_length=1)


class IdentifierLookup(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: IdentifierKind
    value: str = Field(min_length=1)


class MergeRequest(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    into_developer_id: str = Field(min_length=1)
    from_developer_id: str = Field(min_length=1)
    reason: str | None = None
    merged_by: str | None = None

    @model_validator(mode="after")
    def _distinct_ids(self) -> "MergeRequest":
        if self.into_developer_id == self.from_developer_id:
            raise ValueError("Cannot merge developer with itself")
        return self


class TimeSeriesQuery(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    from_date: datetime
    to_date: datetime
    granularity: Granularity

    @field_validator("from_date", "to_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _ordered_range(self) -> "TimeSeriesQuery":
        if self.from_date > self.to_date:
            raise ValueError("Invalid date range: from_date must be on or before to_date")
        return self


class NewDeveloper(BaseModel):
    model_config = {"extra": "forbid"}

    display_name: str | None = None
    primary_email: str | None = None
    org_id: str | None = None
    consent_analytics: bool = True
    tags: list[str] = Field(default_factory=list)

    @field_validator("primary_email")
    @classmethod
    def _fold_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        folded = value.strip().lower()
        return folded or None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class NewActivity(BaseModel):
    model_config = {"extra": "forbid"}

    action: str = Field(min_length=1)
    occurred_at: datetime
    source: str = Field(min_length=1)
    developer_id: str | None = None
    account_id: str | None = None
    anon_id: str | None = None
    resource_id: str | None = None
    source_ref: str | None = None
    metadata: dict[str, Any] | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    value: float | None = None
    dedup_key: str | None = None

    @field_validator("occurred_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _has_actor(self) -> "NewActivity":
        if not (self.developer_id or self.account_id or self.anon_id):
            raise ValueError("At least one of developer_id, account_id or anon_id is required")
        return self


@dataclass(frozen=True)
class FieldError:
    field: str | None
    message: str


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    value: T | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    def unwrap(self) -> T:
        # Convert the first failure into the domain error raised at service boundaries.
        if self.ok:
            return self.value  # type: ignore[return-value]
        first = self.errors[0] if self.errors else FieldError(None, "Invalid input")
        raise ValidationError(first.message, field=first.field)


def _field_errors(exc: PydanticValidationError) -> tuple[FieldError, ...]:
    errors: list[FieldError] = []
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ())]
        message = str(item.get("msg", "Invalid value"))
        # Pydantic prefixes messages raised from validators.
        message = message.removeprefix("Value error, ")
        errors.append(FieldError(".".join(loc) or None, message))
    return tuple(errors)


def _validate(model: type[T], payload: Mapping[str, Any]) -> ValidationResult[T]:
    try:
        return ValidationResult(value=model.model_validate(dict(payload)))
    except PydanticValidationError as exc:
        return ValidationResult(value=None, errors=_field_errors(exc))


def validate_account_lookup(payload: Mapping[str, Any]) -> ValidationResult[AccountLookup]:
    return _validate(AccountLookup, payload)


def validate_identifier_lookup(payload: Mapping[str, Any]) -> ValidationResult[IdentifierLookup]:
    return _validate(IdentifierLookup, payload)


def validate_merge_request(payload: Mapping[str, Any]) -> ValidationResult[MergeRequest]:
    return _validate(MergeRequest, payload)


def validate_time_series_query(payload: Mapping[str, Any]) -> ValidationResult[TimeSeriesQuery]:
    return _validate(TimeSeriesQuery, payload)


def validate_new_developer(payload: Mapping[str, Any]) -> ValidationResult[NewDeveloper]:
    return _validate(NewDeveloper, payload)


def validate_new_activity(payload: Mapping[str, Any]) -> ValidationResult[NewActivity]:
    return _validate(NewActivity, payload)
