"""Base model shared by every scoped farm record.

Every record model inherits from :class:`HerdRecord` which provides:

* ``alias_generator=to_camel`` so persisted camelCase document keys map
  to snake_case fields.
* The common identity/scope/timestamp fields.
* ``to_document`` / ``from_document`` for the document backends.
* A default ``display_date`` (``created_at``) used for snapshot ordering.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar, Self

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, ValidationInfo, model_validator
from pydantic.alias_generators import to_camel

from herdstore.exceptions import RecordDecodeError
from herdstore.scope import CollectionName, Scope

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000

_DOCUMENT_CONTEXT = {"document": True}


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a stored timestamp to an aware UTC datetime.

    Accepts ``datetime`` objects (naive ones are taken as UTC), epoch
    seconds or milliseconds, and ISO-8601 strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    raise ValueError(f"unsupported timestamp value: {value!r}")


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Required timestamp, coerced from datetimes, epochs or ISO strings."""

OptionalTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


def _pick(values: dict[str, Any], field_name: str, alias: str) -> Any:
    if field_name in values:
        return values[field_name]
    return values.get(alias)


class HerdRecord(BaseModel):
    """Common shape of a scoped, timestamped farm record."""

    collection: ClassVar[CollectionName]
    """Collection the record kind is persisted under."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    farm_id: str
    lambing_season_group_id: str
    created_at: Timestamp
    updated_at: Timestamp

    @model_validator(mode="before")
    @classmethod
    def _fill_timestamps(cls, values: Any, info: ValidationInfo) -> Any:
        """Default ``created_at``/``updated_at`` to one shared "now".

        Documents read back from a backend must carry ``createdAt``; only
        freshly constructed records get defaults.
        """
        if not isinstance(values, dict):
            return values
        created = _pick(values, "created_at", "createdAt")
        updated = _pick(values, "updated_at", "updatedAt")
        from_document = bool(info.context and info.context.get("document"))
        if created is None:
            if from_document:
                raise ValueError("createdAt is required")
            created = utcnow()
        if updated is None:
            updated = created
        filled = {k: v for k, v in values.items() if k not in {"created_at", "createdAt", "updated_at", "updatedAt"}}
        filled["created_at"] = created
        filled["updated_at"] = updated
        return filled

    @property
    def scope(self) -> Scope:
        return Scope(self.user_id, self.farm_id, self.lambing_season_group_id)

    @property
    def display_date(self) -> datetime | None:
        """Ordering key for snapshots (newest first)."""
        return self.created_at

    @property
    def year(self) -> int:
        """Year used for grouping, derived from the creation date."""
        return self.created_at.year

    def to_document(self) -> dict[str, Any]:
        """Flat camelCase document; unset optionals are omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: Any, document_id: str | None = None) -> Self:
        """Decode a stored document, raising :class:`RecordDecodeError` on failure."""
        if not isinstance(data, dict):
            raise RecordDecodeError(
                f"{cls.__name__} document is not an object",
                document_id=document_id or "",
            )
        payload = dict(data)
        if document_id and "id" not in payload:
            payload["id"] = document_id
        try:
            return cls.model_validate(payload, context=_DOCUMENT_CONTEXT)
        except ValidationError as exc:
            raise RecordDecodeError(
                f"Cannot decode {cls.__name__} document {document_id or payload.get('id')!r}: {exc}",
                document_id=document_id or str(payload.get("id") or ""),
            ) from exc
