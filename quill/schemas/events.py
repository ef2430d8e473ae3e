"""Queue message schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from quill.schemas.post import ensure_aware


class PublishEvent(BaseModel):
    """Deferred intent to publish one post.

    Wire shape: ``{"postIdentifier", "authorIdentifier", "requestedAt",
    "scheduledFor"}``. A missing or null ``scheduledFor`` means publish as soon
    as the event is consumed.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    post_identifier: UUID
    author_identifier: UUID
    requested_at: datetime
    scheduled_for: datetime | None = None

    @field_validator("requested_at", "scheduled_for")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return ensure_aware(value)

    def encode(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def decode(cls, body: str | bytes) -> PublishEvent:
        """Parse a message body; raises ``pydantic.ValidationError``."""
        return cls.model_validate_json(body)
