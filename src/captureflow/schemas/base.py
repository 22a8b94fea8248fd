"""Shared schema base classes."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StrictSchemaModel(BaseModel):
    """Base model with strict validation defaults."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, frozen=False)


class FrozenSchemaModel(BaseModel):
    """Immutable model; updates go through ``model_copy(update=...)``."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class RemotePayloadModel(BaseModel):
    """Model for camelCase payloads exchanged with the remote OCR service."""

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )
