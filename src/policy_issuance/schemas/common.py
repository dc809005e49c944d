# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Schemas shared across the API."""

from beartype import beartype
from pydantic import BaseModel, ConfigDict, Field


@beartype
class StrictSchema(BaseModel):
    """Immutable, closed request/response schema."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


@beartype
class HealthResponse(StrictSchema):
    """Liveness check body."""

    status: str = Field(default="healthy")
    version: str
    database: bool = Field(..., description="Whether the database pool is open")
    cache: bool = Field(..., description="Whether Redis is connected")


@beartype
class APIInfo(StrictSchema):
    name: str
    version: str
    environment: str
