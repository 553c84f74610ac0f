"""Request and response schemas for the feed server API."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PodQueryRequest(BaseModel):
    """POST /pods body. Accepts ``Namespace``/``Label`` and lower-case keys."""

    model_config = ConfigDict(populate_by_name=True)

    namespace: str = Field(default="", validation_alias=AliasChoices("Namespace", "namespace"))
    label: str = Field(default="", validation_alias=AliasChoices("Label", "label"))


class PodInfoResponse(BaseModel):
    name: str
    ip_address: str


class HealthResponse(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    error: str
    detail: str
