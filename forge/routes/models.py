"""Pydantic request models for the proxy endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerateContentBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model: str = ""
    prompt: str = ""
    response_schema: dict[str, Any] | None = Field(default=None, alias="schema")


class GenerateImageBody(BaseModel):
    prompt: str = ""
