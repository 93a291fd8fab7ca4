"""Compact, prompt-oriented projection of an ApiModel."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CompactSchema(BaseModel):
    """Simplified schema. ``default`` is only emitted when the source had one."""

    type: str = "any"
    name: str | None = None
    description: str | None = None
    format: str | None = None
    enum: list[Any] | None = None
    default: Any = None
    required: list[str] | None = None
    properties: dict[str, "CompactSchema"] | None = None
    items: "CompactSchema | None" = None
    additional_properties: "CompactSchema | bool | None" = None
    all_of: list["CompactSchema"] | None = None
    one_of: list["CompactSchema"] | None = None
    any_of: list["CompactSchema"] | None = None
    constraints: dict[str, Any] | None = None
    circular_ref: str | None = None


CompactSchema.model_rebuild()


class CompactParameter(BaseModel):
    name: str
    location: str
    required: bool
    type: str
    description: str | None = None
    format: str | None = None
    enum: list[Any] | None = None
    default: Any = None


class CompactRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: str
    required: bool
    description: str | None = None
    schema_name: str | None = None
    schema_: CompactSchema | None = Field(default=None, alias="schema")


class CompactResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: str
    description: str
    content_type: str | None = None
    schema_name: str | None = None
    schema_: CompactSchema | None = Field(default=None, alias="schema")


class CompactAuthScheme(BaseModel):
    name: str
    type: str  # apiKey / http / oauth2
    location: str | None = None
    scheme: str | None = None
    api_key_name: str | None = None


class CompactEndpoint(BaseModel):
    path: str
    method: str
    operation_id: str
    summary: str | None = None
    description: str | None = None
    tags: list[str] = []
    parameters: list[CompactParameter] = []
    request_body: CompactRequestBody | None = None
    responses: list[CompactResponse] = []
    security: list[str] = []


class CompactModel(BaseModel):
    title: str
    version: str
    description: str | None = None
    base_url: str
    endpoints: list[CompactEndpoint] = []
    auth_schemes: list[CompactAuthScheme] = []
    schemas: dict[str, CompactSchema] = {}
