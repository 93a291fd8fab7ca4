"""Data models for a parsed OpenAPI document.

The parser resolves every schema it touches into a ``SchemaNode`` tree and
collects the result into a single immutable ``ApiModel``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SchemaKind = Literal["primitive", "object", "array", "composite", "unresolved-cycle"]
ParamLocation = Literal["query", "path", "header", "cookie"]
AuthKind = Literal["apiKey", "http", "oauth2"]


class SchemaNode(BaseModel):
    """A resolved JSON-Schema-like type.

    A node with ``kind == "unresolved-cycle"`` is a terminal marker for a
    reference that was already being expanded; ``ref`` holds its pointer.
    ``default`` is only meaningful when listed in ``model_fields_set``.
    """

    kind: SchemaKind = "primitive"
    type: str | None = None  # string / integer / number / boolean / array / object
    format: str | None = None
    description: str | None = None
    properties: dict[str, "SchemaNode"] = {}
    required: list[str] = []
    items: "SchemaNode | None" = None
    additional_properties: "SchemaNode | bool | None" = None
    all_of: list["SchemaNode"] = []
    one_of: list["SchemaNode"] = []
    any_of: list["SchemaNode"] = []
    enum: list[Any] | None = None
    default: Any = None
    name: str | None = None  # components/schemas name, when reached through a $ref
    ref: str | None = None  # pointer of a broken cycle
    constraints: dict[str, Any] = {}  # minimum, pattern, nullable, example, ...

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @property
    def is_cycle(self) -> bool:
        return self.kind == "unresolved-cycle"


SchemaNode.model_rebuild()


def schema_type_label(node: SchemaNode | None) -> str:
    """Explicit type tag wins; else ``properties`` implies object; else any."""
    if node is None:
        return "any"
    if node.type:
        return node.type
    if node.properties:
        return "object"
    return "any"


class ParameterDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: ParamLocation
    required: bool = False
    description: str | None = None
    schema_: SchemaNode = Field(alias="schema")
    param_type: str = "string"


class RequestBodyDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content_type: str
    required: bool = False
    description: str | None = None
    schema_: SchemaNode | None = Field(default=None, alias="schema")
    schema_name: str | None = None


class ResponseDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: str
    description: str = ""
    content_type: str | None = None
    schema_: SchemaNode | None = Field(default=None, alias="schema")
    schema_name: str | None = None


class AuthSchemeDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: AuthKind
    location: str | None = None  # apiKey: query / header / cookie
    parameter_name: str | None = None  # apiKey: header or query parameter name
    scheme: str | None = None  # http: bearer / basic / ...
    bearer_format: str | None = None


class EndpointDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    method: str  # GET / POST / PUT / DELETE / PATCH / HEAD / OPTIONS / TRACE
    operation_id: str
    summary: str | None = None
    description: str | None = None
    tags: list[str] = []
    deprecated: bool = False
    parameters: list[ParameterDescriptor] = []
    request_body: RequestBodyDescriptor | None = None
    responses: list[ResponseDescriptor] = []
    security: list[str] = []


class ApiModel(BaseModel):
    """Everything the generation pipeline needs to know about one document."""

    model_config = ConfigDict(frozen=True)

    title: str
    version: str
    description: str | None = None
    base_url: str
    endpoints: list[EndpointDescriptor] = []
    auth_schemes: list[AuthSchemeDescriptor] = []
    schemas: dict[str, SchemaNode] = {}
