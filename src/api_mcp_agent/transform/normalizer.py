"""Normalize a parsed ApiModel into the compact form the prompts consume.

``normalize`` is a pure projection: it builds new objects and never touches
its input, so the ApiModel stays usable for reporting afterwards.
"""

from typing import Any

from api_mcp_agent.parser.base import (
    ApiModel,
    AuthSchemeDescriptor,
    EndpointDescriptor,
    ParameterDescriptor,
    RequestBodyDescriptor,
    ResponseDescriptor,
    SchemaNode,
    schema_type_label,
)
from api_mcp_agent.transform.models import (
    CompactAuthScheme,
    CompactEndpoint,
    CompactModel,
    CompactParameter,
    CompactRequestBody,
    CompactResponse,
    CompactSchema,
)


def normalize(api: ApiModel) -> CompactModel:
    return CompactModel(
        title=api.title,
        version=api.version,
        description=api.description,
        base_url=api.base_url,
        endpoints=[_endpoint(ep) for ep in api.endpoints],
        auth_schemes=[_auth_scheme(auth) for auth in api.auth_schemes],
        schemas={name: simplify_schema(node, name=name) for name, node in api.schemas.items()},
    )


def simplify_schema(node: SchemaNode, name: str | None = None) -> CompactSchema:
    """Copy ``node`` into a CompactSchema, keeping only fields the source set."""
    fields: dict[str, Any] = {"type": schema_type_label(node)}

    if name or node.name:
        fields["name"] = name or node.name
    if node.is_cycle:
        fields["circular_ref"] = node.name or node.ref or "anonymous"
        return CompactSchema(**fields)

    if node.description:
        fields["description"] = node.description
    if node.format:
        fields["format"] = node.format
    if node.enum is not None:
        fields["enum"] = list(node.enum)
    if node.has_default:
        fields["default"] = node.default
    if node.required:
        fields["required"] = list(node.required)
    if node.properties:
        fields["properties"] = {key: simplify_schema(value) for key, value in node.properties.items()}
    if node.items is not None:
        fields["items"] = simplify_schema(node.items)
    if isinstance(node.additional_properties, SchemaNode):
        fields["additional_properties"] = simplify_schema(node.additional_properties)
    elif node.additional_properties is not None:
        fields["additional_properties"] = node.additional_properties
    for field in ("all_of", "one_of", "any_of"):
        members = getattr(node, field)
        if members:
            fields[field] = [simplify_schema(member) for member in members]
    if node.constraints:
        fields["constraints"] = dict(node.constraints)

    return CompactSchema(**fields)


def _parameter(param: ParameterDescriptor) -> CompactParameter:
    schema = param.schema_
    fields: dict[str, Any] = {
        "name": param.name,
        "location": param.location,
        "required": param.required,
        "type": param.param_type,
    }
    if param.description:
        fields["description"] = param.description
    if schema.format:
        fields["format"] = schema.format
    if schema.enum is not None:
        fields["enum"] = list(schema.enum)
    if schema.has_default:
        fields["default"] = schema.default
    return CompactParameter(**fields)


def _request_body(body: RequestBodyDescriptor) -> CompactRequestBody:
    return CompactRequestBody(
        content_type=body.content_type,
        required=body.required,
        description=body.description,
        schema_name=body.schema_name,
        schema=simplify_schema(body.schema_) if body.schema_ is not None else None,
    )


def _response(response: ResponseDescriptor) -> CompactResponse:
    return CompactResponse(
        status_code=response.status_code,
        description=response.description,
        content_type=response.content_type,
        schema_name=response.schema_name,
        schema=simplify_schema(response.schema_) if response.schema_ is not None else None,
    )


def _endpoint(endpoint: EndpointDescriptor) -> CompactEndpoint:
    return CompactEndpoint(
        path=endpoint.path,
        method=endpoint.method,
        operation_id=endpoint.operation_id,
        summary=endpoint.summary,
        description=endpoint.description,
        tags=list(endpoint.tags),
        parameters=[_parameter(p) for p in endpoint.parameters],
        request_body=_request_body(endpoint.request_body) if endpoint.request_body else None,
        responses=[_response(r) for r in endpoint.responses],
        security=list(endpoint.security),
    )


def _auth_scheme(auth: AuthSchemeDescriptor) -> CompactAuthScheme:
    return CompactAuthScheme(
        name=auth.name,
        type=auth.kind,
        location=auth.location,
        scheme=auth.scheme,
        api_key_name=auth.parameter_name,
    )


# -- text summaries ---------------------------------------------------------


def api_summary(api: ApiModel | CompactModel) -> str:
    """One-screen overview of a parsed or normalized API."""
    lines = [f"API: {api.title}", f"Version: {api.version}"]
    if api.description:
        lines.append(f"Description: {api.description}")
    lines.append(f"Base URL: {api.base_url}")
    lines.append(f"\nEndpoints: {len(api.endpoints)}")
    lines.append(f"Auth Schemes: {len(api.auth_schemes)}")
    lines.append(f"Schemas: {len(api.schemas)}")
    return "\n".join(lines)


def endpoint_summary(endpoint: EndpointDescriptor | CompactEndpoint) -> str:
    lines = [f"{endpoint.method} {endpoint.path}"]
    if endpoint.summary:
        lines.append(f"Summary: {endpoint.summary}")
    if endpoint.description:
        lines.append(f"Description: {endpoint.description}")
    lines.append(f"Operation ID: {endpoint.operation_id}")

    if endpoint.parameters:
        lines.append(f"Parameters: {len(endpoint.parameters)}")
        for p in endpoint.parameters:
            label = p.type if isinstance(p, CompactParameter) else p.param_type
            required = " [required]" if p.required else ""
            lines.append(f"  - {p.name} ({p.location}): {label}{required}")

    body = endpoint.request_body
    if body:
        hint = f" ({body.schema_name})" if body.schema_name else ""
        lines.append(f"Request Body: {body.content_type}{hint}")

    if endpoint.responses:
        lines.append(f"Responses: {len(endpoint.responses)}")
        for r in endpoint.responses[:3]:
            hint = f" ({r.schema_name})" if r.schema_name else ""
            lines.append(f"  - {r.status_code}: {r.description}{hint}")

    return "\n".join(lines)
