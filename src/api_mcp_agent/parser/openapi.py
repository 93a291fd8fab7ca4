"""OpenAPI 3.x document parser.

Builds an ApiModel from raw JSON/YAML, resolving every schema it touches.
"""

import logging
import re
from pathlib import Path

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
from api_mcp_agent.parser.detect import detect_version, load_document
from api_mcp_agent.parser.resolver import SCHEMA_PREFIX, resolve, resolve_pointer

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.example.com"
HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options", "trace")


def parse_openapi(raw: bytes | str) -> ApiModel:
    """Parse an OpenAPI 3.x document (JSON or YAML) into an ApiModel."""
    doc = load_document(raw)
    detect_version(doc)

    info = doc.get("info") or {}
    endpoints = _extract_endpoints(doc)
    logger.info("Parsed %d endpoints from '%s'", len(endpoints), info.get("title", "API"))

    return ApiModel(
        title=info.get("title") or "API",
        version=str(info.get("version") or "1.0.0"),
        description=info.get("description"),
        base_url=_extract_base_url(doc),
        endpoints=endpoints,
        auth_schemes=_extract_auth_schemes(doc),
        schemas=_extract_schemas(doc),
    )


def parse_openapi_file(file_path: Path) -> ApiModel:
    return parse_openapi(file_path.read_bytes())


def generate_operation_id(method: str, path: str) -> str:
    """``GET /pets/{id}/toys`` -> ``getPetsToys``; ``Resource`` when no literal segments."""
    parts = []
    for segment in path.split("/"):
        if not segment or segment.startswith("{"):
            continue
        cleaned = re.sub(r"[^a-zA-Z0-9]", "", segment)
        if cleaned:
            parts.append(cleaned[0].upper() + cleaned[1:])
    return f"{method.lower()}{''.join(parts) or 'Resource'}"


def _extract_base_url(doc: dict) -> str:
    servers = doc.get("servers") or []
    if not servers or not servers[0].get("url"):
        return DEFAULT_BASE_URL

    url = servers[0]["url"]
    for name, variable in (servers[0].get("variables") or {}).items():
        if "default" in variable:
            url = url.replace(f"{{{name}}}", str(variable["default"]))
    return url


def _deref(obj: dict, doc: dict) -> dict:
    """Follow ``$ref`` on non-schema components (parameters, bodies, responses)."""
    seen = set()
    while isinstance(obj, dict) and "$ref" in obj:
        pointer = obj["$ref"]
        if pointer in seen:
            break
        seen.add(pointer)
        obj = resolve_pointer(pointer, doc)
    return obj if isinstance(obj, dict) else {}


def _extract_endpoints(doc: dict) -> list[EndpointDescriptor]:
    endpoints = []
    seen_ids: dict[str, int] = {}
    global_security = doc.get("security")

    for path, path_item in (doc.get("paths") or {}).items():
        path_item = _deref(path_item or {}, doc)
        shared_params = path_item.get("parameters") or []

        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId") or generate_operation_id(method, path)
            if operation_id in seen_ids:
                seen_ids[operation_id] += 1
                unique_id = f"{operation_id}{seen_ids[operation_id]}"
                logger.warning(
                    "Duplicate operation id '%s' on %s %s, using '%s'",
                    operation_id, method.upper(), path, unique_id,
                )
                operation_id = unique_id
            seen_ids.setdefault(operation_id, 1)

            security = operation.get("security", global_security)
            endpoints.append(
                EndpointDescriptor(
                    path=path,
                    method=method.upper(),
                    operation_id=operation_id,
                    summary=operation.get("summary"),
                    description=operation.get("description"),
                    tags=operation.get("tags") or [],
                    deprecated=bool(operation.get("deprecated", False)),
                    parameters=_parse_parameters(shared_params, operation.get("parameters") or [], doc),
                    request_body=_parse_request_body(operation.get("requestBody"), doc),
                    responses=_parse_responses(operation.get("responses") or {}, doc),
                    security=_security_names(security or []),
                )
            )

    return endpoints


def _parse_parameters(shared: list, own: list, doc: dict) -> list[ParameterDescriptor]:
    merged: dict[tuple[str, str], dict] = {}
    for raw in [*shared, *own]:
        p = _deref(raw, doc)
        if not p.get("name"):
            continue
        merged[(p["name"], p.get("in", "query"))] = p

    result = []
    for (name, location), p in merged.items():
        if "schema" in p:
            schema = resolve(p["schema"], doc)
        else:
            content_type = _preferred_content_type(p.get("content") or {})
            media = (p.get("content") or {}).get(content_type) or {}
            schema = resolve(media.get("schema") or {"type": "string"}, doc)

        result.append(
            ParameterDescriptor(
                name=name,
                location=location,
                required=p.get("required", location == "path"),
                description=p.get("description"),
                schema=schema,
                param_type=schema_type_label(schema),
            )
        )
    return result


def _preferred_content_type(content: dict) -> str | None:
    """First JSON media type regardless of order, else the first declared."""
    content_types = list(content.keys())
    for content_type in content_types:
        if "json" in content_type.lower():
            return content_type
    return content_types[0] if content_types else None


def _media_schema(content: dict, content_type: str, doc: dict) -> tuple[SchemaNode | None, str | None]:
    media = content.get(content_type) or {}
    raw_schema = media.get("schema")
    if raw_schema is None:
        return None, None
    schema = resolve(raw_schema, doc)
    return schema, schema.name


def _parse_request_body(body: dict | None, doc: dict) -> RequestBodyDescriptor | None:
    if not body:
        return None
    body = _deref(body, doc)
    content = body.get("content") or {}
    content_type = _preferred_content_type(content)
    if content_type is None:
        return None

    schema, hint = _media_schema(content, content_type, doc)
    return RequestBodyDescriptor(
        content_type=content_type,
        required=body.get("required", False),
        description=body.get("description"),
        schema=schema,
        schema_name=hint,
    )


def _parse_responses(responses: dict, doc: dict) -> list[ResponseDescriptor]:
    result = []
    for status_code, raw in responses.items():
        response = _deref(raw or {}, doc)
        content = response.get("content") or {}
        content_type = _preferred_content_type(content)
        schema, hint = (None, None)
        if content_type is not None:
            schema, hint = _media_schema(content, content_type, doc)

        result.append(
            ResponseDescriptor(
                status_code=str(status_code),
                description=response.get("description", ""),
                content_type=content_type,
                schema=schema,
                schema_name=hint,
            )
        )
    return result


def _security_names(requirements: list[dict]) -> list[str]:
    names = []
    for requirement in requirements:
        for name in requirement or {}:
            if name not in names:
                names.append(name)
    return names


def _extract_auth_schemes(doc: dict) -> list[AuthSchemeDescriptor]:
    schemes = []
    raw_schemes = (doc.get("components") or {}).get("securitySchemes") or {}

    for name, raw in raw_schemes.items():
        scheme = _deref(raw or {}, doc)
        kind = scheme.get("type")
        if kind == "apiKey":
            schemes.append(AuthSchemeDescriptor(
                name=name, kind="apiKey", location=scheme.get("in"), parameter_name=scheme.get("name"),
            ))
        elif kind == "http":
            schemes.append(AuthSchemeDescriptor(
                name=name, kind="http", scheme=scheme.get("scheme"), bearer_format=scheme.get("bearerFormat"),
            ))
        elif kind in ("oauth2", "openIdConnect"):
            # Flow details are not modelled, only the kind.
            schemes.append(AuthSchemeDescriptor(name=name, kind="oauth2"))
        else:
            logger.warning("Skipping security scheme '%s' of unsupported type '%s'", name, kind)
    return schemes


def _extract_schemas(doc: dict) -> dict[str, SchemaNode]:
    raw_schemas = (doc.get("components") or {}).get("schemas") or {}
    schemas = {}
    for name in raw_schemas:
        pointer = SCHEMA_PREFIX + name.replace("~", "~0").replace("/", "~1")
        schemas[name] = resolve({"$ref": pointer}, doc)
    return schemas
