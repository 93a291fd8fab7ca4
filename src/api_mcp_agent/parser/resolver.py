"""Resolve ``$ref`` pointers inside an OpenAPI document into SchemaNode trees.

Only intra-document pointers (``#/components/schemas/Pet``) are supported.
Cycles are broken with a terminal ``unresolved-cycle`` node: ``visiting``
holds the pointers currently being expanded on this branch, and a pointer
leaves the set once its subtree is done, so a schema shared by two sibling
branches (a diamond) is expanded in full on both.

YAML anchors can also make a mapping contain itself without any $ref, so the
inline mappings on the current branch are tracked by identity as well.
"""

from typing import Any

from api_mcp_agent.errors import ReferenceNotFound, UnsupportedReference
from api_mcp_agent.parser.base import SchemaNode

SCHEMA_PREFIX = "#/components/schemas/"

# Keywords mapped onto SchemaNode fields; everything else lands in constraints.
_STRUCTURAL_KEYS = {
    "$ref", "type", "format", "description", "properties", "required", "items",
    "additionalProperties", "allOf", "oneOf", "anyOf", "enum", "default",
}


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def resolve_pointer(pointer: str, document: dict) -> Any:
    """Return the raw fragment a ``#/...`` pointer addresses."""
    if not isinstance(pointer, str) or not pointer.startswith("#"):
        raise UnsupportedReference(str(pointer))
    if pointer in ("#", "#/"):
        return document
    if not pointer.startswith("#/"):
        raise UnsupportedReference(pointer)

    current: Any = document
    for part in pointer[2:].split("/"):
        key = _unescape(part)
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            raise ReferenceNotFound(pointer)
    return current


def schema_name_for(pointer: str) -> str | None:
    """``#/components/schemas/Pet`` -> ``Pet``; None for any other pointer."""
    if pointer.startswith(SCHEMA_PREFIX):
        name = pointer[len(SCHEMA_PREFIX):]
        if "/" not in name:
            return _unescape(name)
    return None


def resolve(node: Any, document: dict, visiting: set[str] | None = None) -> SchemaNode:
    """Resolve ``node`` (a ``$ref`` or an inline schema) into a fresh SchemaNode."""
    return _resolve(node, document, set() if visiting is None else visiting, {}, None)


def _resolve(
    node: Any,
    document: dict,
    visiting: set[str],
    expanding: dict[int, str | None],
    via: str | None,
) -> SchemaNode:
    # expanding: id of each inline mapping on this branch -> pointer it was reached through
    if isinstance(node, dict) and isinstance(node.get("$ref"), str):
        pointer = node["$ref"]
        if pointer in visiting:
            return SchemaNode(kind="unresolved-cycle", ref=pointer, name=schema_name_for(pointer))

        target = resolve_pointer(pointer, document)
        visiting.add(pointer)
        try:
            resolved = _resolve(target, document, visiting, expanding, pointer)
        finally:
            visiting.discard(pointer)

        name = schema_name_for(pointer)
        if name and resolved.name is None and not resolved.is_cycle:
            resolved.name = name
        return resolved

    if not isinstance(node, dict):
        # Boolean schemas and other non-mapping fragments carry no structure.
        return SchemaNode(kind="primitive")

    key = id(node)
    if key in expanding:
        pointer = expanding[key]
        return SchemaNode(
            kind="unresolved-cycle",
            ref=pointer,
            name=schema_name_for(pointer) if pointer else None,
        )

    expanding[key] = via
    try:
        return _resolve_inline(node, document, visiting, expanding)
    finally:
        del expanding[key]


def _resolve_inline(
    schema: dict, document: dict, visiting: set[str], expanding: dict[int, str | None]
) -> SchemaNode:
    def sub(child: Any) -> SchemaNode:
        return _resolve(child, document, visiting, expanding, None)

    fields: dict[str, Any] = {}

    for key in ("type", "format", "description"):
        value = schema.get(key)
        if isinstance(value, list):
            # OpenAPI 3.1 type arrays: the first non-null entry is the tag.
            value = next((v for v in value if v != "null"), None)
        if value is not None:
            fields[key] = value

    if "enum" in schema:
        fields["enum"] = list(schema["enum"])
    if "default" in schema:
        fields["default"] = schema["default"]
    if isinstance(schema.get("required"), list):
        fields["required"] = list(schema["required"])

    properties = schema.get("properties")
    if isinstance(properties, dict):
        fields["properties"] = {name: sub(prop) for name, prop in properties.items()}

    if "items" in schema:
        fields["items"] = sub(schema["items"])

    extra = schema.get("additionalProperties")
    if isinstance(extra, dict):
        fields["additional_properties"] = sub(extra)
    elif isinstance(extra, bool):
        fields["additional_properties"] = extra

    for keyword, field in (("allOf", "all_of"), ("oneOf", "one_of"), ("anyOf", "any_of")):
        members = schema.get(keyword)
        if isinstance(members, list):
            fields[field] = [sub(member) for member in members]

    constraints = {k: v for k, v in schema.items() if k not in _STRUCTURAL_KEYS}
    if constraints:
        fields["constraints"] = constraints

    return SchemaNode(kind=_kind_of(fields), **fields)


def _kind_of(fields: dict[str, Any]) -> str:
    if fields.get("all_of") or fields.get("one_of") or fields.get("any_of"):
        return "composite"
    if fields.get("type") == "array" or "items" in fields:
        return "array"
    if fields.get("type") == "object" or "properties" in fields or "additional_properties" in fields:
        return "object"
    return "primitive"
