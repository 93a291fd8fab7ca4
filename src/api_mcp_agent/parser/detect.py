"""Load raw JSON/YAML bytes and check the declared OpenAPI version."""

import json

import yaml

from api_mcp_agent.errors import UnsupportedFormat, UnsupportedVersion


def load_document(raw: bytes | str) -> dict:
    """Parse ``raw`` as JSON first, then YAML.

    Raises UnsupportedFormat unless one of them yields a mapping.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise UnsupportedFormat(f"Document is not UTF-8 text: {e}") from e
    else:
        text = raw

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError) as json_error:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as yaml_error:
            raise UnsupportedFormat(
                f"Failed to parse document as JSON ({json_error}) or YAML ({yaml_error})"
            ) from yaml_error

    if not isinstance(data, dict):
        raise UnsupportedFormat(
            f"Document root must be a mapping, got {type(data).__name__}"
        )
    return data


def detect_version(document: dict) -> str:
    """Return the ``openapi`` version string; only 3.x is accepted."""
    version = document.get("openapi")
    if version is None:
        if "swagger" in document:
            raise UnsupportedVersion(
                f"Unsupported OpenAPI version: swagger {document['swagger']}. "
                "Only OpenAPI 3.x is supported."
            )
        raise UnsupportedVersion("Missing 'openapi' version field. Only OpenAPI 3.x is supported.")

    version = str(version)
    if version.split(".")[0] != "3":
        raise UnsupportedVersion(
            f"Unsupported OpenAPI version: {version}. Only OpenAPI 3.x is supported."
        )
    return version
