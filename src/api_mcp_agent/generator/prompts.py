"""Prompt builders for each generation stage.

Every builder takes only the slice of the CompactModel its stage needs, so
staged prompts stay bounded no matter how large the document is.
"""

import json
import re

from api_mcp_agent.transform.models import CompactEndpoint, CompactModel, CompactSchema

SYSTEM_PROMPT = (
    "You are an expert TypeScript developer specializing in MCP (Model Context Protocol) servers. "
    "Answer with code in fenced Markdown blocks tagged with their language."
)

# Headings the monolithic prompt asks for; the orchestrator maps them back to fields.
SECTION_TYPES = "Types"
SECTION_TOOL_DEFINITIONS = "Tool Definitions"
SECTION_TOOL_PREFIX = "Tool:"
SECTION_MAIN_SERVER = "Main Server"
SECTION_MANIFEST = "package.json"
SECTION_README = "README.md"


def package_name(api: CompactModel) -> str:
    return "mcp-" + re.sub(r"[^a-z0-9]", "-", api.title.lower())


def _auth_lines(api: CompactModel) -> str:
    if not api.auth_schemes:
        return "- None"
    lines = []
    for auth in api.auth_schemes:
        location = f" ({auth.location})" if auth.location else ""
        key_name = f" [{auth.api_key_name}]" if auth.api_key_name else ""
        scheme = f" scheme={auth.scheme}" if auth.scheme else ""
        lines.append(f"- {auth.name}: {auth.type}{location}{key_name}{scheme}")
    return "\n".join(lines)


def _auth_names(api: CompactModel) -> str:
    return ", ".join(f"{a.name} ({a.type})" for a in api.auth_schemes) or "None"


def _api_header(api: CompactModel) -> str:
    lines = [
        "API Information:",
        f"- Title: {api.title}",
        f"- Version: {api.version}",
        f"- Base URL: {api.base_url}",
    ]
    if api.description:
        lines.append(f"- Description: {api.description}")
    return "\n".join(lines)


def describe_endpoint(endpoint: CompactEndpoint) -> str:
    parts = [f"{endpoint.method} {endpoint.path}", f"Operation ID: {endpoint.operation_id}"]
    if endpoint.summary:
        parts.append(f"Summary: {endpoint.summary}")
    if endpoint.description:
        parts.append(f"Description: {endpoint.description}")

    if endpoint.parameters:
        parts.append("Parameters:")
        for p in endpoint.parameters:
            required = " [required]" if p.required else ""
            desc = f" - {p.description}" if p.description else ""
            extras = []
            if p.enum is not None:
                extras.append(f"enum={json.dumps(p.enum, default=str)}")
            if "default" in p.model_fields_set:
                extras.append(f"default={json.dumps(p.default, default=str)}")
            extra = f" {' '.join(extras)}" if extras else ""
            parts.append(f"  - {p.name} ({p.location}): {p.type}{required}{extra}{desc}")

    if endpoint.request_body:
        body = endpoint.request_body
        required = " [required]" if body.required else ""
        name = f" ({body.schema_name})" if body.schema_name else ""
        parts.append(f"Request Body: {body.content_type}{required}{name}")

    if endpoint.responses:
        parts.append("Responses:")
        for r in endpoint.responses:
            name = f" ({r.schema_name})" if r.schema_name else ""
            parts.append(f"  - {r.status_code}: {r.description}{name}")

    if endpoint.security:
        parts.append(f"Security: {', '.join(endpoint.security)}")

    return "\n".join(parts)


def describe_schema(name: str, schema: CompactSchema) -> str:
    """Schema heading plus its full JSON, so enums, defaults and nesting survive."""
    body = schema.model_dump_json(indent=2, exclude_unset=True)
    return f"Schema: {name}\n```json\n{body}\n```"


def _endpoint_json(endpoint: CompactEndpoint) -> str:
    return endpoint.model_dump_json(indent=2, exclude_unset=True, by_alias=True)


def tool_definitions_prompt(api: CompactModel) -> str:
    endpoints = "\n\n".join(describe_endpoint(ep) for ep in api.endpoints)
    return f"""Generate MCP tool definitions from the following API specification.

{_api_header(api)}

Authentication Schemes:
{_auth_lines(api)}

API Endpoints:
{endpoints}

Requirements:
1. Convert each API endpoint into an MCP tool definition
2. name: the operation ID, unchanged
3. description: from the summary/description
4. inputSchema: JSON schema with the endpoint parameters and a "body" property for the request body

Return a single ```json block of the form {{"tools": [...]}} covering all {len(api.endpoints)} endpoints."""


def tool_implementation_prompt(endpoint: CompactEndpoint, api: CompactModel) -> str:
    auth = ", ".join(a.name for a in api.auth_schemes) or "none"
    return f"""Generate a complete MCP tool implementation for the following API endpoint.

{describe_endpoint(endpoint)}
Base URL: {api.base_url}
Authentication: {auth}

Full endpoint definition:
```json
{_endpoint_json(endpoint)}
```

Requirements:
1. Export `{endpoint.operation_id}Tool` (the tool definition) and an async function `{endpoint.operation_id}(args)`
2. Use fetch for the HTTP request and read API_BASE_URL and credentials from '../config.js'
3. Handle authentication ({auth})
4. Proper error handling with try/catch; throw on non-2xx responses
5. Return data in an MCP-compatible format

Return ONLY the tool module in a single ```typescript block."""


def types_prompt(api: CompactModel) -> str:
    schemas = "\n\n".join(describe_schema(name, s) for name, s in api.schemas.items())
    return f"""Generate TypeScript type definitions from the following JSON schemas:

{schemas or "(no named schemas)"}

Requirements:
1. Convert each schema to an exported TypeScript interface or type
2. Handle arrays, nested objects, composite schemas and optional properties
3. Properties not in the required list are optional
4. Use union literal types for enums and JSDoc comments for descriptions
5. A "circular_ref" entry refers back to the named schema; use that type name

Return the complete file in a single ```typescript block."""


def main_server_prompt(api: CompactModel, tool_names: list[str]) -> str:
    tools = "\n".join(f"- {name}" for name in tool_names)
    return f"""Generate the main MCP server entry point file (src/index.ts).

{_api_header(api)}
- Authentication: {_auth_names(api)}

MCP Tools ({len(tool_names)}), each in src/tools/<name>.ts exporting `<name>Tool` and `<name>(args)`:
{tools}

Requirements:
1. Import every tool module from './tools/<name>.js'
2. Set up the server with @modelcontextprotocol/sdk and a stdio transport
3. Register all {len(tool_names)} tools for ListTools and dispatch CallTool by name
4. Proper error handling for unknown tools and failed calls

Return the complete file in a single ```typescript block."""


def manifest_prompt(api: CompactModel) -> str:
    return f"""Generate a package.json file for an MCP server that connects to this API:

API: {api.title}
Base URL: {api.base_url}

Requirements:
1. Name: {package_name(api)}
2. Version: 1.0.0, type: module, main: dist/index.js
3. Dependencies: @modelcontextprotocol/sdk, dotenv
4. devDependencies: typescript, @types/node, ts-node
5. Scripts: build (tsc), start (node dist/index.js), dev (ts-node src/index.ts)

Return only the JSON in a single ```json block."""


def readme_prompt(api: CompactModel, tool_names: list[str]) -> str:
    description = f"Description: {api.description}\n" if api.description else ""
    return f"""Generate a README.md for an MCP server with the following information:

API: {api.title}
Version: {api.version}
Base URL: {api.base_url}
{description}
MCP Tools ({len(tool_names)}): {", ".join(tool_names)}
Authentication: {_auth_names(api)}

Sections: title and description, installation, configuration (environment
variables API_BASE_URL, API_KEY, BEARER_TOKEN as applicable), usage, available
tools, authentication setup, troubleshooting.

Return the whole document in a single ```markdown block."""


def complete_server_prompt(api: CompactModel) -> str:
    endpoints = "\n\n".join(describe_endpoint(ep) for ep in api.endpoints)
    schemas = "\n\n".join(describe_schema(name, s) for name, s in api.schemas.items())
    tool_sections = "\n".join(f"## {SECTION_TOOL_PREFIX} {ep.operation_id}" for ep in api.endpoints)
    return f"""Generate a complete, production-ready MCP server for the following API.

{_api_header(api)}

Authentication Schemes:
{_auth_lines(api)}

Endpoints ({len(api.endpoints)}):
{endpoints}

Schemas:
{schemas or "(no named schemas)"}

Organize the answer into these Markdown sections, each holding exactly one fenced code block:
## {SECTION_TYPES}
## {SECTION_TOOL_DEFINITIONS}
{tool_sections}
## {SECTION_MAIN_SERVER}
## {SECTION_MANIFEST}
## {SECTION_README}

Tool modules export `<operationId>Tool` and `<operationId>(args)` and read
API_BASE_URL and credentials from '../config.js'."""
