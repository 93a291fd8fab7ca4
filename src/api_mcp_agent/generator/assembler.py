"""Package assembler: lays generated text out as a TypeScript MCP server package."""

import json
import logging
import zipfile
from pathlib import Path

from api_mcp_agent.generator.orchestrator import GeneratedCode
from api_mcp_agent.generator.prompts import package_name
from api_mcp_agent.transform.models import CompactEndpoint, CompactModel

logger = logging.getLogger(__name__)


class PackageAssembler:
    """Fills templates around the generated code; any missing piece gets a default."""

    def assemble(self, api: CompactModel, code: GeneratedCode) -> dict[str, str]:
        """Return ``{relative_path: content}`` for the whole package."""
        files: dict[str, str] = {}

        files["package.json"] = self._render_manifest(api, code.manifest)
        files["tsconfig.json"] = self._render_tsconfig()
        files[".env.example"] = self._render_env_example(api)
        files[".gitignore"] = self._render_gitignore()
        files["src/config.ts"] = self._render_config(api)

        if code.types:
            files["src/types.ts"] = code.types
        if code.tool_definitions:
            files["tools.json"] = code.tool_definitions

        files["src/index.ts"] = code.main_server or self._render_main_server(api)

        for endpoint in api.endpoints:
            implementation = code.tool_implementations.get(endpoint.operation_id)
            files[f"src/tools/{endpoint.operation_id}.ts"] = (
                implementation or self._render_default_tool(api, endpoint)
            )

        files["README.md"] = code.readme or self._render_readme(api)
        return files

    # -- templates --------------------------------------------------------

    def _render_manifest(self, api: CompactModel, generated: str | None) -> str:
        if generated:
            try:
                json.loads(generated)
                return generated
            except json.JSONDecodeError:
                logger.warning("Generated package.json is not valid JSON, using the default manifest")

        manifest = {
            "name": package_name(api),
            "version": "1.0.0",
            "description": f"MCP server for {api.title}",
            "type": "module",
            "main": "dist/index.js",
            "scripts": {
                "build": "tsc",
                "start": "node dist/index.js",
                "dev": "ts-node src/index.ts",
            },
            "dependencies": {
                "@modelcontextprotocol/sdk": "^1.0.0",
                "dotenv": "^16.4.5",
            },
            "devDependencies": {
                "@types/node": "^20.0.0",
                "typescript": "^5.9.3",
                "ts-node": "^10.9.2",
            },
            "keywords": ["mcp", "mcp-server", "api"],
        }
        return json.dumps(manifest, indent=2) + "\n"

    def _render_tsconfig(self) -> str:
        tsconfig = {
            "compilerOptions": {
                "target": "ES2022",
                "module": "ESNext",
                "lib": ["ES2022"],
                "outDir": "./dist",
                "rootDir": "./src",
                "strict": True,
                "esModuleInterop": True,
                "skipLibCheck": True,
                "resolveJsonModule": True,
                "moduleResolution": "node",
                "declaration": True,
                "sourceMap": True,
            },
            "include": ["src/**/*"],
            "exclude": ["node_modules", "dist"],
        }
        return json.dumps(tsconfig, indent=2) + "\n"

    def _auth_env(self, api: CompactModel) -> list[tuple[str, str]]:
        env = []
        for auth in api.auth_schemes:
            if auth.type == "apiKey" and ("API_KEY", "your_api_key_here") not in env:
                env.append(("API_KEY", "your_api_key_here"))
            elif auth.type == "http" and (auth.scheme or "").lower() == "bearer":
                if ("BEARER_TOKEN", "your_bearer_token_here") not in env:
                    env.append(("BEARER_TOKEN", "your_bearer_token_here"))
        return env

    def _render_env_example(self, api: CompactModel) -> str:
        lines = ["# API Configuration", f"API_BASE_URL={api.base_url}"]
        lines.extend(f"{name}={value}" for name, value in self._auth_env(api))
        return "\n".join(lines) + "\n"

    def _render_gitignore(self) -> str:
        return "node_modules/\ndist/\n.env\n*.log\n.DS_Store\n"

    def _render_config(self, api: CompactModel) -> str:
        lines = [
            "import dotenv from 'dotenv';",
            "",
            "dotenv.config();",
            "",
            f"export const API_BASE_URL = process.env.API_BASE_URL || '{api.base_url}';",
        ]
        for name, _ in self._auth_env(api):
            lines.append(f"export const {name} = process.env.{name} || '';")
        return "\n".join(lines) + "\n"

    def _render_main_server(self, api: CompactModel) -> str:
        imports = "\n".join(
            f"import {{ {ep.operation_id}, {ep.operation_id}Tool }} from './tools/{ep.operation_id}.js';"
            for ep in api.endpoints
        )
        tool_list = "\n".join(f"      {ep.operation_id}Tool," for ep in api.endpoints)
        cases = "\n".join(
            f"      case '{ep.operation_id}':\n        return await {ep.operation_id}(args);"
            for ep in api.endpoints
        )
        return f"""import {{ Server }} from '@modelcontextprotocol/sdk/server/index.js';
import {{ StdioServerTransport }} from '@modelcontextprotocol/sdk/server/stdio.js';
import {{ CallToolRequestSchema, ListToolsRequestSchema }} from '@modelcontextprotocol/sdk/types.js';
{imports}

async function main() {{
  const server = new Server(
    {{ name: '{package_name(api)}', version: '{api.version}' }},
    {{ capabilities: {{ tools: {{}} }} }}
  );

  server.setRequestHandler(ListToolsRequestSchema, async () => ({{
    tools: [
{tool_list}
    ],
  }}));

  server.setRequestHandler(CallToolRequestSchema, async (request) => {{
    const {{ name, arguments: args }} = request.params;
    switch (name) {{
{cases}
      default:
        throw new Error(`Unknown tool: ${{name}}`);
    }}
  }});

  const transport = new StdioServerTransport();
  await server.connect(transport);
  console.error('MCP server running on stdio');
}}

main().catch(console.error);
"""

    def _render_default_tool(self, api: CompactModel, endpoint: CompactEndpoint) -> str:
        properties = {
            p.name: {"type": p.type, "description": p.description or ""}
            for p in endpoint.parameters
        }
        if endpoint.request_body:
            properties["body"] = {"type": "object", "description": endpoint.request_body.description or ""}
        required = [p.name for p in endpoint.parameters if p.required]
        if endpoint.request_body and endpoint.request_body.required:
            required.append("body")

        definition = {
            "name": endpoint.operation_id,
            "description": endpoint.summary or endpoint.description or "",
            "inputSchema": {"type": "object", "properties": properties, "required": required},
        }

        query_lines = "\n".join(
            f"  if (args.{p.name} !== undefined && args.{p.name} !== null) "
            f"query.append('{p.name}', String(args.{p.name}));"
            for p in endpoint.parameters if p.location == "query"
        )

        headers = ["    'Content-Type': 'application/json',"]
        for auth in api.auth_schemes:
            if auth.type == "apiKey" and auth.location == "header":
                headers.append(f"    '{auth.api_key_name or 'api_key'}': config.API_KEY,")
            elif auth.type == "http" and (auth.scheme or "").lower() == "bearer":
                headers.append("    'Authorization': `Bearer ${config.BEARER_TOKEN}`,")
        header_block = "\n".join(headers)
        body_line = "    body: JSON.stringify(args.body),\n" if endpoint.request_body else ""

        return f"""import * as config from '../config.js';

export const {endpoint.operation_id}Tool = {json.dumps(definition, indent=2)};

export async function {endpoint.operation_id}(args: any) {{
  const baseUrl = config.API_BASE_URL.replace(/\\/+$/, '');
  const path = '{endpoint.path}'.replace(/\\{{([^}}]+)\\}}/g, (_, name) => encodeURIComponent(String(args[name] ?? '')));
  const query = new URLSearchParams();
{query_lines}
  const queryString = query.toString();
  const url = `${{baseUrl}}${{path}}${{queryString ? `?${{queryString}}` : ''}}`;

  const headers: Record<string, string> = {{
{header_block}
  }};

  const response = await fetch(url, {{
    method: '{endpoint.method}',
    headers,
{body_line}  }});

  if (!response.ok) {{
    const errorText = await response.text().catch(() => response.statusText);
    throw new Error(`API error: ${{response.status}} ${{response.statusText}}. ${{errorText}}`);
  }}

  const text = await response.text();
  return {{ content: [{{ type: 'text', text }}] }};
}}
"""

    def _render_readme(self, api: CompactModel) -> str:
        tools = "\n".join(
            f"- **{ep.operation_id}**: {ep.summary or ep.description or ''}" for ep in api.endpoints
        )
        return f"""# MCP Server for {api.title}

{api.description or ''}

## Installation

```bash
npm install
```

## Configuration

Copy `.env.example` to `.env` and configure your API credentials:

```bash
cp .env.example .env
```

## Usage

```bash
npm run build
npm start
```

## Available Tools

{tools}
"""


def write_package(files: dict[str, str], output_dir: Path) -> Path:
    """Write the file tree under ``output_dir`` and return it."""
    output_dir.mkdir(parents=True, exist_ok=True)
    root = output_dir.resolve()
    for relative, content in files.items():
        file_path = (output_dir / relative).resolve()
        if root not in file_path.parents:
            raise ValueError(f"Refusing to write outside the package directory: {relative}")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
    return output_dir


def create_zip(package_dir: Path, zip_path: Path | None = None) -> Path:
    """Archive ``package_dir`` next to itself as ``<dir>.zip``."""
    zip_path = zip_path or package_dir.parent / f"{package_dir.name}.zip"
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for file_path in sorted(package_dir.rglob("*")):
            if file_path.is_file():
                archive.write(file_path, file_path.relative_to(package_dir).as_posix())
    logger.info("ZIP created: %s (%d bytes)", zip_path, zip_path.stat().st_size)
    return zip_path
