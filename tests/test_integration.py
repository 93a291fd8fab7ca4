"""End-to-end integration tests with mocked LLM calls."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from api_mcp_agent.cli import main
from api_mcp_agent.config import get_settings

FIXTURES = Path(__file__).parent / "fixtures"

MOCK_TYPES = """```typescript
export interface Item {
  id?: number;
  name?: string;
}
```"""

MOCK_TOOL_DEFINITIONS = """```json
{"tools": [{"name": "getItems"}, {"name": "postItems"}]}
```"""

MOCK_GET_ITEMS = """Here is the tool:
```typescript
export const getItemsTool = { name: 'getItems' };
export async function getItems(args: any) { return { content: [] }; }
```"""

MOCK_MAIN_SERVER = """```typescript
import { Server } from '@modelcontextprotocol/sdk/server/index.js';
```"""

MOCK_MANIFEST = """```json
{"name": "mcp-items-api", "version": "1.0.0"}
```"""

MOCK_README = """```markdown
# Items API MCP Server

## Usage

```bash
npm start
```
```"""


class FakeProviderError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def _response(content: str):
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = content
    resp.choices[0].finish_reason = "stop"
    resp.usage = None
    return resp


def _fake_completion(model, messages, **kwargs):
    prompt = messages[-1]["content"]
    if prompt.startswith("Generate TypeScript type definitions"):
        return _response(MOCK_TYPES)
    if prompt.startswith("Generate MCP tool definitions"):
        return _response(MOCK_TOOL_DEFINITIONS)
    if prompt.startswith("Generate a complete MCP tool implementation"):
        if "Operation ID: postItems" in prompt:
            raise FakeProviderError("Bad Request: prompt rejected", status_code=400)
        return _response(MOCK_GET_ITEMS)
    if prompt.startswith("Generate the main MCP server"):
        return _response(MOCK_MAIN_SERVER)
    if prompt.startswith("Generate a package.json"):
        return _response(MOCK_MANIFEST)
    if prompt.startswith("Generate a README.md"):
        return _response(MOCK_README)
    raise AssertionError(f"Unexpected prompt: {prompt[:60]}")


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("MCP_AGENT_API_KEY", "test-key")
    monkeypatch.setenv("MCP_AGENT_VALIDATE_MODEL", "false")
    monkeypatch.setenv("MCP_AGENT_INTER_CALL_DELAY", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestFullPipeline:
    @patch("api_mcp_agent.llm.completion", side_effect=_fake_completion)
    def test_staged_generation(self, mock_completion, tmp_path):
        output_dir = tmp_path / "items-server"

        runner = CliRunner()
        result = runner.invoke(main, [
            "generate", str(FIXTURES / "items.yaml"),
            "-o", str(output_dir),
            "--strategy", "staged",
            "--zip",
        ])

        assert result.exit_code == 0, result.output
        assert mock_completion.call_count == 7
        assert "Tool implementations: 1/2 succeeded" in result.output
        assert "Failed: postItems" in result.output

        assert "export interface Item" in (output_dir / "src" / "types.ts").read_text(encoding="utf-8")
        get_items = (output_dir / "src" / "tools" / "getItems.ts").read_text(encoding="utf-8")
        assert get_items.startswith("export const getItemsTool")
        post_items = (output_dir / "src" / "tools" / "postItems.ts").read_text(encoding="utf-8")
        assert post_items.startswith("// Error generating implementation for postItems:")

        manifest = json.loads((output_dir / "package.json").read_text(encoding="utf-8"))
        assert manifest["name"] == "mcp-items-api"
        readme = (output_dir / "README.md").read_text(encoding="utf-8")
        assert readme.startswith("# Items API MCP Server")
        assert "npm start" in readme
        assert "API_BASE_URL=https://api.example.com" in (output_dir / ".env.example").read_text(encoding="utf-8")
        assert (tmp_path / "items-server.zip").exists()

    @patch("api_mcp_agent.llm.completion")
    def test_monolithic_generation(self, mock_completion, tmp_path):
        mock_completion.return_value = _response(
            "## Types\n" + MOCK_TYPES
            + "\n\n## Tool: getItems\n" + MOCK_GET_ITEMS
            + "\n\n## Main Server\n" + MOCK_MAIN_SERVER
        )
        output_dir = tmp_path / "out"

        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "items.yaml"), "-o", str(output_dir), "--strategy", "monolithic",
        ])

        assert result.exit_code == 0, result.output
        mock_completion.assert_called_once()
        assert "1/2 succeeded" in result.output
        post_items = (output_dir / "src" / "tools" / "postItems.ts").read_text(encoding="utf-8")
        assert post_items.startswith("// Error generating implementation for postItems: missing from generated response")

    def test_missing_api_key(self, monkeypatch, tmp_path):
        monkeypatch.delenv("MCP_AGENT_API_KEY")
        get_settings.cache_clear()

        result = CliRunner().invoke(main, [
            "generate", str(FIXTURES / "items.yaml"), "-o", str(tmp_path / "out"),
        ])

        assert result.exit_code == 3
