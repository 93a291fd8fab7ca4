from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from api_mcp_agent.errors import GenerationFailed, PipelineFailed
from api_mcp_agent.generator import prompts
from api_mcp_agent.generator.orchestrator import (
    STAGE_OPTIONS,
    STAGE_TOOL_IMPLEMENTATION,
    STAGE_TYPES,
    CodeGenerator,
    GeneratedCode,
    placeholder,
)
from api_mcp_agent.llm import GenerationResult
from api_mcp_agent.parser.openapi import parse_openapi_file
from api_mcp_agent.transform.normalizer import normalize

FIXTURES = Path(__file__).parent / "fixtures"

MONOLITHIC_RESPONSE = """Here is your server.

## Types
```typescript
export interface Item { id?: number; name?: string; }
```

## Tool Definitions
```json
{"tools": []}
```

## Tool: getItems
```ts
export async function getItems(args: any) {}
```

## Tool: postItems
```typescript
export async function postItems(args: any) {}
```

## Main Server
```typescript
const server = 1;
```

## package.json
```json
{"name": "mcp-items-api"}
```

## README.md
```markdown
# Items API

## Install
npm install
```
"""


def _ok(text: str, filtered: bool = False) -> GenerationResult:
    return GenerationResult(success=True, text=text, model="test-model", filtered=filtered)


def _failed(message: str = "boom", attempts: int = 3) -> GenerationFailed:
    result = GenerationResult(success=False, error=message, model="test-model", attempts=attempts)
    return GenerationFailed(message, result=result, retryable=True)


def _ts(code: str) -> GenerationResult:
    return _ok(f"```typescript\n{code}\n```")


@pytest.fixture
def items():
    return normalize(parse_openapi_file(FIXTURES / "items.yaml"))


@pytest.fixture
def client():
    return MagicMock()


def _generator(client, **kwargs) -> CodeGenerator:
    return CodeGenerator(client=client, inter_call_delay=0, **kwargs)


class TestStaged:
    def test_all_stages_in_order(self, items, client):
        client.generate.side_effect = [
            _ts("export interface Item {}"),
            _ok('```json\n{"tools": []}\n```'),
            _ts("// getItems"),
            _ts("// postItems"),
            _ts("// server"),
            _ok('```json\n{"name": "mcp-items-api"}\n```'),
            _ok("```markdown\n# Items API\n```"),
        ]

        code = _generator(client).generate_staged(items)

        assert code.strategy == "staged"
        assert code.types == "export interface Item {}"
        assert code.tool_definitions == '{"tools": []}'
        assert code.tool_implementations == {"getItems": "// getItems", "postItems": "// postItems"}
        assert code.main_server == "// server"
        assert code.manifest == '{"name": "mcp-items-api"}'
        assert code.readme == "# Items API"
        assert code.implementation_report == "2/2 succeeded"
        assert client.generate.call_count == 7

    def test_stage_options_and_system_prompt(self, items, client):
        client.generate.return_value = _ts("x")

        _generator(client).generate_staged(items)

        first = client.generate.call_args_list[0]
        assert first.args[1] == STAGE_OPTIONS[STAGE_TYPES]
        assert first.kwargs["system"] == prompts.SYSTEM_PROMPT
        implementation = client.generate.call_args_list[2]
        assert implementation.args[1] == STAGE_OPTIONS[STAGE_TOOL_IMPLEMENTATION]
        assert "getItems" in implementation.args[0]
        # Per-endpoint prompts carry only their own endpoint.
        assert "postItems" not in implementation.args[0]

    def test_failed_endpoint_becomes_placeholder(self, items, client):
        client.generate.side_effect = [
            _ts("types"),
            _ok("{}"),
            _ts("// getItems"),
            _failed("quota exceeded"),
            _ts("// server"),
            _ok("{}"),
            _ok("# readme"),
        ]

        code = _generator(client).generate_staged(items)

        assert code.implementation_report == "1/2 succeeded"
        assert code.failed_implementations == ["postItems"]
        assert code.tool_implementations["postItems"].startswith(
            "// Error generating implementation for postItems: missing from generated response"
        )
        assert not code.tool_implementations["getItems"].startswith("// Error")
        assert code.tool_implementations["getItems"] == "// getItems"
        assert code.tool_implementations["postItems"].startswith(
            "// Error generating implementation for postItems:"
        )
        assert "quota exceeded" in code.tool_implementations["postItems"]
        assert code.main_server == "// server"

        failed = [o for o in code.outcomes if not o.ok]
        assert len(failed) == 1
        assert failed[0].item == "postItems"
        assert failed[0].attempts == 3

    def test_types_failure_is_fatal(self, items, client):
        client.generate.side_effect = _failed()

        with pytest.raises(PipelineFailed) as exc_info:
            _generator(client).generate_staged(items)

        assert exc_info.value.stage == "types"
        assert isinstance(exc_info.value.cause, GenerationFailed)
        client.generate.assert_called_once()

    def test_main_server_failure_is_fatal(self, items, client):
        client.generate.side_effect = [
            _ts("types"), _ok("{}"), _ts("a"), _ts("b"), _failed(),
        ]

        with pytest.raises(PipelineFailed) as exc_info:
            _generator(client).generate_staged(items)
        assert exc_info.value.stage == "main_server"

    def test_non_fatal_stage_failures_leave_none(self, items, client):
        client.generate.side_effect = [
            _ts("types"), _failed(), _ts("a"), _ts("b"), _ts("server"), _failed(), _failed(),
        ]

        code = _generator(client).generate_staged(items)

        assert code.tool_definitions is None
        assert code.manifest is None
        assert code.readme is None
        assert code.implementation_report == "2/2 succeeded"

    def test_filtered_empty_types_is_fatal(self, items, client):
        client.generate.return_value = _ok("", filtered=True)

        with pytest.raises(PipelineFailed):
            _generator(client).generate_staged(items)

    def test_filtered_empty_endpoint_becomes_placeholder(self, items, client):
        client.generate.side_effect = [
            _ts("types"), _ok("{}"), _ok("", filtered=True), _ts("b"), _ts("server"), _ok("{}"), _ok("# r"),
        ]

        code = _generator(client).generate_staged(items)

        assert code.failed_implementations == ["getItems"]
        assert "content filter" in code.tool_implementations["getItems"]

    @patch("api_mcp_agent.generator.orchestrator.time.sleep")
    def test_delay_between_calls(self, mock_sleep, items, client):
        client.generate.return_value = _ts("x")

        CodeGenerator(client=client, inter_call_delay=0.5).generate_staged(items)

        assert mock_sleep.call_count == 6
        mock_sleep.assert_called_with(0.5)


class TestMonolithic:
    def test_sections_mapped_to_fields(self, items, client):
        client.generate.return_value = _ok(MONOLITHIC_RESPONSE)

        code = _generator(client).generate_monolithic(items)

        assert code.strategy == "monolithic"
        assert code.types.startswith("export interface Item")
        assert code.tool_definitions == '{"tools": []}'
        assert set(code.tool_implementations) == {"getItems", "postItems"}
        assert code.main_server == "const server = 1;"
        assert code.manifest == '{"name": "mcp-items-api"}'
        assert code.readme == "# Items API\n\n## Install\nnpm install"
        assert code.implementation_report == "2/2 succeeded"
        client.generate.assert_called_once()

    def test_missing_tool_section_reported(self, items, client):
        text = MONOLITHIC_RESPONSE.replace("## Tool: postItems", "## Notes")
        client.generate.return_value = _ok(text)

        code = _generator(client).generate_monolithic(items)

        assert code.implementation_report == "1/2 succeeded"
        assert code.failed_implementations == ["postItems"]
        assert code.tool_implementations["postItems"].startswith(
            "// Error generating implementation for postItems: missing from generated response"
        )
        assert not code.tool_implementations["getItems"].startswith("// Error")

    def test_unsectioned_output_becomes_main_server(self, items, client):
        client.generate.return_value = _ts("const everything = true;")

        code = _generator(client).generate_monolithic(items)

        assert code.main_server == "const everything = true;"
        assert code.types is None

    def test_failure_is_fatal(self, items, client):
        client.generate.side_effect = _failed()

        with pytest.raises(PipelineFailed) as exc_info:
            _generator(client).generate_monolithic(items)
        assert exc_info.value.stage == "complete_server"


class TestStrategySelection:
    def test_auto_small_api_is_monolithic(self, items, client):
        generator = _generator(client)
        with patch.object(generator, "generate_monolithic", return_value=GeneratedCode(strategy="monolithic")) as mono:
            generator.generate(items)
        mono.assert_called_once_with(items)

    def test_auto_large_api_is_staged(self, items, client):
        generator = _generator(client, monolithic_max_prompt_chars=10)
        with patch.object(generator, "generate_staged", return_value=GeneratedCode(strategy="staged")) as staged:
            generator.generate(items)
        staged.assert_called_once_with(items)

    def test_explicit_strategy(self, items, client):
        generator = _generator(client)
        with patch.object(generator, "generate_staged", return_value=GeneratedCode(strategy="staged")) as staged:
            generator.generate(items, strategy="staged")
        staged.assert_called_once_with(items)

    def test_unknown_strategy(self, items, client):
        with pytest.raises(ValueError):
            _generator(client).generate(items, strategy="parallel")


class TestGeneratedCode:
    def test_empty_report(self):
        assert GeneratedCode(strategy="staged").implementation_report == "0/0 succeeded"

    def test_placeholder_text(self):
        assert placeholder("getItems", "timeout") == "// Error generating implementation for getItems: timeout"

    @patch("api_mcp_agent.generator.orchestrator.LlmClient")
    def test_builds_client_from_model(self, MockClient):
        CodeGenerator(model="gpt-4o")
        MockClient.assert_called_once_with(model="gpt-4o")
