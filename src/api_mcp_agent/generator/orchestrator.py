"""Generation orchestrator: sequences LLM calls into an MCP server codebase.

Two strategies share one result type:

- monolithic: one call for the whole API, split back into sections by heading;
- staged: types -> tool definitions -> one call per endpoint -> main server ->
  manifest -> README, each prompt carrying only its slice of the API.

Every call is recorded as a StageOutcome. A failed endpoint becomes a
placeholder and the run continues; a failed types or main-server stage
aborts the run with PipelineFailed.
"""

import logging
import time
from enum import Enum

from pydantic import BaseModel

from api_mcp_agent.config import get_settings
from api_mcp_agent.errors import GenerationFailed, PipelineFailed
from api_mcp_agent.generator import prompts
from api_mcp_agent.generator.extract import extract_code, split_sections
from api_mcp_agent.llm import GenerationOptions, LlmClient, TokenUsage
from api_mcp_agent.transform.models import CompactModel

logger = logging.getLogger(__name__)

STAGE_COMPLETE = "complete_server"
STAGE_TYPES = "types"
STAGE_TOOL_DEFINITIONS = "tool_definitions"
STAGE_TOOL_IMPLEMENTATION = "tool_implementation"
STAGE_MAIN_SERVER = "main_server"
STAGE_MANIFEST = "manifest"
STAGE_README = "readme"

FATAL_STAGES = {STAGE_COMPLETE, STAGE_TYPES, STAGE_MAIN_SERVER}

STAGE_OPTIONS = {
    STAGE_COMPLETE: GenerationOptions(temperature=0.7, max_tokens=32768),
    STAGE_TYPES: GenerationOptions(temperature=0.3, max_tokens=8192),
    STAGE_TOOL_DEFINITIONS: GenerationOptions(temperature=0.5, max_tokens=8192),
    STAGE_TOOL_IMPLEMENTATION: GenerationOptions(temperature=0.7, max_tokens=4096),
    STAGE_MAIN_SERVER: GenerationOptions(temperature=0.7, max_tokens=4096),
    STAGE_MANIFEST: GenerationOptions(temperature=0.2, max_tokens=2048),
    STAGE_README: GenerationOptions(temperature=0.7, max_tokens=4096),
}

PLACEHOLDER_TEMPLATE = "// Error generating implementation for {operation_id}: {error}"


def placeholder(operation_id: str, error: str) -> str:
    return PLACEHOLDER_TEMPLATE.format(operation_id=operation_id, error=error)


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationTask(BaseModel):
    """One call of the pipeline: a rendered prompt plus its stage options."""

    stage: str
    prompt: str
    options: GenerationOptions
    item: str | None = None


class StageOutcome(BaseModel):
    stage: str
    item: str | None = None  # operation id for per-endpoint stages
    status: StageStatus
    error: str | None = None
    attempts: int = 0
    duration_ms: int = 0
    filtered: bool = False
    usage: TokenUsage | None = None

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


class GeneratedCode(BaseModel):
    """Everything the package assembler consumes."""

    strategy: str
    types: str | None = None
    tool_definitions: str | None = None
    tool_implementations: dict[str, str] = {}
    main_server: str | None = None
    manifest: str | None = None
    readme: str | None = None
    outcomes: list[StageOutcome] = []

    def implementation_outcomes(self) -> list[StageOutcome]:
        return [o for o in self.outcomes if o.stage == STAGE_TOOL_IMPLEMENTATION]

    @property
    def failed_implementations(self) -> list[str]:
        return [o.item for o in self.implementation_outcomes() if not o.ok]

    @property
    def implementation_report(self) -> str:
        outcomes = self.implementation_outcomes()
        succeeded = sum(1 for o in outcomes if o.ok)
        return f"{succeeded}/{len(outcomes)} succeeded"


class CodeGenerator:
    """Drives the LLM through the monolithic or staged pipeline."""

    def __init__(
        self,
        model: str | None = None,
        client: LlmClient | None = None,
        inter_call_delay: float | None = None,
        monolithic_max_prompt_chars: int | None = None,
    ):
        settings = get_settings()
        self.client = client or LlmClient(model=model)
        self.inter_call_delay = (
            settings.inter_call_delay if inter_call_delay is None else inter_call_delay
        )
        self.monolithic_max_prompt_chars = (
            monolithic_max_prompt_chars or settings.monolithic_max_prompt_chars
        )

    def generate(self, api: CompactModel, strategy: str = "auto") -> GeneratedCode:
        if strategy == "auto":
            size = len(prompts.complete_server_prompt(api))
            strategy = "monolithic" if size <= self.monolithic_max_prompt_chars else "staged"
            logger.info("Prompt size %d chars, using %s strategy", size, strategy)

        if strategy == "monolithic":
            return self.generate_monolithic(api)
        if strategy == "staged":
            return self.generate_staged(api)
        raise ValueError(f"Unknown generation strategy: {strategy}")

    # -- monolithic -------------------------------------------------------

    def generate_monolithic(self, api: CompactModel) -> GeneratedCode:
        code = GeneratedCode(strategy="monolithic")
        prompt = prompts.complete_server_prompt(api)
        if len(prompt) > self.monolithic_max_prompt_chars:
            logger.warning(
                "Monolithic prompt is %d chars (threshold %d); the provider may truncate it",
                len(prompt), self.monolithic_max_prompt_chars,
            )

        logger.info(
            "Generating complete MCP server for '%s' (%d endpoints, %d schemas)",
            api.title, len(api.endpoints), len(api.schemas),
        )
        text = self._run(code, STAGE_COMPLETE, prompt, lang=None)
        self._apply_sections(code, text)

        for endpoint in api.endpoints:
            if endpoint.operation_id in code.tool_implementations:
                code.outcomes.append(StageOutcome(
                    stage=STAGE_TOOL_IMPLEMENTATION,
                    item=endpoint.operation_id,
                    status=StageStatus.SUCCEEDED,
                ))
                continue
            error = "missing from generated response"
            logger.warning("No implementation for %s in the generated server", endpoint.operation_id)
            code.tool_implementations[endpoint.operation_id] = placeholder(endpoint.operation_id, error)
            code.outcomes.append(StageOutcome(
                stage=STAGE_TOOL_IMPLEMENTATION,
                item=endpoint.operation_id,
                status=StageStatus.FAILED,
                error=error,
            ))
        return code

    def _apply_sections(self, code: GeneratedCode, text: str) -> None:
        sections = split_sections(text)
        tool_prefix = prompts.SECTION_TOOL_PREFIX.lower()

        for heading, body in sections.items():
            key = heading.lower()
            if key == prompts.SECTION_TYPES.lower():
                code.types = extract_code(body, "typescript")
            elif key == prompts.SECTION_TOOL_DEFINITIONS.lower():
                code.tool_definitions = extract_code(body, "json")
            elif key.startswith(tool_prefix):
                operation_id = heading[len(tool_prefix):].strip()
                code.tool_implementations[operation_id] = extract_code(body, "typescript")
            elif key == prompts.SECTION_MAIN_SERVER.lower():
                code.main_server = extract_code(body, "typescript")
            elif key == prompts.SECTION_MANIFEST.lower():
                code.manifest = extract_code(body, "json")
            elif key == prompts.SECTION_README.lower():
                code.readme = extract_code(body, "markdown", any_block=False)

        if code.main_server is None and not sections:
            logger.warning("No sections found in generated response, using it as the main server")
            code.main_server = extract_code(text, "typescript")

    # -- staged -----------------------------------------------------------

    def generate_staged(self, api: CompactModel) -> GeneratedCode:
        code = GeneratedCode(strategy="staged")
        tool_names = [ep.operation_id for ep in api.endpoints]
        logger.info("Generating MCP server for '%s' in stages (%d endpoints)", api.title, len(tool_names))

        code.types = self._run(code, STAGE_TYPES, prompts.types_prompt(api))
        self._pause()
        code.tool_definitions = self._run(code, STAGE_TOOL_DEFINITIONS, prompts.tool_definitions_prompt(api), lang="json")
        self._pause()

        code.tool_implementations = self.generate_tool_implementations(api, code)

        code.main_server = self._run(code, STAGE_MAIN_SERVER, prompts.main_server_prompt(api, tool_names))
        self._pause()
        code.manifest = self._run(code, STAGE_MANIFEST, prompts.manifest_prompt(api), lang="json")
        self._pause()
        code.readme = self._run(code, STAGE_README, prompts.readme_prompt(api, tool_names), lang="markdown")
        return code

    def generate_tool_implementations(self, api: CompactModel, code: GeneratedCode) -> dict[str, str]:
        """One call per endpoint, in order; failures become placeholders."""
        implementations: dict[str, str] = {}
        total = len(api.endpoints)

        for index, endpoint in enumerate(api.endpoints, start=1):
            operation_id = endpoint.operation_id
            logger.info("[%d/%d] Generating tool %s (%s %s)", index, total, operation_id, endpoint.method, endpoint.path)

            prompt = prompts.tool_implementation_prompt(endpoint, api)
            text = self._run(code, STAGE_TOOL_IMPLEMENTATION, prompt, item=operation_id)
            if text is None:
                implementations[operation_id] = placeholder(operation_id, code.outcomes[-1].error)
            else:
                implementations[operation_id] = text
            self._pause()

        logger.info("Tool generation complete: %s", code.implementation_report)
        return implementations

    # -- shared helpers ---------------------------------------------------

    def _run(
        self,
        code: GeneratedCode,
        stage: str,
        prompt: str,
        item: str | None = None,
        lang: str | None = "typescript",
    ) -> str | None:
        """Run one call and record its outcome.

        Returns the extracted text, or None when the call failed. Failures of
        fatal stages raise PipelineFailed after the outcome is recorded.
        """
        task = GenerationTask(stage=stage, prompt=prompt, options=STAGE_OPTIONS[stage], item=item)
        logger.debug("Running stage %s%s (%d prompt chars)", stage, f" ({item})" if item else "", len(prompt))
        try:
            result = self.client.generate(task.prompt, task.options, system=prompts.SYSTEM_PROMPT)
        except GenerationFailed as e:
            code.outcomes.append(StageOutcome(
                stage=stage,
                item=item,
                status=StageStatus.FAILED,
                error=str(e),
                attempts=e.result.attempts if e.result else 0,
                duration_ms=e.result.duration_ms if e.result else 0,
            ))
            logger.error("Stage %s%s failed: %s", stage, f" ({item})" if item else "", e)
            if stage in FATAL_STAGES:
                raise PipelineFailed(stage, e) from e
            return None

        usable = not (result.filtered and not result.text.strip())
        error = None if usable else "response withheld by content filter"
        code.outcomes.append(StageOutcome(
            stage=stage,
            item=item,
            status=StageStatus.SUCCEEDED if usable else StageStatus.FAILED,
            error=error,
            attempts=result.attempts,
            duration_ms=result.duration_ms,
            filtered=result.filtered,
            usage=result.usage,
        ))

        if not usable:
            logger.warning("Stage %s%s produced no usable output: %s", stage, f" ({item})" if item else "", error)
            if stage in FATAL_STAGES:
                raise PipelineFailed(stage, GenerationFailed(error, result=result))
            return None

        if lang is None:
            return result.text
        if lang == "markdown":
            return extract_code(result.text, lang, any_block=False)
        return extract_code(result.text, lang)

    def _pause(self) -> None:
        if self.inter_call_delay > 0:
            time.sleep(self.inter_call_delay)
