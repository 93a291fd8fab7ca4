"""LLM client wrapper around litellm.

Adds what a long generation run needs on top of a single ``completion`` call:
model validation with auto-selection, retry with linear backoff for
transient provider errors, content-filter detection and token accounting.
"""

import logging
import re
import time
from enum import Enum

from litellm import completion, get_llm_provider, get_valid_models
from pydantic import BaseModel, ValidationError

from api_mcp_agent.config import Settings, get_settings
from api_mcp_agent.errors import (
    ConfigurationError,
    GenerationFailed,
    MissingCredential,
    ModelUnavailable,
    NoModelAvailable,
    NonRetryableProviderError,
    ProviderError,
    RetryableProviderError,
)
from api_mcp_agent.logging import redact_payload, redact_text

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
PREFERRED_MODEL_PATTERN = "claude-sonnet"
RETRYABLE_STATUS_CODES = (429, 500, 503, 504)
CONTENT_FILTER_REASON = "content_filter"

_STATUS_TOKEN = re.compile(r"\b(" + "|".join(str(c) for c in RETRYABLE_STATUS_CODES) + r")\b")


class ModelState(str, Enum):
    UNVALIDATED = "unvalidated"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"


class GenerationOptions(BaseModel):
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class GenerationResult(BaseModel):
    success: bool
    text: str = ""
    error: str | None = None
    model: str
    attempts: int = 1
    duration_ms: int = 0
    filtered: bool = False
    usage: TokenUsage | None = None


class ModelValidation(BaseModel):
    valid: bool
    available_models: list[str] = []
    error: str | None = None


def classify_error(exc: Exception) -> ProviderError:
    """Map a raw provider exception onto the retryable / non-retryable split."""
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        code = getattr(exc, "code", None)
        status = int(code) if isinstance(code, (int, str)) and str(code).isdigit() else None

    message = str(exc) or exc.__class__.__name__
    if status in RETRYABLE_STATUS_CODES or _STATUS_TOKEN.search(message):
        return RetryableProviderError(message, status_code=status)
    return NonRetryableProviderError(message, status_code=status)


def _is_model_not_found(exc: Exception) -> bool:
    return getattr(exc, "status_code", None) == 404


def _provider_of(model: str) -> str | None:
    """Provider litellm routes ``model`` to; None lets litellm check every provider it has keys for."""
    try:
        return get_llm_provider(model)[1]
    except Exception as e:
        logger.debug("Could not infer provider for model %s: %s", model, e)
        return None


def _bare(name: str) -> str:
    """``anthropic/claude-x`` -> ``claude-x``; provider prefixes vary by listing."""
    return name.rsplit("/", 1)[-1]


def select_model(available: list[str]) -> str | None:
    """Prefer the default model, then the preferred family, then anything."""
    for name in available:
        if _bare(name) == DEFAULT_MODEL:
            return name
    for name in available:
        if PREFERRED_MODEL_PATTERN in name:
            return name
    return available[0] if available else None


class LlmClient:
    """Resilient wrapper for LLM API calls via litellm."""

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        settings: Settings | None = None,
    ):
        try:
            self.settings = settings or get_settings()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid LLM configuration: {e}") from e

        self.api_key = api_key or self.settings.api_key
        if not self.api_key:
            raise MissingCredential("LLM API key is required (set MCP_AGENT_API_KEY)")

        self.model = model or self.settings.model or DEFAULT_MODEL
        self.defaults = GenerationOptions(
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )
        self.max_retries = self.settings.max_retries
        self.retry_delay = self.settings.retry_delay
        self.state = ModelState.UNVALIDATED if self.settings.validate_model else ModelState.VALID

        logger.debug("LLM client configured: %s", redact_payload({
            "model": self.model,
            "api_key": self.api_key,
            "temperature": self.defaults.temperature,
            "max_tokens": self.defaults.max_tokens,
            "max_retries": self.max_retries,
        }))

    # -- model validation -------------------------------------------------

    def validate_model(self) -> ModelValidation:
        """Check the configured model against the provider's model list."""
        try:
            available = list(get_valid_models(
                check_provider_endpoint=True,
                custom_llm_provider=_provider_of(self.model),
                api_key=self.api_key,
            ))
        except Exception as e:
            message = redact_text(str(e), self.api_key)
            logger.error("Failed to list models: %s", message)
            return ModelValidation(valid=False, error=message)

        names = {_bare(name) for name in available}
        valid = self.model in available or _bare(self.model) in names
        if not valid:
            logger.warning("Model %s not found in available models: %s", self.model, ", ".join(available))
        return ModelValidation(valid=valid, available_models=available)

    def ensure_model(self, revalidate: bool = False) -> str:
        """Validate once per client; auto-select a model if the configured one is missing."""
        if self.state == ModelState.VALID and not revalidate:
            return self.model

        self.state = ModelState.VALIDATING
        validation = self.validate_model()
        if validation.valid:
            self.state = ModelState.VALID
            return self.model

        self.state = ModelState.INVALID
        selected = select_model(validation.available_models)
        if selected is None:
            detail = f": {validation.error}" if validation.error else ""
            raise NoModelAvailable(f"No available models found. Please check your API key{detail}")

        logger.info("Auto-switching from model %s to %s", self.model, selected)
        self.model = selected
        self.state = ModelState.VALID
        return self.model

    # -- generation ---------------------------------------------------------

    def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        system: str | None = None,
    ) -> GenerationResult:
        """Run one logical generation, retrying transient provider errors.

        Raises GenerationFailed when retries are exhausted or the error is not
        retryable; the failed GenerationResult is attached to the exception.
        """
        self.ensure_model()
        opts = self._merge_options(options)
        start = time.monotonic()
        switched_model = False
        attempt = 0

        logger.info(
            "Starting generation: model=%s temperature=%s max_tokens=%s prompt_chars=%d",
            self.model, opts.temperature, opts.max_tokens, len(prompt),
        )

        while True:
            attempt += 1
            try:
                response = self._complete(prompt, system, opts)
            except Exception as exc:
                if _is_model_not_found(exc) and not switched_model:
                    switched_model = True
                    previous = self.model
                    logger.warning("Model %s rejected by provider, re-validating", previous)
                    self.ensure_model(revalidate=True)
                    if self.model != previous:
                        continue
                    reason = redact_text(str(exc), self.api_key)
                    raise ModelUnavailable(f"Model {previous} is not available: {reason}") from exc

                error = classify_error(exc)
                message = redact_text(str(error), self.api_key)
                retryable = isinstance(error, RetryableProviderError)
                if retryable and attempt < self.max_retries:
                    delay = attempt * self.retry_delay
                    logger.warning(
                        "Retrying (attempt %d/%d) after %.1fs: %s",
                        attempt + 1, self.max_retries, delay, message,
                    )
                    time.sleep(delay)
                    continue

                result = GenerationResult(
                    success=False,
                    error=message,
                    model=self.model,
                    attempts=attempt,
                    duration_ms=_elapsed_ms(start),
                )
                logger.error("Generation failed after %d attempt(s): %s", attempt, message)
                raise GenerationFailed(
                    f"Generation failed after {attempt} attempt(s): {message}",
                    result=result,
                    retryable=retryable,
                ) from exc

            return self._to_result(response, attempt, start)

    def _merge_options(self, options: GenerationOptions | None) -> GenerationOptions:
        if options is None:
            return self.defaults.model_copy()
        overrides = options.model_dump(exclude_none=True)
        if "max_tokens" in overrides:
            # The configured cap bounds every stage.
            overrides["max_tokens"] = min(overrides["max_tokens"], self.defaults.max_tokens)
        return self.defaults.model_copy(update=overrides)

    def _complete(self, prompt: str, system: str | None, opts: GenerationOptions):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return completion(
            model=self.model,
            messages=messages,
            api_key=self.api_key,
            **opts.model_dump(exclude_none=True),
        )

    def _to_result(self, response, attempts: int, start: float) -> GenerationResult:
        choice = response.choices[0]
        content = choice.message.content
        text = content if isinstance(content, str) else ""

        filtered = getattr(choice, "finish_reason", None) == CONTENT_FILTER_REASON
        if filtered:
            logger.warning("Response from %s was withheld by the provider's content filter", self.model)

        usage = _usage_of(response)
        duration_ms = _elapsed_ms(start)
        logger.info(
            "Generation completed in %dms (%d chars, attempts=%d, total_tokens=%s)",
            duration_ms, len(text), attempts, usage.total_tokens if usage else "n/a",
        )
        return GenerationResult(
            success=True,
            text=text,
            model=self.model,
            attempts=attempts,
            duration_ms=duration_ms,
            filtered=filtered,
            usage=usage,
        )


def _usage_of(response) -> TokenUsage | None:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    counts = {
        key: getattr(usage, key, None)
        for key in ("prompt_tokens", "completion_tokens", "total_tokens")
    }
    counts = {key: value for key, value in counts.items() if isinstance(value, int)}
    return TokenUsage(**counts) if counts else None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
