"""Exception hierarchy for api-mcp-agent.

Errors are grouped by what the caller has to do about them:

- ``SpecError``: the uploaded document is malformed or unsupported.
- ``ConfigurationError``: credentials or model selection need fixing.
- ``GenerationFailed`` / ``PipelineFailed``: the provider gave up; retryable
  failures can be tried again later.
"""


class AgentError(Exception):
    """Base class for all api-mcp-agent errors."""


# -- document parsing / resolution ------------------------------------------


class SpecError(AgentError):
    """The API description cannot be used as input."""


class UnsupportedFormat(SpecError):
    """Content is neither valid JSON nor valid YAML."""


class UnsupportedVersion(SpecError):
    """Document is not an OpenAPI 3.x description."""


class ReferenceNotFound(SpecError):
    def __init__(self, pointer: str):
        super().__init__(f"Reference not found: {pointer}")
        self.pointer = pointer


class UnsupportedReference(SpecError):
    def __init__(self, pointer: str):
        super().__init__(f"External references not supported: {pointer}")
        self.pointer = pointer


# -- configuration / model selection ----------------------------------------


class ConfigurationError(AgentError):
    """Client configuration is invalid (credential, model, options)."""


class MissingCredential(ConfigurationError):
    pass


class NoModelAvailable(ConfigurationError):
    pass


class ModelUnavailable(ConfigurationError):
    """The configured model was rejected by the provider."""


# -- provider calls ---------------------------------------------------------


class ProviderError(AgentError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableProviderError(ProviderError):
    """Rate limit or transient server error (429/500/503/504)."""


class NonRetryableProviderError(ProviderError):
    """Malformed request, auth failure, or any other permanent error."""


class GenerationFailed(AgentError):
    """A generation call failed after its retry budget was spent."""

    def __init__(self, message: str, result=None, retryable: bool = False):
        super().__init__(message)
        self.result = result
        self.retryable = retryable


class PipelineFailed(AgentError):
    """A stage the package cannot be assembled without has failed."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
