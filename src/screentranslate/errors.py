"""Error taxonomy surfaced by providers, the registry and the orchestration service.

Every error carries an ErrorKind so callers can offer a targeted remedy
(open settings, retry, switch engine) instead of a generic alert.
"""

from enum import Enum


class ErrorKind(Enum):
    NOT_AVAILABLE = "not_available"
    EMPTY_INPUT = "empty_input"
    INVALID_CONFIGURATION = "invalid_configuration"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"
    TRANSLATION_FAILED = "translation_failed"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    AUTHENTICATION_FAILED = "authentication_failed"
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_RESPONSE = "invalid_response"
    IMAGE_ENCODING_FAILED = "image_encoding_failed"
    PARSING_FAILED = "parsing_failed"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    NOT_REGISTERED = "not_registered"
    CREDENTIALS_NOT_FOUND = "credentials_not_found"
    ALL_ENGINES_FAILED = "all_engines_failed"


RECOVERY_SUGGESTIONS = {
    ErrorKind.NOT_AVAILABLE: "Check that the engine is installed and running, or switch engine.",
    ErrorKind.INVALID_CONFIGURATION: "Check the engine's URL and model in settings.",
    ErrorKind.NETWORK_ERROR: "Check your network connection and try again.",
    ErrorKind.TIMEOUT: "Try again, or increase the engine timeout in settings.",
    ErrorKind.RATE_LIMITED: "Wait a moment before retrying, or switch engine.",
    ErrorKind.AUTHENTICATION_FAILED: "Check the API key in settings.",
    ErrorKind.CREDENTIALS_NOT_FOUND: "Add an API key for this engine in settings.",
    ErrorKind.MODEL_UNAVAILABLE: "Check the model name or pull the model.",
    ErrorKind.OPERATION_IN_PROGRESS: "Wait for the current request to finish.",
    ErrorKind.NOT_REGISTERED: "Configure the engine in settings.",
    ErrorKind.ALL_ENGINES_FAILED: "Check the configuration of both engines.",
}

RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED})


class ScreenTranslateError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, kind: ErrorKind):
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def retryable(self) -> bool:
        """Whether retrying the same engine later could succeed."""
        return self.kind in RETRYABLE_KINDS

    @property
    def recovery_suggestion(self) -> str | None:
        return RECOVERY_SUGGESTIONS.get(self.kind)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.message})"


class TranslationProviderError(ScreenTranslateError):
    """Failure of a translation provider call."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        retry_after: float | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, kind)
        self.retry_after = retry_after
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.kind is ErrorKind.HTTP_ERROR:
            return self.status_code is not None and self.status_code >= 500
        return super().retryable

    @classmethod
    def not_available(cls, engine: str = "") -> "TranslationProviderError":
        suffix = f": {engine}" if engine else ""
        return cls(f"Translation engine not available{suffix}", ErrorKind.NOT_AVAILABLE)

    @classmethod
    def empty_input(cls) -> "TranslationProviderError":
        return cls("Nothing to translate", ErrorKind.EMPTY_INPUT)

    @classmethod
    def invalid_configuration(cls, message: str) -> "TranslationProviderError":
        return cls(message, ErrorKind.INVALID_CONFIGURATION)

    @classmethod
    def network_error(cls, message: str) -> "TranslationProviderError":
        return cls(message, ErrorKind.NETWORK_ERROR)

    @classmethod
    def timeout(cls, seconds: float | None = None) -> "TranslationProviderError":
        detail = f" after {seconds:g}s" if seconds else ""
        return cls(f"Translation timed out{detail}", ErrorKind.TIMEOUT)

    @classmethod
    def rate_limited(cls, retry_after: float | None = None) -> "TranslationProviderError":
        detail = f", retry after {retry_after:g}s" if retry_after else ""
        return cls(f"Rate limited{detail}", ErrorKind.RATE_LIMITED, retry_after=retry_after)

    @classmethod
    def http_error(cls, status_code: int) -> "TranslationProviderError":
        return cls(f"HTTP error {status_code}", ErrorKind.HTTP_ERROR, status_code=status_code)

    @classmethod
    def translation_failed(cls, message: str) -> "TranslationProviderError":
        return cls(message, ErrorKind.TRANSLATION_FAILED)

    @classmethod
    def unsupported_language(cls, language: str) -> "TranslationProviderError":
        return cls(f"Unsupported language: {language}", ErrorKind.UNSUPPORTED_LANGUAGE)

    @classmethod
    def authentication_failed(cls, message: str = "Invalid API key") -> "TranslationProviderError":
        return cls(message, ErrorKind.AUTHENTICATION_FAILED)


class VLMProviderError(ScreenTranslateError):
    """Failure of a vision/OCR provider call."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        retry_after: float | None = None,
        model_name: str | None = None,
    ):
        super().__init__(message, kind)
        self.retry_after = retry_after
        self.model_name = model_name

    @classmethod
    def invalid_configuration(cls, message: str) -> "VLMProviderError":
        return cls(message, ErrorKind.INVALID_CONFIGURATION)

    @classmethod
    def network_error(cls, message: str) -> "VLMProviderError":
        return cls(message, ErrorKind.NETWORK_ERROR)

    @classmethod
    def timed_out(cls, seconds: float) -> "VLMProviderError":
        """Vision timeouts surface as network errors."""
        return cls(f"Request timed out after {seconds:g}s", ErrorKind.NETWORK_ERROR)

    @classmethod
    def authentication_failed(cls) -> "VLMProviderError":
        return cls("Authentication failed, check the API key", ErrorKind.AUTHENTICATION_FAILED)

    @classmethod
    def rate_limited(cls, retry_after: float | None = None, message: str | None = None) -> "VLMProviderError":
        text = message or "Rate limited"
        if retry_after:
            text = f"{text} (retry after {retry_after:g}s)"
        return cls(text, ErrorKind.RATE_LIMITED, retry_after=retry_after)

    @classmethod
    def model_unavailable(cls, model_name: str, hint: str | None = None) -> "VLMProviderError":
        text = f"Model unavailable: {model_name}"
        if hint:
            text = f"{text}. {hint}"
        return cls(text, ErrorKind.MODEL_UNAVAILABLE, model_name=model_name)

    @classmethod
    def invalid_response(cls, message: str) -> "VLMProviderError":
        return cls(message, ErrorKind.INVALID_RESPONSE)

    @classmethod
    def image_encoding_failed(cls, message: str = "Failed to encode image") -> "VLMProviderError":
        return cls(message, ErrorKind.IMAGE_ENCODING_FAILED)

    @classmethod
    def parsing_failed(cls, message: str) -> "VLMProviderError":
        return cls(message, ErrorKind.PARSING_FAILED)


class OperationInProgressError(ScreenTranslateError):
    """A provider instance rejected a second concurrent call."""

    def __init__(self, provider: str):
        super().__init__(f"{provider} is already processing a request", ErrorKind.OPERATION_IN_PROGRESS)
        self.provider = provider


class RegistryError(ScreenTranslateError):
    @classmethod
    def not_registered(cls, engine: object) -> "RegistryError":
        return cls(f"Engine not registered: {engine}", ErrorKind.NOT_REGISTERED)

    @classmethod
    def credentials_not_found(cls, engine: object) -> "RegistryError":
        return cls(f"No credentials stored for {engine}", ErrorKind.CREDENTIALS_NOT_FOUND)

    @classmethod
    def not_available(cls, engine: object) -> "RegistryError":
        return cls(f"Engine not available: {engine}", ErrorKind.NOT_AVAILABLE)

    @classmethod
    def read_only_store(cls, store: str) -> "RegistryError":
        return cls(f"{store} is read-only; credentials cannot be changed", ErrorKind.INVALID_CONFIGURATION)


class AllEnginesFailedError(ScreenTranslateError):
    """Raised when the primary engine and its fallback both failed."""

    def __init__(self, errors: list[ScreenTranslateError]):
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"All translation engines failed: {details}", ErrorKind.ALL_ENGINES_FAILED)
        self.errors = list(errors)
