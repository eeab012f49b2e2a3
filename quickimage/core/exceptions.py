from typing import Optional


class QuickImageError(Exception):
    """
    Base class for all application-specific exceptions.
    Captures the original exception for debugging if needed.
    """

    code: str = "ERR_UNKNOWN"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


# --- Request Exceptions (Caller Failures) ---


class UnsupportedModelError(QuickImageError):
    """
    Raised when a request names a model no provider client serves.
    """

    code = "ERR_UNSUPPORTED_MODEL"

    def __init__(self, model: str):
        super().__init__(f"Unsupported model: {model!r}")
        self.model = model


class InvalidOptionsError(QuickImageError):
    """
    Raised when provider options fail validation (e.g. unknown size).
    """

    code = "ERR_INVALID_OPTIONS"


class InvalidRequestError(QuickImageError):
    """
    Raised when caller input is malformed (unsafe id, empty search query).
    """

    code = "ERR_INVALID_REQUEST"


# --- Provider Exceptions ---


class MissingCredentialsError(QuickImageError):
    """
    Raised before any network call when the provider's API key is not configured.
    """

    code = "ERR_MISSING_CREDENTIALS"

    def __init__(self, provider: str, env_var: str):
        super().__init__(f"{provider} API key is not configured ({env_var})")
        self.provider = provider
        self.env_var = env_var


class TransportError(QuickImageError):
    """
    Raised when the provider could not be reached (DNS, connect, timeout).
    """

    code = "ERR_TRANSPORT"

    def __init__(self, cause: Exception):
        super().__init__(f"Could not reach provider: {cause!r}", original_error=cause)
        self.cause = cause


class ProviderRejectedError(QuickImageError):
    """
    Raised when the provider answers with a non-success status.
    The raw body is kept verbatim for diagnostics.
    """

    code = "ERR_PROVIDER_REJECTED"

    def __init__(self, status_code: int, raw_body: str, message: Optional[str] = None):
        super().__init__(message or f"Provider rejected request ({status_code}): {raw_body}")
        self.status_code = status_code
        self.raw_body = raw_body


class PollingFailedError(QuickImageError):
    """
    Raised when an async job poll returns neither 'still running' nor 'complete'.
    """

    code = "ERR_POLLING_FAILED"

    def __init__(self, status_code: int, raw_body: str, message: Optional[str] = None):
        super().__init__(message or f"Job polling failed ({status_code}): {raw_body}")
        self.status_code = status_code
        self.raw_body = raw_body


class PollingTimeoutError(PollingFailedError):
    """
    Raised when a job is still running after the configured attempt cap.
    """

    code = "ERR_POLLING_TIMEOUT"

    def __init__(self, job_id: str, attempts: int):
        super().__init__(202, "", message=f"Job {job_id} still running after {attempts} polls")
        self.job_id = job_id
        self.attempts = attempts


# --- Post-processing Exceptions (Never Fatal) ---


class PostProcessError(QuickImageError):
    """
    Raised inside processors; reported through ProcessingResult and only logged.
    """

    code = "ERR_POST_PROCESS"


# --- Infrastructure Exceptions (System Failures) ---


class StorageError(QuickImageError):
    """
    Raised when a local disk write fails or would break the artifact/sidecar ordering.
    """

    code = "ERR_STORAGE"


class ArtifactNotFoundError(QuickImageError):
    """
    Raised when an id has no sidecar or its artifact file is missing.
    Maps to HTTP 404.
    """

    code = "ERR_NOT_FOUND"
