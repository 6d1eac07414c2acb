"""
Error taxonomy for the processing pipeline.

Every error carries a terminal ``code`` string that the host application
maps to user-facing guidance.
"""

from __future__ import annotations

OLLAMA_NOT_RUNNING = "OLLAMA_NOT_RUNNING"
NO_MODELS_INSTALLED = "NO_MODELS_INSTALLED"
MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
AI_PROCESSING_FAILED = "AI_PROCESSING_FAILED"
ABORTED = "ABORTED"


class Pod2ReadError(Exception):
    """Base class for all pipeline errors."""

    code = AI_PROCESSING_FAILED


class BackendUnavailable(Pod2ReadError):
    """The generation service is unreachable or not running."""

    code = OLLAMA_NOT_RUNNING


class NoModelsInstalled(Pod2ReadError):
    code = NO_MODELS_INSTALLED


class RequestedModelUnavailable(Pod2ReadError):
    code = MODEL_NOT_FOUND


class GenerationFailed(Pod2ReadError):
    """Non-success response from the backend, or the request timed out."""


class MalformedResponse(Pod2ReadError):
    """The backend answered, but its payload was not valid JSON."""


class ValidationFailed(Pod2ReadError):
    """The generated document is structurally unusable."""


class Cancelled(Pod2ReadError):
    """Explicit cancellation. Not a failure; hosts should not surface it."""

    code = ABORTED


_USER_MESSAGES = {
    OLLAMA_NOT_RUNNING: "Ollama is not running. Start it with `ollama serve` and try again.",
    NO_MODELS_INSTALLED: "No Ollama models are installed. Pull one first, e.g. `ollama pull qwen2.5:7b`.",
    MODEL_NOT_FOUND: "The configured model is not installed. Pull it with `ollama pull <model>` or unset POD2READ_MODEL.",
    AI_PROCESSING_FAILED: "The model could not restructure this transcript. Try again or pick a different model.",
}


def user_message(code: str) -> str:
    """Return guidance text for a terminal error code ("" for ABORTED)."""
    if code == ABORTED:
        return ""
    return _USER_MESSAGES.get(code, _USER_MESSAGES[AI_PROCESSING_FAILED])
