"""
Client for a local Ollama server.

Talks to the native API: ``/api/tags`` for health and the installed model
list, ``/api/generate`` for JSON-mode generation. Generation always streams
so progress can be reported and an in-flight request can be aborted by
closing the response.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from .cancel import CancelToken
from .config import DEFAULT_OLLAMA_HOST
from .errors import BackendUnavailable, GenerationFailed, MalformedResponse, Pod2ReadError
from .models import HealthStatus, ModelInfo
from .prompt_builder import GenerationRequest

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 120.0
HEALTH_TIMEOUT = 3.0
CONNECT_TIMEOUT = 5.0

TokenProgress = Callable[[int], None]


def parse_json_payload(text: str) -> Dict[str, Any]:
    """Parse the model's JSON answer; anything but a JSON object is malformed."""
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedResponse("Failed to parse Ollama JSON response") from e
    if not isinstance(parsed, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def repair_response(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """
    Structural repair of a restructure response.

    Gives every section a thoughts list and a title (``"Section N"``),
    drops sections left without thoughts, and defaults takeaways to ``[]``.
    Responses without ``sections`` (chapter, arc) pass through untouched.
    """
    sections = parsed.get("sections")
    if not isinstance(sections, list):
        return parsed

    repaired = []
    for i, section in enumerate(sections):
        if not isinstance(section, dict):
            continue
        if not isinstance(section.get("thoughts"), list):
            section["thoughts"] = []
        if not section.get("title"):
            section["title"] = f"Section {i + 1}"
        if section["thoughts"]:
            repaired.append(section)

    parsed["sections"] = repaired
    if not isinstance(parsed.get("takeaways"), list):
        parsed["takeaways"] = []
    return parsed


class OllamaClient:
    """Generation backend client with timeouts and cooperative cancellation."""

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_HOST,
        request_timeout: float = REQUEST_TIMEOUT,
        health_timeout: float = HEALTH_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Ollama server root, e.g. ``http://localhost:11434``
            request_timeout: Hard limit for one generation call, in seconds
            health_timeout: Limit for the model listing call, in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.health_timeout = health_timeout
        self.session = session or requests.Session()

    # ----------------------------
    # Health / model listing
    # ----------------------------

    def list_models(self) -> List[ModelInfo]:
        url = f"{self.base_url}/api/tags"
        try:
            response = self.session.get(url, timeout=self.health_timeout)
        except requests.RequestException as e:
            raise BackendUnavailable(f"Ollama is not reachable at {self.base_url}") from e
        if not response.ok:
            raise BackendUnavailable(f"Ollama health check failed with status {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise BackendUnavailable("Ollama returned an unreadable model list") from e

        models = []
        for raw in data.get("models") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            details = raw.get("details") or {}
            models.append(
                ModelInfo(
                    name=raw["name"],
                    param_size=details.get("parameter_size") or "",
                    quantization=details.get("quantization_level") or "",
                    family=details.get("family") or "",
                    size_bytes=int(raw.get("size") or 0),
                )
            )
        return models

    def check_health(self) -> HealthStatus:
        try:
            models = self.list_models()
        except BackendUnavailable as e:
            logger.debug("Health check failed: %s", e)
            return HealthStatus(running=False)
        return HealthStatus(running=True, models=models)

    # ----------------------------
    # Generation
    # ----------------------------

    def generate(
        self,
        request: GenerationRequest,
        cancel_token: Optional[CancelToken] = None,
        on_token_progress: Optional[TokenProgress] = None,
    ) -> Dict[str, Any]:
        """
        Run one generation request and return the parsed, repaired JSON object.

        Args:
            request: Built by one of the prompt_builder functions
            cancel_token: Caller cancellation; composed with the request timeout
            on_token_progress: Called with the running token count as tokens stream in

        Raises:
            Cancelled: ``cancel_token`` fired
            GenerationFailed: non-success status, stream error, or timeout
            MalformedResponse: the answer is not a JSON object
            BackendUnavailable: the server cannot be reached
        """
        with CancelToken.linked(cancel_token, timeout=self.request_timeout) as token:
            token.raise_if_cancelled()
            text = self._stream(request, token, on_token_progress)
        return repair_response(parse_json_payload(text))

    def _post(self, url: str, payload: Dict[str, Any], token: CancelToken) -> requests.Response:
        """
        Send the POST on a worker thread and wait for the response or the token.

        Ollama sends no headers until the model is loaded and the prompt is
        read, so a blocked ``post`` cannot be interrupted in place. When the
        token fires first the request is abandoned and its response is
        closed as soon as it arrives.
        """
        outcome: Dict[str, Any] = {}
        settled = threading.Event()
        lock = threading.Lock()

        def send() -> None:
            try:
                response = self.session.post(
                    url,
                    json=payload,
                    stream=True,
                    timeout=(CONNECT_TIMEOUT, self.request_timeout),
                )
            except Exception as e:
                outcome["error"] = e
            else:
                with lock:
                    abandoned = outcome.get("abandoned", False)
                    outcome["response"] = response
                if abandoned:
                    logger.debug("Closing response of an abandoned generation request")
                    response.close()
            finally:
                settled.set()

        release = token.add_callback(settled.set)
        worker = threading.Thread(target=send, name="ollama-generate", daemon=True)
        worker.start()
        try:
            settled.wait()
        finally:
            release()

        with lock:
            response = outcome.get("response")
            error = outcome.get("error")
            if response is None and error is None:
                outcome["abandoned"] = True
        if error is not None:
            raise error
        if response is None:
            token.raise_if_cancelled()
        return response

    def _stream(
        self,
        request: GenerationRequest,
        token: CancelToken,
        on_token_progress: Optional[TokenProgress],
    ) -> str:
        url = f"{self.base_url}/api/generate"
        logger.debug("POST %s model=%s prompt_chars=%d", url, request.model, len(request.prompt))
        try:
            response = self._post(url, request.to_payload(stream=True), token)
        except requests.ConnectionError as e:
            token.raise_if_cancelled()
            raise BackendUnavailable(f"Ollama is not reachable at {self.base_url}") from e
        except requests.Timeout as e:
            raise GenerationFailed("Generation request timed out") from e
        except requests.RequestException as e:
            token.raise_if_cancelled()
            raise GenerationFailed(f"Generation request failed: {e}") from e

        release = token.add_callback(response.close)
        try:
            token.raise_if_cancelled()
            if not response.ok:
                raise GenerationFailed(f"Ollama error {response.status_code}: {response.text}")

            pieces: List[str] = []
            token_count = 0
            for line in response.iter_lines():
                token.raise_if_cancelled()
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except ValueError as e:
                    raise MalformedResponse("Unreadable stream chunk from Ollama") from e
                if chunk.get("error"):
                    raise GenerationFailed(f"Ollama error: {chunk['error']}")

                piece = chunk.get("response")
                if isinstance(piece, str) and piece:
                    pieces.append(piece)
                    token_count += 1
                    if on_token_progress is not None:
                        on_token_progress(token_count)
                if chunk.get("done"):
                    break

            token.raise_if_cancelled()
            logger.debug("Generation finished after %d streamed tokens", token_count)
            return "".join(pieces)
        except Pod2ReadError:
            raise
        except Exception as e:
            # Closing the response from the cancel callback surfaces here as a read error
            token.raise_if_cancelled()
            raise GenerationFailed(f"Generation stream failed: {e}") from e
        finally:
            release()
            response.close()
