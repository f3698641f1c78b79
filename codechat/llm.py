"""Model clients used by the chat front end."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from pathlib import Path

import httpx
import yaml

from .cancellation import CancellationToken
from .config import LLMConfig
from .constants import CONNECTION_TEST_TIMEOUT, DEFAULT_LLM_TIMEOUT, DEFAULT_SERVER_URL
from .errors import LLMError
from .session import ChatMessage

logger = logging.getLogger(__name__)

# Word plus the whitespace that follows it, so chunks concatenate back exactly.
_CHUNK_RE = re.compile(r"\S+\s*|\s+")


class BaseLLMClient(ABC):
    """Interface for chat model clients."""

    @abstractmethod
    def stream_chat(
        self,
        model: str,
        messages: list[ChatMessage],
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        """Yield the reply in chunks as they arrive.

        Stops early, without raising, once ``cancel_token`` is cancelled.
        """

    def chat(self, model: str, messages: list[ChatMessage]) -> str:
        return "".join(self.stream_chat(model, messages))

    @abstractmethod
    def list_models(self) -> list[str]:
        """Names of the models the server offers; empty when unreachable."""

    def test_connection(self) -> bool:  # pragma: no cover - default
        return True

    def close(self) -> None:  # pragma: no cover - default no-op
        """Release any held resources."""


class OllamaClient(BaseLLMClient):
    """Client for the Ollama HTTP API (``/api/tags`` and ``/api/chat``)."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        timeout: float = DEFAULT_LLM_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def test_connection(self) -> bool:
        try:
            response = self._client.get("/api/tags", timeout=CONNECTION_TEST_TIMEOUT)
        except httpx.HTTPError as exc:
            logger.warning("Model server %s unreachable: %s", self.base_url, exc)
            return False
        return response.is_success

    def list_models(self) -> list[str]:
        try:
            response = self._client.get("/api/tags")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.error("Failed to list models from %s: %s", self.base_url, exc)
            return []
        models = payload.get("models") if isinstance(payload, dict) else None
        return [str(entry.get("name") or "unknown") for entry in models or [] if isinstance(entry, dict)]

    def stream_chat(
        self,
        model: str,
        messages: list[ChatMessage],
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        token = cancel_token or CancellationToken()
        payload = self._payload(model, messages, stream=True)
        try:
            with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    response.read()
                    raise LLMError(f"Ollama error ({response.status_code}): {response.text.strip()}")
                for line in response.iter_lines():
                    if token.cancelled:
                        logger.info("Streaming cancelled")
                        return
                    if not line.strip():
                        continue
                    chunk = _decode_line(line)
                    content = (chunk.get("message") or {}).get("content")
                    if content:
                        yield content
                    if chunk.get("done"):
                        return
        except httpx.HTTPError as exc:
            logger.error("Chat request to %s failed: %s", self.base_url, exc)
            raise LLMError(f"Failed to reach Ollama at {self.base_url}: {exc}") from exc

    def chat(self, model: str, messages: list[ChatMessage]) -> str:
        try:
            response = self._client.post("/api/chat", json=self._payload(model, messages, stream=False))
        except httpx.HTTPError as exc:
            logger.error("Chat request to %s failed: %s", self.base_url, exc)
            raise LLMError(f"Failed to reach Ollama at {self.base_url}: {exc}") from exc
        if response.status_code >= 400:
            raise LLMError(f"Ollama error ({response.status_code}): {response.text.strip()}")
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise LLMError(f"Ollama returned invalid JSON: {exc}") from exc
        return str((data.get("message") or {}).get("content") or "")

    def close(self) -> None:
        self._client.close()

    # Internals -----------------------------------------------------------------

    def _payload(self, model: str, messages: list[ChatMessage], stream: bool) -> dict:
        if not model:
            raise LLMError("No model selected")
        return {
            "model": model,
            "messages": [message.to_api() for message in messages],
            "stream": stream,
        }


def _decode_line(line: str) -> dict:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise LLMError(f"Invalid stream chunk from Ollama: {line[:200]}") from exc
    if not isinstance(data, dict):
        raise LLMError("Stream chunk from Ollama must be a JSON object")
    return data


class ScriptedLLMClient(BaseLLMClient):
    """Replays canned replies from a YAML list, one per request.

    Once the script is exhausted every further request gets an empty reply.
    """

    MODEL_NAME = "scripted"

    def __init__(self, replies: Iterable[str]) -> None:
        self.replies = list(replies)
        self._index = 0
        self.requests: list[list[ChatMessage]] = []

    @classmethod
    def from_file(cls, script_path: Path | None) -> ScriptedLLMClient:
        if script_path is None:
            raise ValueError("ScriptedLLMClient requires a path to a YAML script")
        return cls(_load_replies(Path(script_path)))

    @property
    def remaining(self) -> int:
        return len(self.replies) - self._index

    def list_models(self) -> list[str]:
        return [self.MODEL_NAME]

    def stream_chat(
        self,
        model: str,
        messages: list[ChatMessage],
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        token = cancel_token or CancellationToken()
        self.requests.append(list(messages))
        if self._index >= len(self.replies):
            return
        reply = self.replies[self._index]
        self._index += 1
        for chunk in _CHUNK_RE.findall(reply):
            if token.cancelled:
                return
            yield chunk


def build_llm_client(llm_config: LLMConfig) -> BaseLLMClient:
    llm_type = (llm_config.type or "ollama").lower()
    if llm_type == "scripted":
        return ScriptedLLMClient.from_file(llm_config.script)
    if llm_type == "ollama":
        return OllamaClient(base_url=llm_config.base_url, timeout=llm_config.timeout)
    raise NotImplementedError(f"Unsupported LLM type: {llm_type}")


def _load_replies(path: Path) -> list[str]:
    if not path.exists():
        raise FileNotFoundError(f"Reply script not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or []
    if not isinstance(data, list):
        raise ValueError("Reply script must be a list of replies")
    replies: list[str] = []
    for idx, entry in enumerate(data, start=1):
        if isinstance(entry, dict):
            entry = entry.get("reply")
        if not isinstance(entry, str):
            raise ValueError(f"Invalid reply at position {idx} in {path}: expected text")
        replies.append(entry)
    return replies


__all__ = [
    "BaseLLMClient",
    "OllamaClient",
    "ScriptedLLMClient",
    "build_llm_client",
]
