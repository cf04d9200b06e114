"""
Vendor-native assistant clients.

A vendor-native assistant is configured in the vendor's own console and
addressed by the vendor's id format. AssistantClientFactory finds the vendor
for an id by asking every registered client class, in registration order,
whether it supports that id. Built-ins:
- OpenAI Assistants: ids starting with "asst_"
- Gemini agents: ids starting with "agent_" or "agents/"
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type

from polytrans.ai.exceptions import ErrorKind, TranslationError
from polytrans.ai.http import HttpClient
from polytrans.ai.response_parser import extract_json
from polytrans.config import get_request_timeout
from polytrans.logger import get_logger
from polytrans.models import ContentBundle, StepResult

logger = get_logger(__name__)


def build_translation_prompt(bundle: ContentBundle, source_lang: str, target_lang: str) -> str:
    return (
        f"Please translate the following JSON content from {source_lang} to {target_lang}. "
        "Return only a JSON object with the same structure but translated content:\n\n"
        + json.dumps(bundle.to_dict(), ensure_ascii=False, indent=2)
    )


class AssistantClient(ABC):
    """Capability interface for one vendor's native assistants."""

    provider_id: str = ""
    display_name: str = ""
    api_key_setting: Optional[str] = None

    def __init__(self, api_key: str, base_url: str = "", http_client: Optional[HttpClient] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.http = http_client or HttpClient()

    @classmethod
    @abstractmethod
    def supports_assistant_id(cls, assistant_id: str) -> bool:
        """Whether an id has this vendor's shape."""

    @classmethod
    def from_config(cls, config: Dict[str, Any], http_client: Optional[HttpClient] = None) -> Optional["AssistantClient"]:
        """Build a client from settings, or None when credentials are missing."""
        api_key = config.get(cls.api_key_setting, "") if cls.api_key_setting else ""
        if cls.api_key_setting and not api_key:
            logger.warning(f"{cls.display_name} assistant client not created: API key is not configured")
            return None
        return cls(
            api_key=api_key,
            base_url=config.get(f"{cls.provider_id}_base_url", ""),
            http_client=http_client or HttpClient(timeout=get_request_timeout(config)),
        )

    def get_provider_id(self) -> str:
        return self.provider_id

    @abstractmethod
    def send_message(self, assistant_id: str, message: str) -> str:
        """
        Send one user message to the assistant and return its text reply.

        Raises:
            TranslationError: on transport failures, failed runs or replies without text.
        """

    def execute_assistant(self, assistant_id: str, bundle: ContentBundle,
                          source_lang: str, target_lang: str) -> StepResult:
        """Translate a bundle with the vendor assistant."""
        logger.info(f"{self.display_name} assistant {assistant_id}: translating {source_lang} -> {target_lang}")
        try:
            text = self.send_message(assistant_id, build_translation_prompt(bundle, source_lang, target_lang))
        except TranslationError as e:
            return StepResult.fail(str(e), e.code or "transport_error", e.kind)
        return self._bundle_from_text(text, bundle, assistant_id)

    def _bundle_from_text(self, text: Optional[str], bundle: ContentBundle, assistant_id: str) -> StepResult:
        parsed = extract_json(text)
        if parsed is None:
            logger.error(f"{self.display_name} assistant {assistant_id} returned output that is not a JSON object")
            return StepResult.fail(
                f"{self.display_name} assistant {assistant_id} returned output that is not a JSON object",
                "invalid_output_format",
                ErrorKind.FORMAT,
                raw_response=(text or "")[:500],
            )
        return StepResult.ok(ContentBundle.from_dict(parsed, fallback=bundle))


class OpenAIAssistantClient(AssistantClient):
    """Runs OpenAI Assistants through the threads/runs API."""

    provider_id = "openai"
    display_name = "OpenAI"
    api_key_setting = "openai_api_key"

    def __init__(self, api_key: str, base_url: str = "", http_client: Optional[HttpClient] = None,
                 poll_attempts: int = 30, poll_interval: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(api_key, base_url or "https://api.openai.com/v1", http_client)
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep

    @classmethod
    def supports_assistant_id(cls, assistant_id: str) -> bool:
        return assistant_id.startswith("asst_")

    @classmethod
    def from_config(cls, config, http_client=None):
        client = super().from_config(config, http_client)
        if client is not None:
            client.poll_attempts = int(config.get("assistant_poll_attempts", 30))
            client.poll_interval = float(config.get("assistant_poll_interval", 2.0))
        return client

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
        }

    def send_message(self, assistant_id, message):
        try:
            thread = self.http.post_json(f"{self.base_url}/threads", self.display_name, {}, headers=self._headers)
            thread_id = thread["id"]
            self.http.post_json(
                f"{self.base_url}/threads/{thread_id}/messages",
                self.display_name,
                {"role": "user", "content": message},
                headers=self._headers,
            )
            run = self.http.post_json(
                f"{self.base_url}/threads/{thread_id}/runs",
                self.display_name,
                {"assistant_id": assistant_id},
                headers=self._headers,
            )
            status = self._wait_for_run(thread_id, run["id"], run.get("status", "queued"))
            if status != "completed":
                raise TranslationError(
                    f"OpenAI assistant {assistant_id} run ended with status '{status}'",
                    code="assistant_run_failed",
                )
            messages = self.http.get_json(
                f"{self.base_url}/threads/{thread_id}/messages",
                self.display_name,
                headers=self._headers,
                params={"order": "desc", "limit": 1},
            )
            text = self._latest_text(messages)
        except (KeyError, TypeError, AttributeError) as e:
            raise TranslationError(
                f"Unexpected OpenAI assistants API response ({type(e).__name__}: {e})",
                code="invalid_output_format",
                kind=ErrorKind.FORMAT,
            )

        if text is None:
            raise TranslationError(
                f"OpenAI assistant {assistant_id} returned no text reply",
                code="invalid_output_format",
                kind=ErrorKind.FORMAT,
            )
        return text

    def _wait_for_run(self, thread_id: str, run_id: str, status: str) -> str:
        attempts = 0
        while status in ("queued", "in_progress", "cancelling"):
            if attempts >= self.poll_attempts:
                logger.error(f"OpenAI run {run_id} still '{status}' after {attempts} polls")
                return "timed_out"
            self._sleep(self.poll_interval)
            attempts += 1
            run = self.http.get_json(
                f"{self.base_url}/threads/{thread_id}/runs/{run_id}",
                self.display_name,
                headers=self._headers,
            )
            status = run.get("status", "")
            logger.debug(f"OpenAI run {run_id} status: {status}")
        return status

    @staticmethod
    def _latest_text(messages: Dict[str, Any]) -> Optional[str]:
        for message in messages.get("data") or []:
            if message.get("role") != "assistant":
                continue
            for part in message.get("content") or []:
                if part.get("type") == "text":
                    return (part.get("text") or {}).get("value")
        return None


class GeminiAgentClient(AssistantClient):
    """Runs Gemini agents through generateContent on the agent resource."""

    provider_id = "gemini"
    display_name = "Gemini"
    api_key_setting = "gemini_api_key"

    def __init__(self, api_key: str, base_url: str = "", http_client: Optional[HttpClient] = None):
        super().__init__(api_key, base_url or "https://generativelanguage.googleapis.com/v1beta", http_client)

    @classmethod
    def supports_assistant_id(cls, assistant_id: str) -> bool:
        return assistant_id.startswith("agent_") or assistant_id.startswith("agents/")

    @staticmethod
    def agent_path(assistant_id: str) -> str:
        if assistant_id.startswith("agent_"):
            return "agents/" + assistant_id[len("agent_"):]
        return assistant_id

    def send_message(self, assistant_id, message):
        body = {"contents": [{"role": "user", "parts": [{"text": message}]}]}
        result = self.http.post_json(
            f"{self.base_url}/{self.agent_path(assistant_id)}:generateContent",
            self.display_name,
            body,
            params={"key": self.api_key},
        )
        try:
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError, AttributeError):
            raise TranslationError(
                f"Unexpected Gemini agent response for {assistant_id}",
                code="invalid_output_format",
                kind=ErrorKind.FORMAT,
            )


class AssistantClientFactory:
    """Ordered registry of assistant client classes; the first one supporting an id wins."""

    def __init__(self, http_client_factory: Optional[Callable[[Dict[str, Any]], HttpClient]] = None):
        self._clients: List[Type[AssistantClient]] = []
        self._http_client_factory = http_client_factory

    def register(self, client_cls: Type[AssistantClient]) -> None:
        self._clients.append(client_cls)
        logger.debug(f"Registered assistant client '{client_cls.provider_id}'")

    def registered(self) -> List[Type[AssistantClient]]:
        return list(self._clients)

    def find_client_class(self, assistant_id: str) -> Optional[Type[AssistantClient]]:
        for client_cls in self._clients:
            if client_cls.supports_assistant_id(assistant_id):
                return client_cls
        return None

    def get_provider_id(self, assistant_id: str) -> Optional[str]:
        client_cls = self.find_client_class(assistant_id)
        return client_cls.provider_id if client_cls else None

    def create(self, assistant_id: str, config: Dict[str, Any]) -> Optional[AssistantClient]:
        """Build the client for an id; None when no vendor matches or credentials are missing."""
        client_cls = self.find_client_class(assistant_id)
        if client_cls is None:
            logger.warning(f"No assistant client supports id '{assistant_id}'")
            return None
        http_client = self._http_client_factory(config) if self._http_client_factory else None
        return client_cls.from_config(config, http_client=http_client)
