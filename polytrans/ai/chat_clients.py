"""
Chat completion clients for the AI vendors used by managed assistants and
workflow steps:
- OpenAI (chat/completions)
- Claude (messages)
- Gemini (generateContent)

Clients never raise for vendor failures; chat_completion returns a ChatResult.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from polytrans.ai.exceptions import TranslationError
from polytrans.ai.http import HttpClient
from polytrans.config import get_request_timeout
from polytrans.logger import get_logger

logger = get_logger(__name__)

Messages = List[Dict[str, str]]


@dataclass
class ChatResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class ChatClient(ABC):
    """Capability interface for one chat vendor."""

    provider_id: str = ""
    display_name: str = ""
    api_key_setting: Optional[str] = None
    default_base_url: str = ""

    def __init__(self, api_key: str, base_url: str = "", model: str = "",
                 http_client: Optional[HttpClient] = None):
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.model = model
        self.http = http_client or HttpClient()

    @classmethod
    def from_config(cls, config: Dict[str, Any], http_client: Optional[HttpClient] = None) -> Optional["ChatClient"]:
        """Build a client from settings, or None when the vendor's API key is missing."""
        api_key = config.get(cls.api_key_setting, "") if cls.api_key_setting else ""
        if cls.api_key_setting and not api_key:
            logger.warning(f"{cls.display_name} API key is not configured")
            return None
        return cls(
            api_key=api_key,
            base_url=config.get(f"{cls.provider_id}_base_url", ""),
            model=config.get(f"{cls.provider_id}_model", ""),
            http_client=http_client or HttpClient(timeout=get_request_timeout(config)),
        )

    def get_provider_id(self) -> str:
        return self.provider_id

    def chat_completion(self, messages: Messages, parameters: Optional[Dict[str, Any]] = None) -> ChatResult:
        parameters = dict(parameters or {})
        if not parameters.get("model"):
            parameters["model"] = self.model
        try:
            data = self._send(messages, parameters)
        except TranslationError as e:
            logger.error(f"{self.display_name} chat completion failed: {e}")
            return ChatResult(success=False, error=str(e), error_code=e.code or "transport_error")
        return ChatResult(success=True, data=data)

    @abstractmethod
    def _send(self, messages: Messages, parameters: Dict[str, Any]) -> Dict[str, Any]:
        """Perform the vendor request and return the decoded response body."""

    @abstractmethod
    def extract_content(self, response: Dict[str, Any]) -> Optional[str]:
        """Pull the assistant text out of a decoded response body."""

    def extract_tokens_used(self, response: Dict[str, Any]) -> int:
        usage = response.get("usage") or {}
        return int(usage.get("total_tokens", 0) or 0)


class OpenAIChatClient(ChatClient):
    provider_id = "openai"
    display_name = "OpenAI"
    api_key_setting = "openai_api_key"
    default_base_url = "https://api.openai.com/v1"

    def _send(self, messages, parameters):
        payload = {"model": parameters["model"], "messages": messages}
        for key in ("temperature", "max_tokens", "top_p", "response_format"):
            if parameters.get(key) is not None:
                payload[key] = parameters[key]
        logger.debug(f"Calling OpenAI chat completions: {payload['model']}")
        return self.http.post_json(
            f"{self.base_url}/chat/completions",
            self.display_name,
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def extract_content(self, response):
        try:
            return response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


class ClaudeChatClient(ChatClient):
    provider_id = "claude"
    display_name = "Claude"
    api_key_setting = "claude_api_key"
    default_base_url = "https://api.anthropic.com/v1"
    api_version = "2023-06-01"
    default_max_tokens = 4096

    def _send(self, messages, parameters):
        # Claude takes the system prompt as a top-level field, not as a message
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        chat_messages = [m for m in messages if m.get("role") != "system"]

        payload = {
            "model": parameters["model"],
            "max_tokens": parameters.get("max_tokens") or self.default_max_tokens,
            "messages": chat_messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if parameters.get("temperature") is not None:
            payload["temperature"] = parameters["temperature"]

        logger.debug(f"Calling Claude messages API: {payload['model']}")
        return self.http.post_json(
            f"{self.base_url}/messages",
            self.display_name,
            payload,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
            },
        )

    def extract_content(self, response):
        for block in response.get("content") or []:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                return block.get("text")
        return None

    def extract_tokens_used(self, response):
        usage = response.get("usage") or {}
        return int(usage.get("input_tokens", 0) or 0) + int(usage.get("output_tokens", 0) or 0)


class GeminiChatClient(ChatClient):
    provider_id = "gemini"
    display_name = "Gemini"
    api_key_setting = "gemini_api_key"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _send(self, messages, parameters):
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        contents = [
            {
                "role": "model" if m.get("role") == "assistant" else "user",
                "parts": [{"text": m.get("content", "")}],
            }
            for m in messages
            if m.get("role") != "system"
        ]
        payload: Dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}

        generation_config = {}
        if parameters.get("temperature") is not None:
            generation_config["temperature"] = parameters["temperature"]
        if parameters.get("max_tokens"):
            generation_config["maxOutputTokens"] = parameters["max_tokens"]
        if generation_config:
            payload["generationConfig"] = generation_config

        model = parameters["model"]
        logger.debug(f"Calling Gemini generateContent: {model}")
        return self.http.post_json(
            f"{self.base_url}/models/{model}:generateContent",
            self.display_name,
            payload,
            params={"key": self.api_key},
        )

    def extract_content(self, response):
        try:
            return response["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    def extract_tokens_used(self, response):
        usage = response.get("usageMetadata") or {}
        return int(usage.get("totalTokenCount", 0) or 0)


class ChatClientFactory:
    """Registry of chat vendors, keyed by provider id."""

    def __init__(self, http_client_factory: Optional[Callable[[Dict[str, Any]], HttpClient]] = None):
        self._clients: Dict[str, Type[ChatClient]] = {}
        self._http_client_factory = http_client_factory

    def register(self, client_cls: Type[ChatClient]) -> None:
        self._clients[client_cls.provider_id] = client_cls
        logger.debug(f"Registered chat client '{client_cls.provider_id}'")

    def is_registered(self, provider_id: str) -> bool:
        return provider_id in self._clients

    def vendor_ids(self) -> List[str]:
        return list(self._clients)

    def display_name(self, provider_id: str) -> str:
        client_cls = self._clients.get(provider_id)
        return client_cls.display_name if client_cls else provider_id

    def required_credential(self, provider_id: str) -> Optional[str]:
        """Name of the setting holding the vendor's API key, if it needs one."""
        client_cls = self._clients.get(provider_id)
        return client_cls.api_key_setting if client_cls else None

    def create(self, provider_id: str, config: Dict[str, Any]) -> Optional[ChatClient]:
        client_cls = self._clients.get(provider_id)
        if client_cls is None:
            logger.warning(f"No chat client registered for provider '{provider_id}'")
            return None
        http_client = self._http_client_factory(config) if self._http_client_factory else None
        return client_cls.from_config(config, http_client=http_client)
