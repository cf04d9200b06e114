"""Shared fixtures: a throwaway database, fake backends and a wired Runtime."""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from polytrans.ai.assistant_clients import AssistantClient, AssistantClientFactory
from polytrans.ai.chat_clients import ChatClient, ChatClientFactory
from polytrans.ai.exceptions import ErrorKind, TranslationError
from polytrans.config import initialize_app
from polytrans.core import database as db
from polytrans.core.stores import ConfigStore, MemoryJobStore
from polytrans.jobs.launchers import JobLauncher
from polytrans.models import ContentBundle, StepResult
from polytrans.providers.base import TranslationProvider
from polytrans.providers.registry import ProviderRegistry
from polytrans.runtime import Runtime, register_builtins


class IdentityProvider(TranslationProvider):
    """Returns the bundle unchanged."""

    provider_id = "identity"
    name = "Identity"

    def translate(self, bundle, source_lang, target_lang, config):
        return StepResult.ok(bundle)


class TaggingProvider(TranslationProvider):
    """Appends the hop's target language to the title, so hop order is visible."""

    provider_id = "tag"
    name = "Tagging"

    def translate(self, bundle, source_lang, target_lang, config):
        return StepResult.ok(bundle.replace(title=f"{bundle.title}[{target_lang}]"))


class BrokenProvider(TranslationProvider):
    """Always fails at the transport level."""

    provider_id = "broken"
    name = "Broken"

    def translate(self, bundle, source_lang, target_lang, config):
        raise TranslationError("connection refused", code="transport_error", kind=ErrorKind.TRANSPORT)


class KeyedProvider(TranslationProvider):
    """Needs a credential that tests usually leave unset."""

    provider_id = "keyed"
    name = "Keyed"
    api_key_setting = "keyed_api_key"

    def translate(self, bundle, source_lang, target_lang, config):
        return StepResult.ok(bundle)


class FakeAssistantClient(AssistantClient):
    """Vendor assistant for ids starting with fake_; replies are queued per test."""

    provider_id = "fakevendor"
    display_name = "FakeVendor"
    api_key_setting = None

    replies: List[Any] = []
    messages: List[str] = []

    @classmethod
    def supports_assistant_id(cls, assistant_id):
        return assistant_id.startswith("fake_")

    def send_message(self, assistant_id, message):
        FakeAssistantClient.messages.append(message)
        if not FakeAssistantClient.replies:
            raise TranslationError("no reply queued", code="transport_error")
        reply = FakeAssistantClient.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeChatClient(ChatClient):
    """Chat vendor whose responses are queued per test; each response is the reply text."""

    provider_id = "fakechat"
    display_name = "FakeChat"
    api_key_setting = "fakechat_api_key"

    responses: List[Any] = []
    calls: List[Dict[str, Any]] = []

    def _send(self, messages, parameters):
        FakeChatClient.calls.append({"messages": messages, "parameters": parameters})
        if not FakeChatClient.responses:
            raise TranslationError("FakeChat API error (500): no response queued", code="transport_error")
        response = FakeChatClient.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return {"text": response, "usage": {"total_tokens": 7}}

    def extract_content(self, response):
        return response.get("text")


class InlineLauncher(JobLauncher):
    """Runs the worker synchronously so tests can poll right after spawning."""

    name = "inline"

    def __init__(self, run):
        self._run = run
        self.tokens: List[str] = []

    def available(self):
        return True

    def launch(self, token):
        self.tokens.append(token)
        self._run(token)
        return True


@pytest.fixture(autouse=True)
def reset_fakes():
    FakeAssistantClient.replies = []
    FakeAssistantClient.messages = []
    FakeChatClient.responses = []
    FakeChatClient.calls = []
    yield


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the database at a fresh file and initialize it."""
    db_file = tmp_path / "polytrans_test.db"
    monkeypatch.setattr(db, "DB_FILE", db_file)
    initialize_app()
    return db_file


@pytest.fixture
def runtime(temp_db):
    providers = ProviderRegistry()
    chat_factory = ChatClientFactory()
    assistant_factory = AssistantClientFactory()
    register_builtins(providers, chat_factory, assistant_factory)
    for provider in (IdentityProvider(), TaggingProvider(), BrokenProvider(), KeyedProvider()):
        providers.register(provider)
    chat_factory.register(FakeChatClient)
    assistant_factory.register(FakeAssistantClient)

    rt = Runtime(
        config_store=ConfigStore(),
        job_store=MemoryJobStore(),
        providers=providers,
        chat_factory=chat_factory,
        assistant_factory=assistant_factory,
        launcher_factory=lambda r: [InlineLauncher(r.worker.run)],
    )
    configure(
        rt,
        enabled_translation_providers=["google", "identity", "tag", "broken", "keyed", "fakevendor", "fakechat"],
        fakechat_api_key="test-key",
        fakechat_model="fake-model",
    )
    return rt


@pytest.fixture
def client(runtime):
    from polytrans.web.app import build_app

    app = build_app(runtime)
    app.config["TESTING"] = True
    return app.test_client()


def configure(runtime, **changes) -> Dict[str, Any]:
    """Merge changes into the stored settings and return the result."""
    config = runtime.load_config()
    config.update(changes)
    runtime.config_store.save(config)
    return runtime.load_config()


def make_post(language="en", title="Hello", content="<p>World</p>", excerpt="Short", meta=None, **kwargs) -> int:
    return db.create_post(language, title=title, content=content, excerpt=excerpt, meta=meta or {}, **kwargs)


def make_managed_assistant(runtime, **overrides) -> int:
    data = {
        "name": "Translator",
        "provider": "fakechat",
        "system_prompt": "Translate from {source_language} to {target_language}.",
        "user_message_template": "{{ title }}",
        "expected_format": "json",
        "api_parameters": {"temperature": 0.2},
    }
    data.update(overrides)
    return runtime.assistants.create(data)


def bundle(**fields) -> ContentBundle:
    defaults = {"title": "Hello", "content": "<p>World</p>", "excerpt": "Short", "meta": {"seo": "hi"}}
    defaults.update(fields)
    return ContentBundle(**defaults)


def json_reply(data: Dict[str, Any]) -> str:
    return json.dumps(data)
