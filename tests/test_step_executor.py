"""Tests for single-hop execution across the three backend kinds."""

from __future__ import annotations

import pytest

from conftest import FakeAssistantClient, FakeChatClient, bundle, configure, json_reply, make_managed_assistant
from polytrans.ai.exceptions import ErrorKind


@pytest.fixture
def executor(runtime):
    return runtime.step_executor


class TestProviderSteps:
    """Tests for provider_<id> hops."""

    def test_identity_provider(self, runtime, executor):
        source = bundle()
        result = executor.execute_step(source, "en", "fr", "provider_identity", runtime.load_config())
        assert result.success
        assert result.bundle == source
        assert result.hop == "en_to_fr"
        assert result.backend_id == "provider_identity"

    def test_unregistered_provider(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "fr", "provider_ghost", runtime.load_config())
        assert result.error_code == "provider_not_found"
        assert result.kind == ErrorKind.CONFIGURATION

    def test_unconfigured_provider(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "fr", "provider_keyed", runtime.load_config())
        assert result.error_code == "provider_not_configured"

    def test_provider_exception_becomes_result(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "fr", "provider_broken", runtime.load_config())
        assert not result.success
        assert result.error_code == "transport_error"
        assert result.kind == ErrorKind.TRANSPORT
        assert "connection refused" in result.error


class TestManagedSteps:
    """Tests for managed_<n> hops."""

    def test_json_reply_becomes_bundle(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime)
        FakeChatClient.responses = [json_reply({"title": "Bonjour", "content": "<p>Monde</p>"})]

        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", runtime.load_config())

        assert result.success, result.error
        assert result.bundle.title == "Bonjour"
        assert result.bundle.content == "<p>Monde</p>"
        # Keys missing from the reply keep the input values
        assert result.bundle.excerpt == "Short"
        assert result.bundle.meta == {"seo": "hi"}

        messages = FakeChatClient.calls[0]["messages"]
        assert messages[0]["content"] == "Translate from en to fr."
        assert messages[1]["content"] == "Hello"
        assert FakeChatClient.calls[0]["parameters"]["temperature"] == 0.2
        assert FakeChatClient.calls[0]["parameters"]["model"] == "fake-model"

    def test_fenced_json_reply(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime)
        FakeChatClient.responses = ['Here you go:\n```json\n{"title": "Hallo"}\n```']
        result = executor.execute_step(bundle(), "en", "de", f"managed_{assistant_id}", runtime.load_config())
        assert result.success
        assert result.bundle.title == "Hallo"

    def test_text_assistant_is_a_format_error(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime, expected_format="text")
        FakeChatClient.responses = ["Bonjour"]
        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", runtime.load_config())
        assert result.error_code == "invalid_output_format"
        assert result.kind == ErrorKind.FORMAT

    def test_unparseable_reply(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime)
        FakeChatClient.responses = ["I cannot do that"]
        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", runtime.load_config())
        assert result.error_code == "invalid_output_format"
        assert f"managed_{assistant_id}" in result.error

    def test_vendor_failure(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime)
        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", runtime.load_config())
        assert result.error_code == "managed_assistant_execution_failed"
        assert result.kind == ErrorKind.TRANSPORT

    def test_inactive_assistant(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime, status="inactive")
        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", runtime.load_config())
        assert result.error_code == "assistant_inactive"
        assert result.kind == ErrorKind.CONFIGURATION

    def test_missing_vendor_key(self, runtime, executor):
        assistant_id = make_managed_assistant(runtime)
        config = configure(runtime, fakechat_api_key="")
        result = executor.execute_step(bundle(), "en", "fr", f"managed_{assistant_id}", config)
        assert result.error_code == "client_creation_failed"


class TestVendorAssistantSteps:
    """Tests for vendor-native assistant hops."""

    def test_json_reply(self, runtime, executor):
        FakeAssistantClient.replies = [json_reply({"title": "Hola", "excerpt": "Corto"})]
        result = executor.execute_step(bundle(), "en", "es", "fake_1", runtime.load_config())
        assert result.success
        assert result.bundle.title == "Hola"
        assert result.bundle.excerpt == "Corto"
        assert "from en to es" in FakeAssistantClient.messages[0]

    def test_non_json_reply(self, runtime, executor):
        FakeAssistantClient.replies = ["Hola"]
        result = executor.execute_step(bundle(), "en", "es", "fake_1", runtime.load_config())
        assert result.error_code == "invalid_output_format"
        assert result.kind == ErrorKind.FORMAT

    def test_transport_failure(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "es", "fake_1", runtime.load_config())
        assert result.error_code == "transport_error"

    def test_unexpected_exception_becomes_result(self, runtime, executor):
        FakeAssistantClient.replies = [AttributeError("'list' object has no attribute 'get'")]
        result = executor.execute_step(bundle(), "en", "es", "fake_1", runtime.load_config())
        assert not result.success
        assert result.error_code == "step_crashed"
        assert result.kind == ErrorKind.WORKER_CRASH
        assert result.hop == "en_to_es"
        assert "has no attribute" in result.error

    def test_client_without_credentials(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "es", "asst_abc", runtime.load_config())
        assert result.error_code == "client_creation_failed"
        assert "OpenAI assistant client could not be created" in result.error

    def test_unknown_id_shape(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "es", "mystery-id", runtime.load_config())
        assert result.error_code == "unknown_backend_id"
        assert result.kind == ErrorKind.ROUTING

    def test_empty_id(self, runtime, executor):
        result = executor.execute_step(bundle(), "en", "es", "", runtime.load_config())
        assert result.error_code == "unknown_backend_id"
