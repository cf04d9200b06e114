"""Tests for the HTTP transport and the vendor clients built on it."""

from __future__ import annotations

import json

import httpx
import pytest

from polytrans.ai.assistant_clients import GeminiAgentClient, OpenAIAssistantClient
from polytrans.ai.chat_clients import ClaudeChatClient, GeminiChatClient, OpenAIChatClient
from polytrans.ai.exceptions import ErrorKind, TranslationError
from polytrans.ai.http import HttpClient, describe_http_error, get_httpx_timeout
from polytrans.models import ContentBundle
from polytrans.providers.google import GoogleProvider, split_into_chunks


class Recorder:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def client(self):
        return HttpClient(timeout=5, transport=httpx.MockTransport(self))

    def body(self, index=0):
        return json.loads(self.requests[index].content)


def timeout():
    return httpx.ReadTimeout("read timed out")


class TestHttpClient:
    """Tests for retries and error mapping."""

    def test_retries_once_after_timeout(self):
        recorder = Recorder(timeout(), httpx.Response(200, json={"ok": True}))
        assert recorder.client().post_json("https://api.test/x", "Test", {}) == {"ok": True}
        assert len(recorder.requests) == 2

    def test_gives_up_after_two_timeouts(self):
        recorder = Recorder(timeout(), timeout(), httpx.Response(200, json={}))
        with pytest.raises(TranslationError) as excinfo:
            recorder.client().post_json("https://api.test/x", "Test", {})
        assert excinfo.value.code == "transport_error"
        assert excinfo.value.kind == ErrorKind.TRANSPORT
        assert "after 2 attempts" in str(excinfo.value)
        assert len(recorder.requests) == 2

    def test_retries_server_errors(self):
        recorder = Recorder(httpx.Response(503, text="busy"), httpx.Response(200, json={"ok": 1}))
        assert recorder.client().get_json("https://api.test/x", "Test") == {"ok": 1}

    def test_retries_connection_errors(self):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.Response(200, json={}))
        assert recorder.client().get_json("https://api.test/x", "Test") == {}

    def test_client_errors_are_not_retried(self):
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "bad key"}}))
        with pytest.raises(TranslationError) as excinfo:
            recorder.client().post_json("https://api.test/x", "Test", {})
        assert str(excinfo.value) == "Test API error (401): bad key"
        assert excinfo.value.details["status_code"] == 401
        assert len(recorder.requests) == 1

    def test_non_json_body(self):
        recorder = Recorder(httpx.Response(200, text="<html>"))
        with pytest.raises(TranslationError) as excinfo:
            recorder.client().get_json("https://api.test/x", "Test")
        assert excinfo.value.code == "invalid_output_format"
        assert excinfo.value.kind == ErrorKind.FORMAT


class TestHelpers:
    """Tests for transport helpers."""

    def test_describe_error_variants(self):
        assert describe_http_error(httpx.Response(400, json={"error": "nope"}), "X") == "X API error (400): nope"
        assert describe_http_error(httpx.Response(502, text="Bad gateway"), "X") == "X API error (502): Bad gateway"
        message = describe_http_error(httpx.Response(500, json={"detail": "d"}), "X")
        assert message.startswith("X API error (500): ")
        assert '"detail"' in message

    def test_timeout_from_number(self):
        timeout = get_httpx_timeout(120)
        assert timeout.read == 120
        assert timeout.connect == 10.0

    def test_timeout_from_dict(self):
        assert get_httpx_timeout({"read": 3}).read == 3


class TestChatClients:
    """Tests for vendor request and response shapes."""

    def test_openai(self):
        recorder = Recorder(httpx.Response(200, json={
            "choices": [{"message": {"content": "Hi"}}],
            "usage": {"total_tokens": 12},
        }))
        client = OpenAIChatClient(api_key="sk", model="gpt-test", http_client=recorder.client())

        result = client.chat_completion([{"role": "user", "content": "Hello"}], {"temperature": 0.5})

        assert result.success
        assert client.extract_content(result.data) == "Hi"
        assert client.extract_tokens_used(result.data) == 12
        assert recorder.body() == {"model": "gpt-test", "messages": [{"role": "user", "content": "Hello"}],
                                   "temperature": 0.5}
        assert recorder.requests[0].headers["Authorization"] == "Bearer sk"

    def test_claude_moves_system_prompt(self):
        recorder = Recorder(httpx.Response(200, json={
            "content": [{"type": "text", "text": "Hi"}],
            "usage": {"input_tokens": 3, "output_tokens": 4},
        }))
        client = ClaudeChatClient(api_key="ck", model="claude-test", http_client=recorder.client())

        result = client.chat_completion(
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hello"}]
        )

        body = recorder.body()
        assert body["system"] == "Be brief."
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["max_tokens"] == 4096
        assert recorder.requests[0].headers["x-api-key"] == "ck"
        assert client.extract_tokens_used(result.data) == 7

    def test_gemini(self):
        recorder = Recorder(httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "Hi"}]}}],
            "usageMetadata": {"totalTokenCount": 5},
        }))
        client = GeminiChatClient(api_key="gk", model="gemini-test", http_client=recorder.client())

        result = client.chat_completion(
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hello"}],
            {"max_tokens": 100},
        )

        request = recorder.requests[0]
        assert request.url.path.endswith("/models/gemini-test:generateContent")
        assert request.url.params["key"] == "gk"
        body = recorder.body()
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["generationConfig"] == {"maxOutputTokens": 100}
        assert client.extract_content(result.data) == "Hi"

    def test_failure_is_a_result(self):
        recorder = Recorder(httpx.Response(400, json={"error": {"message": "bad model"}}))
        client = OpenAIChatClient(api_key="sk", model="x", http_client=recorder.client())
        result = client.chat_completion([{"role": "user", "content": "Hello"}])
        assert not result.success
        assert result.error == "OpenAI API error (400): bad model"

    def test_missing_key(self):
        assert OpenAIChatClient.from_config({"openai_api_key": ""}) is None


def openai_assistant_routes(final_status="completed", reply='{"title": "Bonjour"}'):
    def handler(request):
        path = request.url.path
        if request.method == "POST" and path.endswith("/threads"):
            return httpx.Response(200, json={"id": "t1"})
        if request.method == "POST" and path.endswith("/threads/t1/messages"):
            return httpx.Response(200, json={"id": "m1"})
        if request.method == "POST" and path.endswith("/threads/t1/runs"):
            return httpx.Response(200, json={"id": "r1", "status": "queued"})
        if path.endswith("/threads/t1/runs/r1"):
            return httpx.Response(200, json={"id": "r1", "status": final_status})
        if request.method == "GET" and path.endswith("/threads/t1/messages"):
            return httpx.Response(200, json={"data": [
                {"role": "assistant", "content": [{"type": "text", "text": {"value": reply}}]},
            ]})
        return httpx.Response(404, json={"error": "unexpected"})
    return handler


def openai_assistant(handler, **kwargs):
    http = HttpClient(timeout=5, transport=httpx.MockTransport(handler))
    return OpenAIAssistantClient(api_key="sk", http_client=http, sleep=lambda seconds: None, **kwargs)


class TestAssistantClients:
    """Tests for vendor-native assistant clients."""

    def test_openai_run(self):
        client = openai_assistant(openai_assistant_routes())
        result = client.execute_assistant("asst_1", ContentBundle(title="Hello", excerpt="E"), "en", "fr")
        assert result.success
        assert result.bundle.title == "Bonjour"
        assert result.bundle.excerpt == "E"

    def test_openai_failed_run(self):
        client = openai_assistant(openai_assistant_routes(final_status="failed"))
        with pytest.raises(TranslationError) as excinfo:
            client.send_message("asst_1", "Hello")
        assert excinfo.value.code == "assistant_run_failed"

    def test_openai_run_never_finishes(self):
        client = openai_assistant(openai_assistant_routes(final_status="in_progress"), poll_attempts=2)
        with pytest.raises(TranslationError) as excinfo:
            client.send_message("asst_1", "Hello")
        assert "timed_out" in str(excinfo.value)

    def test_openai_reply_without_json(self):
        client = openai_assistant(openai_assistant_routes(reply="Bonjour"))
        result = client.execute_assistant("asst_1", ContentBundle(title="Hello"), "en", "fr")
        assert result.error_code == "invalid_output_format"

    @pytest.mark.parametrize("path, body", [
        ("/threads/t1/runs/r1", ["not", "a", "run"]),
        ("/threads/t1/messages", {"data": ["not a message"]}),
    ])
    def test_openai_malformed_response(self, path, body):
        routes = openai_assistant_routes()

        def handler(request):
            if request.method == "GET" and request.url.path.endswith(path):
                return httpx.Response(200, json=body)
            return routes(request)

        client = openai_assistant(handler)
        with pytest.raises(TranslationError) as excinfo:
            client.send_message("asst_1", "Hello")
        assert excinfo.value.code == "invalid_output_format"
        assert excinfo.value.kind == ErrorKind.FORMAT
        assert "AttributeError" in str(excinfo.value)

    def test_gemini_agent(self):
        recorder = Recorder(httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": '{"title": "Hola"}'}]}}],
        }))
        client = GeminiAgentClient(api_key="gk", http_client=recorder.client())

        result = client.execute_assistant("agent_42", ContentBundle(title="Hello"), "en", "es")

        assert result.bundle.title == "Hola"
        assert recorder.requests[0].url.path.endswith("/agents/42:generateContent")

    def test_id_shapes(self):
        assert OpenAIAssistantClient.supports_assistant_id("asst_x")
        assert GeminiAgentClient.supports_assistant_id("agents/x")
        assert not GeminiAgentClient.supports_assistant_id("asst_x")
        assert GeminiAgentClient.agent_path("agents/7") == "agents/7"


class TestGoogleProvider:
    """Tests for the Google Translate provider."""

    def test_translates_every_text_field(self):
        def handler(request):
            text = request.url.params["q"]
            return httpx.Response(200, json=[[[f"{text}!", text, None]], None, "en"])

        provider = GoogleProvider(HttpClient(transport=httpx.MockTransport(handler)))
        bundle = ContentBundle(title="Hi", content="Body", excerpt="", meta={"seo": "S", "n": 3})

        result = provider.translate(bundle, "en", "fr", {})

        assert result.success
        assert result.bundle.title == "Hi!"
        assert result.bundle.content == "Body!"
        assert result.bundle.excerpt == ""
        assert result.bundle.meta == {"seo": "S!", "n": 3}

    def test_unexpected_shape(self):
        provider = GoogleProvider(HttpClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"error": "x"})
        )))
        result = provider.translate(ContentBundle(title="Hi"), "en", "fr", {})
        assert result.error_code == "invalid_output_format"

    def test_join_segments(self):
        data = [[["Bon", "Good", None], ["jour", "day", None], [None, None, "x"]]]
        assert GoogleProvider._join_segments(data) == "Bonjour"

    def test_split_into_chunks(self):
        text = "\n\n".join(["a" * 40] * 5)
        chunks = split_into_chunks(text, limit=100)
        assert all(len(chunk) <= 100 for chunk in chunks)
        assert "\n\n".join(chunks) == text
