"""Tests for workflow execution: ordering, failure policies, step kinds and output actions."""

from __future__ import annotations

import pytest

from conftest import FakeAssistantClient, FakeChatClient, configure, json_reply, make_managed_assistant
from polytrans.ai.exceptions import TranslationError
from polytrans.workflows.steps import (
    JSON_INSTRUCTION,
    StepOutcome,
    WorkflowStepKind,
    clamp_temperature,
    managed_assistant_number,
)


def ai_step(step_id, **overrides):
    step = {
        "id": step_id,
        "name": step_id.upper(),
        "type": "ai_assistant",
        "provider": "fakechat",
        "system_prompt": "You are an editor.",
        "user_message": "{{ title }}",
    }
    step.update(overrides)
    return step


def overloaded():
    return TranslationError("FakeChat API error (500): overloaded", code="transport_error")


@pytest.fixture
def engine(runtime):
    return runtime.workflow_engine


@pytest.fixture
def context():
    return {"post_id": None, "title": "Bonjour", "content": "<p>Le monde</p>", "meta": {}}


def three_steps(**second):
    return [
        ai_step("s1", expected_format="json", output_variables=["summary"]),
        ai_step("s2", expected_format="json", output_variables=["keywords"], user_message="{{ summary }}", **second),
        ai_step("s3", user_message="Keywords: {{ keywords }}"),
    ]


class TestStepOrderingAndFailures:
    """Tests for step order and failure handling."""

    def test_failed_step_does_not_stop_the_run(self, runtime, engine, context):
        FakeChatClient.responses = [json_reply({"summary": "Short summary"}), overloaded(), "Final text"]

        result = engine.execute({"id": "wf_1", "steps": three_steps()}, context, runtime.load_config())

        assert result.steps_executed == 3
        assert [r.success for r in result.step_results] == [True, False, True]
        assert not result.success
        assert result.error.startswith("Step 's2' failed")
        # Step 2 saw step 1's output; step 3 ran without step 2's
        assert result.step_results[1].interpolated_user_message == "Short summary"
        assert result.step_results[2].interpolated_user_message == "Keywords: "
        assert result.final_context["summary"] == "Short summary"
        assert "keywords" not in result.final_context
        assert result.final_context["ai_response"] == "Final text"
        assert set(result.final_context["previous_steps"]) == {"s1", "s3"}

    def test_abort_policy(self, runtime, engine, context):
        config = configure(runtime, workflow_failure_policy="abort")
        FakeChatClient.responses = [json_reply({"summary": "S"}), overloaded(), "never used"]

        result = engine.execute(three_steps(), context, config)

        assert result.steps_executed == 2
        assert not result.success
        assert FakeChatClient.responses == ["never used"]

    def test_step_can_stop_the_run(self, runtime, engine, context):
        FakeChatClient.responses = [json_reply({"summary": "S"}), overloaded(), "never used"]
        result = engine.execute(three_steps(continue_on_error=False), context, runtime.load_config())
        assert result.steps_executed == 2

    def test_step_can_continue_under_abort_policy(self, runtime, engine, context):
        config = configure(runtime, workflow_failure_policy="abort")
        FakeChatClient.responses = [json_reply({"summary": "S"}), overloaded(), "Final"]
        result = engine.execute(three_steps(continue_on_error=True), context, config)
        assert result.steps_executed == 3

    def test_unknown_policy_falls_back_to_continue(self, runtime, engine, context):
        config = configure(runtime, workflow_failure_policy="sometimes")
        FakeChatClient.responses = [json_reply({"summary": "S"}), overloaded(), "Final"]
        assert engine.execute(three_steps(), context, config).steps_executed == 3

    def test_disabled_steps_are_skipped(self, runtime, engine, context):
        FakeChatClient.responses = ["only call"]
        steps = [ai_step("off", enabled=False), ai_step("on")]

        result = engine.execute(steps, context, runtime.load_config())

        assert result.success
        assert [r.step_id for r in result.step_results] == ["on"]
        assert len(FakeChatClient.calls) == 1

    def test_only_disabled_steps(self, runtime, engine, context):
        result = engine.execute([ai_step("off", enabled=False)], context, runtime.load_config())
        assert result.success
        assert result.steps_executed == 0

    def test_unexpected_exception_fails_the_step(self, runtime, engine, context):
        FakeChatClient.responses = [ValueError("boom")]
        result = engine.execute([ai_step("s1")], context, runtime.load_config())
        assert not result.success
        assert result.step_results[0].error == "Unexpected error: boom"

    def test_input_context_is_not_modified(self, runtime, engine, context):
        FakeChatClient.responses = ["Hi"]
        engine.execute([ai_step("s1")], context, runtime.load_config())
        assert "ai_response" not in context
        assert "previous_steps" not in context


class TestValidation:
    """Tests for workflow validation."""

    def test_no_steps(self, runtime, engine, context):
        result = engine.execute({"steps": []}, context, runtime.load_config())
        assert not result.success
        assert result.errors == ["Workflow must have at least one step"]

    def test_structural_errors_are_collected(self, engine):
        errors = engine.validate({
            "steps": [
                ai_step("a"),
                ai_step("a"),
                {"id": "b"},
                {"id": "c", "type": "teleport"},
                ai_step("d", output_actions=[{"type": "update_post_meta"}]),
            ]
        })
        assert "Step 2: duplicate id 'a'" in errors
        assert "Step 3: missing type" in errors
        assert "Step 4: unknown type 'teleport'" in errors
        assert any(error.startswith("Step 5: Output action 1") for error in errors)

    def test_invalid_workflow_calls_nothing(self, runtime, engine, context):
        FakeChatClient.responses = ["unused"]
        result = engine.execute([ai_step("a"), {"id": "b", "type": "teleport"}], context, runtime.load_config())
        assert result.steps_executed == 0
        assert FakeChatClient.calls == []

    def test_invalid_step_config(self, runtime, engine, context):
        result = engine.execute([ai_step("a", system_prompt="")], context, runtime.load_config())
        assert result.step_results[0].error == "Invalid step configuration: System prompt is required"
        assert FakeChatClient.calls == []

    def test_malformed_output_actions(self, engine):
        errors = engine.validate({"steps": [
            ai_step("a", output_actions="update_post_title"),
            ai_step("b", output_actions=["update_post_title"]),
        ]})
        assert errors == [
            "Step 1: Output actions must be a list",
            "Step 2: Output action 1: must be an object",
        ]

    def test_malformed_step_fields(self, engine):
        errors = engine.validate({"steps": [{"id": ["a"], "type": "ai_assistant"}, {"id": "b", "type": ["x"]}]})
        assert errors == ["Step 1: id must be text", "Step 2: unknown type '['x']'"]

    def test_non_text_user_message_fails_the_step(self, runtime, engine, context):
        step = {"id": "a", "type": "predefined_assistant", "assistant_id": "fake_1", "user_message": 5}

        result = engine.execute([step], context, runtime.load_config())

        assert not result.success
        assert result.step_results[0].error == "Invalid step configuration: User message must be text"
        assert FakeAssistantClient.messages == []

    def test_non_text_system_prompt(self, runtime, engine, context):
        result = engine.execute([ai_step("a", system_prompt={"text": "x"})], context, runtime.load_config())
        assert result.step_results[0].error == "Invalid step configuration: System prompt must be text"
        assert FakeChatClient.calls == []

    def test_required_variables(self, runtime, engine, context):
        result = engine.execute(
            [ai_step("a", required_variables=["title", "meta.seo_keywords"])], context, runtime.load_config()
        )
        assert result.step_results[0].error == "Missing required variables: meta.seo_keywords"

    def test_step_types(self, engine):
        assert engine.step_types() == ["ai_assistant", "predefined_assistant", "managed_assistant"]


class TestAiAssistantStep:
    """Tests for inline prompt steps."""

    def test_json_instruction_is_appended(self, runtime, engine, context):
        FakeChatClient.responses = [json_reply({"a": 1})]
        engine.execute([ai_step("a", expected_format="json")], context, runtime.load_config())
        assert FakeChatClient.calls[0]["messages"][0]["content"] == "You are an editor." + JSON_INSTRUCTION

    def test_json_instruction_not_repeated(self, runtime, engine, context):
        FakeChatClient.responses = [json_reply({"a": 1})]
        prompt = "Answer in JSON."
        engine.execute([ai_step("a", expected_format="json", system_prompt=prompt)], context, runtime.load_config())
        assert FakeChatClient.calls[0]["messages"][0]["content"] == prompt

    def test_parameters(self, runtime, engine, context):
        FakeChatClient.responses = ["x", "y"]
        engine.execute(
            [ai_step("a", temperature=1.7, max_tokens="50"), ai_step("b", model="other-model")],
            context,
            runtime.load_config(),
        )
        first, second = (call["parameters"] for call in FakeChatClient.calls)
        assert first["temperature"] == 1.0
        assert first["max_tokens"] == 50
        assert first["model"] == "fake-model"
        assert second["model"] == "other-model"
        assert second["temperature"] == 0.7

    def test_unparseable_json_keeps_raw_text(self, runtime, engine, context):
        FakeChatClient.responses = ["not json at all"]
        result = engine.execute([ai_step("a", expected_format="json")], context, runtime.load_config())
        step = result.step_results[0]
        assert step.success
        assert step.data["ai_response"] == "not json at all"
        assert "_parsing_error" in step.data

    def test_tokens_and_prompts_are_recorded(self, runtime, engine, context):
        FakeChatClient.responses = ["Hi"]
        step = engine.execute([ai_step("a")], context, runtime.load_config()).step_results[0]
        assert step.tokens_used == 7
        assert step.interpolated_user_message == "Bonjour"
        assert step.raw_response == "Hi"

    def test_missing_api_key(self, runtime, engine, context):
        config = configure(runtime, fakechat_api_key="")
        result = engine.execute([ai_step("a")], context, config)
        assert result.step_results[0].error == "FakeChat API key is not configured"

    def test_clamp_temperature(self):
        assert clamp_temperature(-1) == 0.0
        assert clamp_temperature("0.3") == 0.3
        assert clamp_temperature("warm") == 0.7


class TestAssistantSteps:
    """Tests for predefined and managed assistant steps."""

    def test_predefined_assistant(self, runtime, engine, context):
        FakeAssistantClient.replies = ["Nice title"]
        step = {"id": "p", "type": "predefined_assistant", "assistant_id": "fake_9", "user_message": "Improve {title}"}
        result = engine.execute([step], context, runtime.load_config())
        assert result.success
        assert FakeAssistantClient.messages == ["Improve Bonjour"]
        assert result.final_context["ai_response"] == "Nice title"

    def test_predefined_assistant_config(self, engine):
        kind = engine._kinds["predefined_assistant"]
        assert kind.validate_config({"assistant_id": "zzz", "user_message": "x"}) == [
            "Unsupported assistant ID format: zzz"
        ]
        assert kind.validate_config({"assistant_id": "fake_1"}) == ["User message is required"]

    def test_predefined_assistant_failure(self, runtime, engine, context):
        step = {"id": "p", "type": "predefined_assistant", "assistant_id": "fake_9", "user_message": "x"}
        result = engine.execute([step], context, runtime.load_config())
        assert result.step_results[0].error == "no reply queued"

    def test_managed_text_assistant(self, runtime, engine, context):
        assistant_id = make_managed_assistant(runtime, expected_format="text")
        FakeChatClient.responses = ["Hello"]
        step = {"id": "m", "type": "managed_assistant", "assistant_id": f"managed_{assistant_id}"}

        result = engine.execute([step], context, runtime.load_config())

        assert result.success
        assert result.step_results[0].data == {"ai_response": "Hello"}
        assert FakeChatClient.calls[0]["messages"][1]["content"] == "Bonjour"

    def test_managed_json_assistant_with_output_variables(self, runtime, engine, context):
        assistant_id = make_managed_assistant(runtime, output_variables=["seo_title", "seo_description"])
        FakeChatClient.responses = [json_reply({"seo_title": "T"})]
        step = {"id": "m", "type": "managed_assistant", "assistant_id": assistant_id,
                "output_variables": ["seo_title"]}

        result = engine.execute([step], context, runtime.load_config())

        assert result.final_context["seo_title"] == "T"
        assert result.step_results[0].warnings == [
            "Expected output variable 'seo_description' missing from response"
        ]

    def test_managed_assistant_not_found(self, runtime, engine, context):
        step = {"id": "m", "type": "managed_assistant", "assistant_id": 404}
        result = engine.execute([step], context, runtime.load_config())
        assert "not found" in result.step_results[0].error

    def test_managed_assistant_number(self):
        assert managed_assistant_number(7) == 7
        assert managed_assistant_number("7") == 7
        assert managed_assistant_number("managed_7") == 7
        assert managed_assistant_number("seven") == 0
        assert managed_assistant_number(None) == 0


class TestOutputActionsInRuns:
    """Tests for output actions applied between steps."""

    def test_later_steps_see_updated_fields(self, runtime, engine, context):
        FakeChatClient.responses = ["New title", "done"]
        steps = [
            ai_step("a", output_actions=[{"type": "update_post_title"}]),
            ai_step("b", user_message="Title is now {{ title }}"),
        ]

        result = engine.execute(steps, context, runtime.load_config(), test_mode=True)

        assert result.step_results[1].interpolated_user_message == "Title is now New title"
        processing = result.step_results[0].output_processing
        assert processing["processed_actions"] == 1
        assert processing["changes"][0]["applied"] is False
        assert "updated_context" not in processing


class EchoStep(WorkflowStepKind):
    type = "echo"

    def execute(self, step, context, config):
        return StepOutcome(success=True, data={"ai_response": context.get("title")})


class TestCustomStepKinds:
    """Tests for registering step kinds."""

    def test_register_kind(self, runtime, engine, context):
        engine.register_step_kind(EchoStep())
        result = engine.execute([{"id": "e", "type": "echo"}], context, runtime.load_config())
        assert result.success
        assert result.final_context["ai_response"] == "Bonjour"
