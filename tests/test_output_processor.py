"""Tests for workflow output actions."""

from __future__ import annotations

import pytest

from conftest import make_post
from polytrans.core import database as db
from polytrans.workflows.output_processor import WorkflowOutputProcessor, parse_post_date, parse_post_status
from polytrans.workflows.variables import build_post_context


@pytest.fixture
def processor(runtime):
    return WorkflowOutputProcessor(runtime.config_store)


@pytest.fixture
def post_context(runtime):
    post_id = make_post("fr", title="Titre", content="<p>Corps</p>", excerpt="Court", meta={"seo": "x"})
    return build_post_context(db.get_post(post_id))


class TestTestMode:
    """Actions in test mode only change the returned context."""

    @pytest.mark.parametrize("action_type, field, expected", [
        ("update_post_title", "title", "NEW"),
        ("update_post_content", "content", "NEW"),
        ("update_post_excerpt", "excerpt", "NEW"),
        ("append_to_post_content", "content", "<p>Corps</p>NEW"),
        ("prepend_to_post_content", "content", "NEW<p>Corps</p>"),
    ])
    def test_field_actions(self, processor, post_context, action_type, field, expected):
        result = processor.process_step_outputs({"ai_response": "NEW"}, [{"type": action_type}], post_context, True)

        assert result["success"]
        assert result["updated_context"][field] == expected
        assert result["updated_context"]["post"][field] == expected
        change = result["changes"][0]
        assert change["target"] == field
        assert change["new_value"] == expected
        assert change["applied"] is False
        # Nothing persisted
        assert db.get_post(post_context["post_id"])[field] == post_context[field]

    def test_meta_action(self, processor, post_context):
        action = {"type": "update_post_meta", "target": "seo_title", "source_variable": "seo_title"}
        result = processor.process_step_outputs({"seo_title": "SEO"}, [action], post_context, True)
        assert result["updated_context"]["meta"] == {"seo": "x", "seo_title": "SEO"}
        assert "seo_title" not in db.get_post(post_context["post_id"])["meta"]

    def test_option_action(self, runtime, processor, post_context):
        action = {"type": "save_to_option", "target": "last_summary"}
        result = processor.process_step_outputs({"ai_response": "S"}, [action], post_context, True)
        assert result["updated_context"]["options"] == {"last_summary": "S"}
        assert runtime.config_store.get("last_summary") is None

    def test_input_context_untouched(self, processor, post_context):
        processor.process_step_outputs({"ai_response": "NEW"}, [{"type": "update_post_title"}], post_context, True)
        assert post_context["title"] == "Titre"


class TestProductionMode:
    """Actions outside test mode are persisted."""

    def test_updates_post_fields(self, processor, post_context):
        actions = [
            {"type": "update_post_title", "source_variable": "title"},
            {"type": "append_to_post_content", "source_variable": "footer"},
        ]
        result = processor.process_step_outputs(
            {"title": "Nouveau", "footer": "<p>Fin</p>"}, actions, post_context, False
        )

        assert result["processed_actions"] == 2
        assert all(change["applied"] for change in result["changes"])
        post = db.get_post(post_context["post_id"])
        assert post["title"] == "Nouveau"
        assert post["content"] == "<p>Corps</p><p>Fin</p>"

    def test_updates_meta(self, processor, post_context):
        action = {"type": "update_post_meta", "target": "seo_title", "source_variable": "seo_title"}
        processor.process_step_outputs({"seo_title": "SEO"}, [action], post_context, False)
        assert db.get_post(post_context["post_id"])["meta"] == {"seo": "x", "seo_title": "SEO"}

    def test_saves_option(self, runtime, processor, post_context):
        action = {"type": "save_to_option", "target": "tags", "source_variable": "tags"}
        processor.process_step_outputs({"tags": ["a", "b"]}, [action], post_context, False)
        assert runtime.config_store.get("tags") == ["a", "b"]

    def test_no_post_in_context(self, processor):
        result = processor.process_step_outputs({"ai_response": "x"}, [{"type": "update_post_title"}], {}, False)
        assert not result["success"]
        assert result["errors"] == ["update_post_title: no post to update in this context"]

    def test_missing_post(self, processor):
        result = processor.process_step_outputs(
            {"ai_response": "x"}, [{"type": "update_post_title"}], {"post_id": 999}, False
        )
        assert result["errors"] == ["update_post_title: post 999 not found"]


class TestValueResolution:
    """Tests for choosing the value an action writes."""

    def test_auto_detect_order(self, processor):
        assert processor.detect_value({"content": "c", "ai_response": "a"}) == "a"
        assert processor.detect_value({"content": "c", "processed_content": "p"}) == "p"
        assert processor.detect_value({"assistant_response": "r", "other": 1}) == "r"
        assert processor.detect_value({"other": 1}) == 1
        assert processor.detect_value({}) is None

    def test_nested_source_variable(self, processor):
        value = processor.resolve_value({"source_variable": "seo.title"}, {"seo": {"title": "T"}}, {})
        assert value == "T"

    def test_source_variable_from_context(self, processor, post_context):
        value = processor.resolve_value({"source_variable": "post.excerpt"}, {}, post_context)
        assert value == "Court"

    def test_missing_variable_is_reported(self, processor, post_context):
        actions = [
            {"type": "update_post_title", "source_variable": "nope"},
            {"type": "update_post_excerpt"},
        ]
        result = processor.process_step_outputs({"ai_response": "E"}, actions, post_context, True)
        assert not result["success"]
        assert result["processed_actions"] == 1
        assert result["errors"] == ["update_post_title: variable 'nope' not found in step output"]

    def test_structured_values_become_json_text(self, processor, post_context):
        result = processor.process_step_outputs(
            {"ai_response": {"a": 1}}, [{"type": "update_post_excerpt"}], post_context, True
        )
        assert result["updated_context"]["excerpt"] == '{"a": 1}'

    def test_unknown_action_type(self, processor, post_context):
        result = processor.process_step_outputs({"ai_response": "x"}, [{"type": "tweet"}], post_context, True)
        assert result["errors"] == ["Unknown output action type 'tweet'"]


class TestValidateActions:
    """Tests for static action validation."""

    def test_valid(self):
        assert WorkflowOutputProcessor.validate_actions([
            {"type": "update_post_title"},
            {"type": "save_to_option", "target": "x"},
        ]) == []

    def test_errors(self):
        errors = WorkflowOutputProcessor.validate_actions([
            {"type": "tweet"},
            {"type": "save_to_option"},
        ])
        assert errors == [
            "Output action 1: unknown type 'tweet'",
            "Output action 2: 'save_to_option' needs a target key",
        ]

    def test_malformed_actions(self):
        assert WorkflowOutputProcessor.validate_actions("update_post_title") == ["Output actions must be a list"]
        assert WorkflowOutputProcessor.validate_actions(["update_post_title"]) == [
            "Output action 1: must be an object"
        ]

    def test_non_object_action_is_skipped_at_run_time(self, processor, post_context):
        result = processor.process_step_outputs({"ai_response": "x"}, ["update_post_title"], post_context, True)
        assert result["processed_actions"] == 0
        assert result["errors"] == ["Unknown output action type 'None'"]


class TestStatusAndDateActions:
    """Tests for update_post_status and update_post_date."""

    @pytest.mark.parametrize("reply, expected", [
        ("publish", "publish"),
        ('"Published"', "publish"),
        ("  Scheduled ", "future"),
        ("pending review", "pending"),
        ("deleted", "trash"),
        ("archived", None),
        (None, None),
    ])
    def test_parse_post_status(self, reply, expected):
        assert parse_post_status(reply) == expected

    @pytest.mark.parametrize("reply, expected", [
        ("2026-03-01 09:30:00", "2026-03-01 09:30:00"),
        ("2026-03-01", "2026-03-01 00:00:00"),
        ("'2026-03-01T09:30:00Z'", "2026-03-01 09:30:00"),
        ("01.03.2026", "2026-03-01 00:00:00"),
        ("next tuesday", None),
        ("", None),
    ])
    def test_parse_post_date(self, reply, expected):
        assert parse_post_date(reply) == expected

    def test_status_in_test_mode(self, processor, post_context):
        result = processor.process_step_outputs(
            {"ai_response": "Published"}, [{"type": "update_post_status"}], post_context, True
        )
        assert result["success"]
        assert result["updated_context"]["post"]["status"] == "publish"
        assert result["changes"][0]["previous_value"] == "draft"
        assert db.get_post(post_context["post_id"])["status"] == "draft"

    def test_status_is_persisted(self, processor, post_context):
        action = {"type": "update_post_status", "source_variable": "status"}
        processor.process_step_outputs({"status": "private"}, [action], post_context, False)
        assert db.get_post(post_context["post_id"])["status"] == "private"

    def test_invalid_status(self, processor, post_context):
        result = processor.process_step_outputs(
            {"ai_response": "archived"}, [{"type": "update_post_status"}], post_context, False
        )
        assert not result["success"]
        assert result["errors"] == [
            "update_post_status: invalid post status 'archived'; "
            "valid statuses are publish, draft, pending, private, trash, future"
        ]
        assert db.get_post(post_context["post_id"])["status"] == "draft"

    def test_date_is_persisted(self, processor, post_context):
        action = {"type": "update_post_date", "source_variable": "publish_on"}
        result = processor.process_step_outputs({"publish_on": "2026-11-02T08:00"}, [action], post_context, False)
        assert result["updated_context"]["post"]["published_at"] == "2026-11-02 08:00:00"
        assert db.get_post(post_context["post_id"])["published_at"] == "2026-11-02 08:00:00"

    def test_invalid_date(self, processor, post_context):
        result = processor.process_step_outputs(
            {"ai_response": "soon"}, [{"type": "update_post_date"}], post_context, True
        )
        assert result["errors"] == ["update_post_date: invalid date 'soon'"]
