"""Tests for wire message validation."""

from __future__ import annotations

import json

import pytest

from engine.kernel.protocol import (
    ElementPatch,
    IntentCommandResult,
    IntentResult,
    IntentTrigger,
    KnownIntent,
    NavPageGenerate,
    PreviewNav,
    ProtocolError,
    ResearchOpen,
    decode_message,
    known_intent,
    parse_message,
)


class TestDecode:
    def test_intent_trigger_from_json(self):
        msg = decode_message(
            json.dumps(
                {"type": "INTENT_TRIGGER", "intent": "booking.create", "payload": {"date": "2026-05-01"}, "requestId": "r1"}
            )
        )
        assert isinstance(msg, IntentTrigger)
        assert msg.intent == "booking.create"
        assert msg.payload == {"date": "2026-05-01"}
        assert msg.request_id == "r1"

    def test_command_result_from_dict(self):
        msg = decode_message({"type": "INTENT_COMMAND_RESULT", "command": "booking.scroll", "requestId": "c1"})
        assert isinstance(msg, IntentCommandResult)
        assert msg.handled is False

    def test_preview_nav_defaults(self):
        msg = decode_message({"type": "preview-nav", "path": "/cart.html", "label": "View Cart"})
        assert isinstance(msg, PreviewNav)
        assert msg.intent == "nav.goto"
        assert msg.context is None

    def test_nav_page_generate(self):
        msg = decode_message(
            {"type": "NAV_PAGE_GENERATE", "pageName": "/checkout.html", "navLabel": "Checkout", "requestId": "n1"}
        )
        assert isinstance(msg, NavPageGenerate)
        assert msg.page_name == "/checkout.html"
        assert msg.page_context == {}

    def test_research_open(self):
        msg = decode_message({"type": "RESEARCH_OPEN", "payload": {"query": "sourdough hydration"}})
        assert isinstance(msg, ResearchOpen)
        assert msg.payload.query == "sourdough hydration"

    def test_extra_fields_are_ignored(self):
        msg = decode_message({"type": "INTENT_TRIGGER", "intent": "cart.add", "requestId": "r", "html": "<script>"})
        assert not hasattr(msg, "html")


class TestRejects:
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            json.dumps({"type": "SOMETHING_ELSE"}),
            json.dumps({"intent": "cart.add"}),
            json.dumps({"type": "INTENT_TRIGGER", "intent": "cart.add"}),
            json.dumps({"type": "INTENT_TRIGGER", "intent": "Not An Intent", "requestId": "r"}),
            json.dumps({"type": "INTENT_TRIGGER", "intent": "cart.add", "requestId": ""}),
            json.dumps({"type": "RESEARCH_OPEN", "payload": {"query": ""}}),
        ],
    )
    def test_malformed_messages_raise(self, raw):
        with pytest.raises(ProtocolError):
            decode_message(raw)

    def test_oversized_message_is_rejected(self):
        raw = json.dumps({"type": "INTENT_TRIGGER", "intent": "cart.add", "requestId": "r", "payload": {"x": "a" * 500}})
        with pytest.raises(ProtocolError, match="too large"):
            decode_message(raw, max_bytes=100)

    def test_oversized_dict_is_rejected(self):
        raw = {"type": "INTENT_TRIGGER", "intent": "cart.add", "requestId": "r", "payload": {"x": "a" * 500}}
        with pytest.raises(ProtocolError, match="too large"):
            decode_message(raw, max_bytes=100)

    def test_parse_message_returns_none_and_logs(self, caplog):
        assert parse_message("{oops") is None
        assert "dropped message" in caplog.text


class TestOutbound:
    def test_intent_result_serializes_camel_case(self):
        wire = IntentResult(request_id="r1", success=True, message="ok", data={"id": 1}).to_wire()
        assert wire == {"type": "INTENT_RESULT", "requestId": "r1", "success": True, "message": "ok", "data": {"id": 1}}

    def test_failure_result_omits_data(self):
        wire = IntentResult(request_id="r1", success=False, message="nope", error="nope").to_wire()
        assert "data" not in wire
        assert wire["error"] == "nope"

    def test_element_patch_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            ElementPatch.model_validate({"html": "<b>x</b>"})

    def test_empty_patch_detected(self):
        assert ElementPatch().is_empty()
        assert not ElementPatch(text="hi").is_empty()


class TestKnownIntent:
    def test_known(self):
        assert known_intent("booking.scroll") is KnownIntent.BOOKING_SCROLL

    def test_unknown(self):
        assert known_intent("donate.now") is None
