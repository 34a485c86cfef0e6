"""
Tests for reply extraction, parsing and invariant repair.
"""
import dataclasses
import json

import pytest

from price_advisor.core.errors import ParseError
from price_advisor.data.base import EvidenceItem
from price_advisor.schemas import SourceRef
from price_advisor.services.reconciler import (
    clean_reply,
    extract_citations,
    extract_text,
    parse_reply,
    reconcile,
    reconcile_reply,
)

from conftest import responses_envelope


class TestExtractText:
    """Extractor priority: content parts, then output_text, then chat message."""

    def test_content_parts_win(self):
        envelope = responses_envelope('{"a": 1}')
        envelope["output_text"] = "ignored"
        assert extract_text(envelope) == '{"a": 1}'

    def test_output_text_when_no_parts(self):
        assert extract_text({"output": [], "output_text": " {\"a\": 2} "}) == '{"a": 2}'

    def test_chat_message_shape(self):
        envelope = {"choices": [{"message": {"role": "assistant", "content": '{"a": 3}'}}]}
        assert extract_text(envelope) == '{"a": 3}'

    def test_blank_parts_fall_through(self):
        envelope = {
            "output": [{"content": [{"type": "output_text", "text": "   "}]}],
            "output_text": '{"a": 4}',
        }
        assert extract_text(envelope) == '{"a": 4}'

    def test_nothing_found(self):
        assert extract_text({"id": "resp_1"}) == ""
        assert extract_text(None) == ""

    def test_parts_joined_across_items(self):
        envelope = {"output": [
            {"content": [{"text": '{"a":'}]},
            {"content": [{"text": "5}"}]},
        ]}
        assert json.loads(extract_text(envelope)) == {"a": 5}


class TestCitations:
    def test_url_citations_deduped(self):
        ann = [
            {"type": "url_citation", "url": "https://a.in/x", "title": "A"},
            {"type": "url_citation", "url": "https://a.in/x", "title": "A again"},
            {"type": "file_citation", "file_id": "f1"},
            {"type": "url_citation", "url": "https://b.in/y", "title": "B"},
        ]
        refs = extract_citations(responses_envelope("{}", ann))
        assert [r.url for r in refs] == ["https://a.in/x", "https://b.in/y"]
        assert refs[0].title == "A"


class TestParseReply:
    def test_code_fence_and_prose(self):
        text = 'Sure! Here you go:\n```json\n{"market_price_low": 10}\n```\nHope it helps.'
        assert parse_reply(text) == {"market_price_low": 10}

    def test_smart_quotes_normalized(self):
        text = "{“confidence”: “low”}"
        assert parse_reply(text) == {"confidence": "low"}

    def test_clean_reply_isolates_outer_object(self):
        assert clean_reply('x {"a": {"b": 1}} y') == '{"a": {"b": 1}}'

    def test_refusal_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_reply("I cannot help with that.")

    def test_broken_json_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_reply('{"market_price_low": 10,, }')

    def test_array_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_reply("[1, 2, 3]")


class TestRepairs:
    def test_inverted_band_swapped(self, config):
        out = reconcile({"market_price_low": 50000, "market_price_high": 20000}, config)
        assert out.advice.market_price_low == 20000
        assert out.advice.market_price_high == 50000
        assert "band_swapped" in out.repairs

    def test_missing_suggested_weighted_to_upper_half(self, config):
        out = reconcile({"market_price_low": 10000, "market_price_high": 20000}, config)
        assert out.advice.suggested_price == 16000
        assert "suggested_default" in out.repairs

    def test_suggested_clamped_into_band(self, config):
        out = reconcile(
            {"market_price_low": 10000, "market_price_high": 20000, "suggested_price": 25000}, config
        )
        assert out.advice.suggested_price == 20000
        assert "suggested_clamped" in out.repairs

    def test_non_finite_suggested_replaced(self, config):
        out = reconcile(
            {"market_price_low": 10000, "market_price_high": 20000, "suggested_price": "NaN"}, config
        )
        assert 10000 <= out.advice.suggested_price <= 20000

    def test_string_numbers_with_rupee_and_commas(self, config):
        out = reconcile(
            {"market_price_low": "₹1,20,000", "market_price_high": "1,50,000.4", "suggested_price": 135000.6},
            config,
        )
        assert (out.advice.market_price_low, out.advice.market_price_high) == (120000, 150000)
        assert out.advice.suggested_price == 135001

    def test_negative_side_treated_as_missing(self, config):
        out = reconcile({"market_price_low": -5, "market_price_high": 9000}, config)
        assert out.advice.market_price_low == out.advice.market_price_high == 9000
        assert "band_one_sided" in out.repairs

    def test_band_from_suggested_only(self, config):
        out = reconcile({"suggested_price": 10000}, config)
        assert out.advice.market_price_low == 9000
        assert out.advice.market_price_high == 11000
        assert out.advice.suggested_price == 10000

    def test_no_price_at_all_is_parse_error(self, config):
        with pytest.raises(ParseError):
            reconcile({"why": "Looks nice", "confidence": "high"}, config)

    def test_zero_prices_are_not_usable(self, config):
        with pytest.raises(ParseError):
            reconcile({"market_price_low": 0, "market_price_high": 0}, config)

    def test_confidence_default_and_case(self, config):
        assert reconcile({"market_price_low": 1, "market_price_high": 2}, config).advice.confidence == "medium"
        out = reconcile({"market_price_low": 1, "market_price_high": 2, "confidence": " LOW "}, config)
        assert out.advice.confidence == "low"
        out = reconcile({"market_price_low": 1, "market_price_high": 2, "confidence": "very sure"}, config)
        assert out.advice.confidence == "medium"

    def test_high_confidence_needs_evidence(self, config, evidence):
        raw = {"market_price_low": 1, "market_price_high": 2, "confidence": "high"}
        assert reconcile(raw, config).advice.confidence == "medium"
        assert reconcile(raw, config, evidence=evidence, grounded=True).advice.confidence == "high"

    def test_blank_why_gets_fallback(self, config):
        out = reconcile({"market_price_low": 1, "market_price_high": 2, "why": "  "}, config, category="Mobiles")
        assert "mobiles" in out.advice.why
        assert "why_default" in out.repairs

    def test_old_vs_new_numbers_or_null(self, config):
        out = reconcile(
            {"market_price_low": 1, "market_price_high": 2,
             "old_vs_new": {"launch_mrp": "79,900", "typical_used": "unknown"}},
            config,
        )
        assert out.advice.old_vs_new.launch_mrp == 79900
        assert out.advice.old_vs_new.typical_used is None

    def test_sources_capped_at_six(self, config):
        raw = {
            "market_price_low": 100, "market_price_high": 200,
            "sources": [{"title": f"s{i}", "url": f"https://x.in/{i}"} for i in range(10)],
        }
        out = reconcile(raw, config)
        assert len(out.advice.sources) == 6
        assert out.advice.sources[0].url == "https://x.in/0"
        assert "sources_truncated" in out.repairs

    def test_negative_source_limit_keeps_none(self, config):
        raw = {
            "market_price_low": 100, "market_price_high": 200,
            "sources": [{"title": "s", "url": "https://x.in/1"}, {"title": "t", "url": "https://x.in/2"}],
        }
        out = reconcile(raw, dataclasses.replace(config, max_sources=-1))
        assert out.advice.sources == []
        assert "sources_truncated" in out.repairs

    def test_sources_without_url_dropped_and_deduped(self, config):
        raw = {
            "market_price_low": 100, "market_price_high": 200,
            "sources": [{"title": "no url"}, {"title": "a", "url": "https://a.in"},
                        {"title": "a2", "url": "https://a.in"}, "https://b.in", 42],
        }
        out = reconcile(raw, config)
        assert [s.url for s in out.advice.sources] == ["https://a.in", "https://b.in"]

    def test_sources_backfilled_from_citations_then_evidence(self, config, evidence):
        citations = [SourceRef(title="Cited", url="https://cited.in/1")]
        out = reconcile(
            {"market_price_low": 100, "market_price_high": 200, "sources": []},
            config, evidence=evidence, citations=citations,
        )
        assert [s.url for s in out.advice.sources] == [
            "https://cited.in/1", "https://olx.in/item/1", "https://quikr.com/item/2",
        ]
        assert "sources_backfilled" in out.repairs

    def test_alternate_shape_accepted(self, config):
        raw = {
            "market_price": 52000,
            "price_band": {"low": 48000, "high": 56000},
            "suggestion": 50000,
            "confidence": "medium",
            "condition_note": "Minor scratches.",
            "notes": "Priced a bit under median for a quick sale.",
            "old_sold_samples": [{"title": "iPhone 13 sold", "price": 50000, "url": "https://olx.in/s/1"}],
        }
        advice = reconcile(raw, config).advice
        assert (advice.market_price_low, advice.market_price_high, advice.suggested_price) == (48000, 56000, 50000)
        assert advice.why.startswith("Priced a bit under median")
        assert advice.sources[0].url == "https://olx.in/s/1"


class TestInvariants:
    REPLIES = [
        {"market_price_low": 50000, "market_price_high": 20000, "suggested_price": 1},
        {"market_price_low": "3", "suggested_price": "999999"},
        {"market_price_high": 7.6},
        {"suggested_price": 1},
        {"market_price": 10, "confidence": "HIGH"},
        {"price_band": {"low": 900, "high": 100}, "suggestion": -4},
    ]

    @pytest.mark.parametrize("raw", REPLIES)
    def test_band_and_suggestion_always_sane(self, config, raw):
        advice = reconcile(raw, config).advice
        assert advice.market_price_low > 0
        assert advice.market_price_low <= advice.market_price_high
        assert advice.market_price_low <= advice.suggested_price <= advice.market_price_high
        assert advice.confidence in ("low", "medium", "high")
        assert advice.why

    def test_idempotent(self, config, evidence):
        text = '```json\n{"market_price_low": 50000, "market_price_high": 20000, "sources": []}\n```'
        envelope = responses_envelope(text)
        first = reconcile_reply(envelope, config, evidence=evidence)
        second = reconcile_reply(envelope, config, evidence=evidence)
        assert first.advice.model_dump() == second.advice.model_dump()
        assert first.repairs == second.repairs


class TestReconcileReply:
    def test_empty_envelope_is_parse_error(self, config):
        with pytest.raises(ParseError):
            reconcile_reply({"output": []}, config)

    def test_refusal_envelope_is_parse_error(self, config):
        with pytest.raises(ParseError):
            reconcile_reply(responses_envelope("I cannot help with that."), config)

    def test_citations_count_as_grounding(self, config):
        ann = [{"type": "url_citation", "url": "https://cardekho.com/x", "title": "CarDekho"}]
        text = json.dumps({"market_price_low": 1000, "market_price_high": 2000, "confidence": "high"})
        out = reconcile_reply(responses_envelope(text, ann), config)
        assert out.advice.confidence == "high"
        assert out.advice.sources[0].url == "https://cardekho.com/x"

    def test_evidence_without_url_not_backfilled(self, config):
        evidence = [EvidenceItem("no link", "", "snippet")]
        text = json.dumps({"market_price_low": 1000, "market_price_high": 2000})
        out = reconcile_reply(responses_envelope(text), config, evidence=evidence)
        assert out.advice.sources == []
