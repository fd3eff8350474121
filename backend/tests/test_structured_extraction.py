"""
CoffeeTime AI Backend: Structured Extraction Unit Tests
=======================================================

What we test:
    ✅ JSON wrapped in prose or code fences is found and parsed
    ✅ No brace span → NoStructuredDataError
    ✅ Unparseable span → MalformedStructuredDataError with the parser message
    ✅ extract_model reports structurally incompatible objects as malformed
    ✅ Loosely typed field values are coerced or dropped, not rejected
"""

import pytest

from coffeetime.exceptions import (
    ExtractionError,
    MalformedStructuredDataError,
    NoStructuredDataError,
)
from coffeetime.schemas.ai import AnalyzeImageResult, ParseVoiceResult
from coffeetime.services.structured_extraction import extract_json, extract_model


class TestExtractJson:
    def test_object_surrounded_by_prose(self):
        assert extract_json('Sure! {"a":1} Thanks.') == {"a": 1}

    def test_code_fenced_object(self):
        text = 'Here you go:\n```json\n{"detected": {"roaster": "Onyx"}, "confidence": 0.8}\n```'
        assert extract_json(text) == {"detected": {"roaster": "Onyx"}, "confidence": 0.8}

    def test_nested_objects_use_outermost_braces(self):
        assert extract_json('{"parsed": {"doseGrams": 18}}') == {"parsed": {"doseGrams": 18}}

    def test_no_braces(self):
        with pytest.raises(NoStructuredDataError, match="No structured data"):
            extract_json("I could not read the label.")

    def test_closing_brace_before_opening(self):
        with pytest.raises(NoStructuredDataError):
            extract_json("} nothing here {")

    def test_unquoted_keys_are_malformed(self):
        with pytest.raises(MalformedStructuredDataError) as exc_info:
            extract_json("{a:1}")
        assert exc_info.value.detail
        assert isinstance(exc_info.value, ExtractionError)

    def test_two_objects_span_is_malformed(self):
        # Accepted limitation of first-to-last brace extraction
        with pytest.raises(MalformedStructuredDataError):
            extract_json('{"a": 1} and also {"b": 2}')


class TestExtractModel:
    def test_analysis_result_defaults_and_coercion(self):
        result = extract_model(
            '{"detected": {"roaster": "Counter Culture"}, "barcode": 123456, "confidence": 1.4}',
            AnalyzeImageResult,
        )
        assert result.detected["roaster"] == "Counter Culture"
        assert result.barcode == "123456"
        assert result.confidence == 1.0
        assert result.sources == []

    def test_null_sections_become_empty(self):
        result = extract_model(
            '{"parsed": null, "matchedEquipment": null, "rawNotes": "smelled great"}',
            ParseVoiceResult,
        )
        assert result.parsed.dose_grams is None
        assert result.matched_equipment.coffee is None
        assert result.raw_notes == "smelled great"

    def test_incompatible_structure_is_malformed(self):
        with pytest.raises(MalformedStructuredDataError, match="AnalyzeImageResult"):
            extract_model('{"detected": ["not", "a", "map"]}', AnalyzeImageResult)

    def test_parsed_section_that_is_not_an_object_is_malformed(self):
        with pytest.raises(MalformedStructuredDataError, match="ParseVoiceResult"):
            extract_model('{"parsed": "18 grams"}', ParseVoiceResult)


class TestLenientValues:
    """
    What we test:
        ✅ Numbers with units read as numbers ("18g", "205 F")
        ✅ Unreadable numbers drop to absent instead of failing the result
        ✅ List-valued notes are joined; unreadable confidence reads as 0 / absent
        ✅ Unknown brew keys survive alongside the known ones
    """

    @pytest.mark.parametrize(
        "raw, expected",
        [("18", 18), ("18g", 18), ("18.5 g", 18.5), ("205 F", 205), ("94°C", 94), (17.2, 17.2)],
    )
    def test_number_with_unit(self, raw, expected):
        result = ParseVoiceResult.model_validate({"parsed": {"doseGrams": raw}})
        assert result.parsed.dose_grams == expected

    @pytest.mark.parametrize("raw", ["about 18", "3:30", "18-20", "lots", [18], {"g": 18}, True])
    def test_unreadable_number_is_absent(self, raw):
        result = ParseVoiceResult.model_validate({"parsed": {"totalTimeSeconds": raw, "rating": 8}})
        assert result.parsed.total_time_seconds is None
        assert result.parsed.rating == 8

    def test_grind_setting_keeps_text(self):
        result = ParseVoiceResult.model_validate({"parsed": {"grindSetting": "2.5 rotations"}})
        assert result.parsed.grind_setting == "2.5 rotations"

    def test_note_lists_are_joined(self):
        result = extract_model(
            '{"parsed": {"tastingNotes": ["cherry", "cocoa"], "techniqueNotes": {"pour": 3}}, '
            '"rawNotes": ["sweet", "clean"]}',
            ParseVoiceResult,
        )
        assert result.parsed.tasting_notes == "cherry, cocoa"
        assert result.parsed.technique_notes is None
        assert result.raw_notes == "sweet, clean"

    def test_unknown_brew_keys_survive(self):
        result = extract_model('{"parsed": {"doseGrams": 18, "milkGrams": 120}}', ParseVoiceResult)

        dumped = result.model_dump(by_alias=True, exclude_none=True)
        assert dumped["parsed"] == {"doseGrams": 18, "milkGrams": 120}

    def test_word_confidence(self):
        analysis = extract_model(
            '{"detected": {"roaster": "Onyx"}, "confidence": "high", "sources": "label"}',
            AnalyzeImageResult,
        )
        voice = extract_model(
            '{"matchedEquipment": {"grinder": {"id": 7, "name": "C40", "confidence": "high"}, '
            '"brewer": "none"}}',
            ParseVoiceResult,
        )

        assert analysis.confidence == 0.0
        assert analysis.sources == ["label"]
        assert voice.matched_equipment.grinder.id == "7"
        assert voice.matched_equipment.grinder.confidence is None
        assert voice.matched_equipment.brewer is None
