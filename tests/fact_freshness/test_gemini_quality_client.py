import asyncio
import json

import pytest

from src.functions.fact_freshness.core.contracts.config import LLMConfig, QualityThresholds
from src.functions.fact_freshness.core.contracts.staging import QualityIssue
from src.functions.fact_freshness.core.errors import ParseFailure
from src.functions.fact_freshness.core.llm import gemini_client
from src.functions.fact_freshness.core.llm.gemini_client import (
    GeminiQualityClient,
    parse_assessment,
    parse_correction,
    parse_final_validation,
)


def test_parse_assessment_judges_against_local_thresholds():
    data = {
        "qualityScores": {"grammar": 0.9, "semantic": 0.9, "tone": 0.7, "meaning": 0.9, "overall": 0.85},
        "passesThreshold": True,
        "detectedIssues": [
            {"type": "tone_mismatch", "severity": "Medium", "affectedText": "wildly"},
            {"type": "made_up", "severity": "high"},
        ],
    }

    assessment = parse_assessment(data, QualityThresholds())

    assert not assessment.passes_threshold
    assert assessment.scores.failing_dimensions(assessment.thresholds) == ["tone"]
    assert [issue.type for issue in assessment.issues] == ["tone_mismatch"]
    assert assessment.issues[0].severity == "medium"


def test_parse_assessment_clamps_scores():
    assessment = parse_assessment({"scores": {"grammar": 1.7, "overall": -2}}, QualityThresholds())

    assert assessment.scores.grammar == 1.0
    assert assessment.scores.overall == 0.0


def test_parse_assessment_without_scores_fails():
    with pytest.raises(ParseFailure):
        parse_assessment({"detectedIssues": []}, QualityThresholds())


def test_parse_correction_requires_text():
    assert not parse_correction({"success": True}).success
    proposal = parse_correction({"success": True, "correctedText": "are", "confidence": 0.85})
    assert proposal.success
    assert proposal.corrected_text == "are"


def test_parse_final_validation_normalises_enums():
    validation = parse_final_validation(
        {
            "approved": True,
            "confidence": 0.92,
            "finalQualityScore": 0.88,
            "recommendation": "approve_for_preview",
            "previewReadiness": "something_else",
        }
    )

    assert validation.approved
    assert validation.readiness == "not_ready"
    assert validation.final_score == 0.88


def test_parse_final_validation_requires_approved_flag():
    with pytest.raises(ParseFailure):
        parse_final_validation({"confidence": 0.9})


def test_extract_json_handles_fenced_output():
    text = "```json\n{\"approved\": false}\n```"

    assert GeminiQualityClient._extract_json(text) == {"approved": False}


def test_extract_json_rejects_prose():
    with pytest.raises(ParseFailure):
        GeminiQualityClient._extract_json("I cannot help with that.")


class _FakeModel:
    payload = {}
    prompts = []

    def __init__(self, model_name, generation_config):
        self.model_name = model_name
        self.generation_config = generation_config

    def generate_content(self, prompt):
        _FakeModel.prompts.append(prompt)
        return type("Resp", (), {"text": json.dumps(_FakeModel.payload)})()


def test_correct_issue_calls_model_with_issue_prompt(monkeypatch):
    monkeypatch.setattr(gemini_client.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(gemini_client.genai, "GenerativeModel", _FakeModel)
    _FakeModel.payload = {"success": True, "correctedText": "Analysts are", "confidence": 0.9}
    _FakeModel.prompts = []
    client = GeminiQualityClient(LLMConfig(api_key="test-key"))
    issue = QualityIssue(type="grammar_error", severity="high", affected_text="Analysts is")

    proposal = asyncio.run(
        client.correct_issue(issue, "Analysts is optimistic.", original_content="Analysts is optimistic.")
    )

    assert proposal.corrected_text == "Analysts are"
    assert "Analysts is" in _FakeModel.prompts[0]
