"""Async Gemini client implementing the content quality service."""

from __future__ import annotations

import asyncio
import json
import re
from textwrap import dedent
from typing import Any, Dict, List, Mapping, Optional

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError, ResourceExhausted

from src.shared.utils.logging import get_logger

from ..contracts.config import LLMConfig, QualityThresholds
from ..contracts.staging import (
    CorrectionProposal,
    FinalValidation,
    QualityAssessment,
    QualityIssue,
    QualityScores,
)
from ..errors import ExternalServiceError, ParseFailure
from .rate_limiter import RateLimitExceeded, RateLimiter

LOGGER = get_logger(__name__)

_JSON_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
_RETRY_DELAY_PATTERN = re.compile(r"retry in ([0-9.]+)s", re.IGNORECASE)
_MAX_ATTEMPTS = 3
_ASSESSMENT_CHARS = 6000
_CORRECTION_CHARS = 1000
_VALIDATION_CHARS = 800


class GeminiQualityClient:
    """Scores drafts, proposes single-issue corrections and runs final validation."""

    def __init__(
        self,
        config: LLMConfig,
        *,
        thresholds: Optional[QualityThresholds] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.config = config
        self._thresholds = thresholds or QualityThresholds()
        genai.configure(api_key=config.api_key)
        self._rate_limiter = rate_limiter or RateLimiter(max_requests_per_minute=config.max_requests_per_minute)

    async def assess_quality(
        self,
        original_content: str,
        draft_content: str,
        *,
        article_context: Optional[str] = None,
        update_count: int = 0,
    ) -> QualityAssessment:
        prompt = _assessment_prompt(original_content, draft_content, article_context, update_count)
        data = self._extract_json(await self._invoke_model(prompt, temperature=0.1, max_tokens=2000))
        return parse_assessment(data, self._thresholds)

    async def correct_issue(
        self,
        issue: QualityIssue,
        current_content: str,
        *,
        original_content: str,
        article_context: Optional[str] = None,
    ) -> CorrectionProposal:
        prompt = _correction_prompt(issue, current_content, original_content, article_context)
        data = self._extract_json(await self._invoke_model(prompt, temperature=0.2, max_tokens=800))
        return parse_correction(data)

    async def validate_final(
        self,
        original_content: str,
        candidate_content: str,
        *,
        article_context: Optional[str] = None,
        correction_count: int = 0,
    ) -> FinalValidation:
        prompt = _validation_prompt(original_content, candidate_content, article_context, correction_count)
        data = self._extract_json(await self._invoke_model(prompt, temperature=0.1, max_tokens=1000))
        return parse_final_validation(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _invoke_model(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
            "response_mime_type": "application/json",
        }
        timeout = self.config.timeout_seconds

        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                await self._rate_limiter.acquire(timeout=timeout)
            except RateLimitExceeded as exc:
                raise ExternalServiceError("Local rate limiter exhausted", stage="content_quality", retryable=True) from exc

            try:
                model = genai.GenerativeModel(model_name=self.config.model, generation_config=generation_config)
                response = await asyncio.wait_for(asyncio.to_thread(model.generate_content, prompt), timeout=timeout)
                return _response_text(response)
            except ResourceExhausted as exc:
                LOGGER.warning("Gemini rate limit reached (attempt %d): %s", attempt, exc)
                self._rate_limiter.release()
                if attempt >= _MAX_ATTEMPTS:
                    raise ExternalServiceError("Gemini rate limit reached", stage="content_quality", retryable=True) from exc
                await asyncio.sleep(_retry_delay(exc, attempt))
            except GoogleAPIError as exc:
                LOGGER.warning("Gemini API error: %s", exc)
                self._rate_limiter.release()
                raise ExternalServiceError(f"Gemini API error: {exc}", stage="content_quality") from exc
            except asyncio.TimeoutError as exc:
                LOGGER.warning("Gemini request timed out after %ss", timeout)
                raise ExternalServiceError("Gemini request timed out", stage="content_quality", retryable=True) from exc

        raise ExternalServiceError("Gemini request failed", stage="content_quality")  # pragma: no cover

    @staticmethod
    def _extract_json(raw_text: str) -> Dict[str, Any]:
        text = (raw_text or "").strip()
        if text.startswith("```json"):
            text = text[7:].lstrip()
        elif text.startswith("```"):
            text = text[3:].lstrip()
        if text.endswith("```"):
            text = text[:-3].rstrip()
        if not text:
            raise ParseFailure("Gemini returned an empty response", stage="content_quality")

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            match = _JSON_PATTERN.search(text)
            if not match:
                raise ParseFailure("Gemini response contained no JSON object", stage="content_quality", raw=text[:2000])
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError as exc:
                raise ParseFailure("Gemini response JSON was malformed", stage="content_quality", raw=text[:2000]) from exc
        if not isinstance(data, dict):
            raise ParseFailure("Gemini response was not a JSON object", stage="content_quality", raw=text[:2000])
        return data


def _response_text(response: Any) -> str:
    try:
        return getattr(response, "text", "") or ""
    except ValueError:
        # .text raises when the candidate was blocked; fall back to raw parts
        candidates = getattr(response, "candidates", None) or []
        if candidates:
            parts = getattr(getattr(candidates[0], "content", None), "parts", None) or []
            if parts:
                return getattr(parts[0], "text", "") or ""
        return ""


def _retry_delay(exc: ResourceExhausted, attempt: int) -> float:
    match = _RETRY_DELAY_PATTERN.search(str(exc))
    if match:
        try:
            return min(max(float(match.group(1)), 0.5), 10.0)
        except ValueError:
            pass
    return min(5.0, 1.5 * attempt)


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------


def parse_assessment(data: Mapping[str, Any], thresholds: QualityThresholds) -> QualityAssessment:
    """Build an assessment from the service JSON; pass/fail is decided locally."""

    raw_scores = _pick(data, "qualityScores", "quality_scores", "scores")
    if not isinstance(raw_scores, Mapping):
        raise ParseFailure("Quality assessment is missing scores", stage="quality_assessment", raw=json.dumps(data, default=str)[:2000])
    scores = QualityScores(
        grammar=raw_scores.get("grammar", 0.0),
        semantic=raw_scores.get("semantic", 0.0),
        tone=raw_scores.get("tone", 0.0),
        meaning=raw_scores.get("meaning", 0.0),
        overall=raw_scores.get("overall", 0.0),
    )

    issues: List[QualityIssue] = []
    for item in _pick(data, "detectedIssues", "detected_issues", "issues") or []:
        if not isinstance(item, Mapping):
            continue
        try:
            issues.append(
                QualityIssue(
                    type=str(item.get("type") or ""),
                    severity=str(item.get("severity") or ""),
                    description=str(item.get("description") or ""),
                    location=str(item.get("location") or "sentence"),
                    affected_text=_pick(item, "affectedText", "affected_text"),
                    suggested_fix=_pick(item, "suggestedFix", "suggested_fix"),
                    confidence=item.get("confidence", 0.0),
                )
            )
        except ValueError as exc:
            LOGGER.warning("Dropping malformed quality issue: %s", exc)
    return QualityAssessment(scores=scores, thresholds=thresholds, issues=issues)


def parse_correction(data: Mapping[str, Any]) -> CorrectionProposal:
    corrected = _pick(data, "correctedText", "corrected_text")
    return CorrectionProposal(
        success=bool(data.get("success")) and isinstance(corrected, str),
        corrected_text=corrected if isinstance(corrected, str) else None,
        change_summary=_pick(data, "correctionApplied", "correction_applied"),
        reasoning=_pick(data, "reasoning"),
        confidence=data.get("confidence", 0.0),
    )


def parse_final_validation(data: Mapping[str, Any]) -> FinalValidation:
    if "approved" not in data:
        raise ParseFailure("Final validation is missing 'approved'", stage="final_validation", raw=json.dumps(data, default=str)[:2000])
    remaining = _pick(data, "remainingIssues", "remaining_issues") or []
    return FinalValidation(
        approved=data.get("approved") is True,
        confidence=data.get("confidence", 0.0),
        final_score=_pick(data, "finalQualityScore", "final_quality_score") or 0.0,
        recommendation=str(data.get("recommendation") or ""),
        readiness=str(_pick(data, "previewReadiness", "preview_readiness", "readiness") or ""),
        remaining_issues=[dict(item) for item in remaining if isinstance(item, Mapping)],
        editor_notes=_pick(data, "editorNotes", "editor_notes"),
    )


# ----------------------------------------------------------------------
# Prompts
# ----------------------------------------------------------------------


def _assessment_prompt(original: str, draft: str, article_context: Optional[str], update_count: int) -> str:
    instructions = dedent(
        """
        You are a senior copy editor checking an article after live data values were
        substituted into it. Compare the ORIGINAL and the UPDATED text and score the
        UPDATED text on five dimensions, each from 0.0 to 1.0:

        1. grammar: agreement, punctuation, tense and article usage around each update
        2. semantic: logical flow and contextual fit of the new values
        3. tone: voice, formality and emotional register match the original
        4. meaning: the original intent and factual relationships are preserved
        5. overall: article-level coherence and professional quality

        Report every concrete problem you find. Each issue needs:
          type: grammar_error | semantic_break | tone_mismatch | meaning_drift | coherence_issue | flow_disruption
          severity: critical | high | medium | low
          location: sentence | paragraph | article
          affectedText: the exact problematic excerpt copied verbatim from UPDATED
          suggestedFix: how to correct it
          description: one sentence explaining the problem

        Return JSON only:
        {"qualityScores": {"grammar": 0.0, "semantic": 0.0, "tone": 0.0, "meaning": 0.0, "overall": 0.0},
         "detectedIssues": [{"type": "", "severity": "", "location": "", "affectedText": "", "suggestedFix": "", "description": "", "confidence": 0.0}]}
        """
    ).strip()
    return (
        f"{instructions}\n\n"
        f"UPDATES APPLIED: {update_count}\n"
        f"ARTICLE CONTEXT: {article_context or 'Not provided'}\n\n"
        f"ORIGINAL:\n{_truncate(original, _ASSESSMENT_CHARS)}\n\n"
        f"UPDATED:\n{_truncate(draft, _ASSESSMENT_CHARS)}"
    )


def _correction_prompt(
    issue: QualityIssue,
    current: str,
    original: str,
    article_context: Optional[str],
) -> str:
    instructions = dedent(
        """
        Fix exactly one problem in an article. Rewrite only the affected excerpt so the
        problem disappears while meaning, tone and voice stay as in the original.
        Change as little as possible. Do not touch numbers or values that were updated
        unless the issue is about them.

        Return JSON only:
        {"success": true, "correctedText": "replacement for the affected excerpt only",
         "correctionApplied": "what changed", "reasoning": "why", "confidence": 0.0}
        If the excerpt cannot be fixed in isolation return {"success": false, "reasoning": "why"}.
        """
    ).strip()
    return (
        f"{instructions}\n\n"
        f"ISSUE TYPE: {issue.type}\n"
        f"SEVERITY: {issue.severity}\n"
        f"DESCRIPTION: {issue.description}\n"
        f"AFFECTED TEXT: {issue.affected_text}\n"
        f"SUGGESTED FIX: {issue.suggested_fix or 'None'}\n"
        f"ARTICLE CONTEXT: {article_context or 'Not provided'}\n\n"
        f"CURRENT CONTENT:\n{_truncate(current, _CORRECTION_CHARS)}\n\n"
        f"ORIGINAL CONTENT:\n{_truncate(original, _CORRECTION_CHARS)}"
    )


def _validation_prompt(original: str, candidate: str, article_context: Optional[str], correction_count: int) -> str:
    instructions = dedent(
        """
        Perform the final check before an updated article is shown in live preview.
        Judge the FINAL text on its own merits: grammar, coherence, tone, preserved
        meaning and whether earlier corrections introduced new problems. Approve only
        if no critical or high severity problem remains.

        recommendation: approve_for_preview | needs_minor_fixes | requires_major_revision | manual_review_required
        previewReadiness: ready | conditional | not_ready

        Return JSON only:
        {"approved": true, "confidence": 0.0, "finalQualityScore": 0.0,
         "recommendation": "", "previewReadiness": "",
         "remainingIssues": [{"type": "", "severity": "", "description": ""}],
         "editorNotes": ""}
        """
    ).strip()
    return (
        f"{instructions}\n\n"
        f"CORRECTIONS APPLIED: {correction_count}\n"
        f"ARTICLE CONTEXT: {article_context or 'Not provided'}\n\n"
        f"ORIGINAL:\n{_truncate(original, _VALIDATION_CHARS)}\n\n"
        f"FINAL:\n{_truncate(candidate, _VALIDATION_CHARS)}"
    )
