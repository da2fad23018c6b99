# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Screenshot analysis with a vision-capable language model.

The VisionAnalyzer sends a wizard screenshot together with the submission's
data and the task or failure context, and turns the model's JSON answer into a
``VisionAnalysis``. Parsing is defensive: a malformed answer, or a provider
failure, degrades to a zero-confidence analysis and never raises. Confidence
is what callers gate automatic execution on.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from permitpilot.exceptions import DescriptorParseError
from permitpilot.llm.base import BaseLLMProvider, ImageInput, extract_json_text
from permitpilot.orchestrator.descriptors import descriptor_from_field, submit_reference_from
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    NextAction,
    SubmissionRequest,
    VisionAnalysis,
)
from permitpilot.utils.logger import logger

ANALYSIS_TEMPERATURE = 0.1
ANALYSIS_MAX_TOKENS = 2000
ACTION_MAX_TOKENS = 500
IMAGE_DETAIL = "high"
# A model that states no confidence never clears the threshold
DEFAULT_CONFIDENCE = 0
FALLBACK_RECOMMENDATION = "Manual intervention may be required"

VALID_ACTIONS = ("fill_field", "click_button", "wait", "scroll", "error")

SYSTEM_PROMPT = """You are an expert at analyzing web form screenshots for automation purposes.
You are helping automate HVAC permit submissions on the Phoenix SHAPE PHX portal.

Your task is to:
1. Identify the current step/page in the permit wizard
2. List all visible form fields with their types and current values
3. Give a structured reference for each field
4. Identify any validation errors or loading states
5. Recommend what data to fill based on the permit information provided

IMPORTANT CONTEXT about the Phoenix SHAPE Portal:
- It uses Salesforce Lightning Web Components (LWC)
- Dropdowns use 'lightning-combobox' with role="combobox"
- Checkboxes often use 'lightning-input' with type="checkbox"
- Buttons have role="button" and specific text
- There is a "Whatfix" guidance overlay that may block interactions (ignore it in analysis)
- Steps are numbered 1-9, with a progress indicator usually visible

For references, prefer in this order:
1. {"kind": "role", "role": "combobox", "name": "Field Name"} for dropdowns
2. {"kind": "role", "role": "button", "name": "Button Text"} for buttons
3. {"kind": "label", "name": "Field Label"} for inputs
4. {"kind": "text", "name": "Text Content"} for clickable text
Use {"kind": "raw_selector", "name": "css selector"} only when none of these apply.
Never return JavaScript or code.

Always respond in valid JSON format."""

ACTION_SYSTEM_PROMPT = "You are a form automation expert. Respond only with valid JSON."

USER_PROMPT_TEMPLATE = """Analyze this screenshot of Step {step} of the Phoenix SHAPE PHX permit portal.

PERMIT DATA TO FILL:
{permit_data}
{context}
Respond with JSON in this exact format:
{{
  "stepNumber": {step},
  "stepName": "Name of this step",
  "fields": [
    {{
      "type": "text|select|checkbox|radio|button",
      "label": "Field Label",
      "reference": {{"kind": "role|label|text|placeholder|raw_selector", "role": "combobox", "name": "Field Name"}},
      "value": "recommended value to fill",
      "action": "click|fill|select|check",
      "required": true,
      "currentValue": "already filled value or null"
    }}
  ],
  "submitReference": {{"kind": "role", "role": "button", "name": "Next"}},
  "hasErrors": false,
  "errorMessages": ["list of any error messages visible"],
  "isLoading": false,
  "recommendations": ["list of recommended actions in order"],
  "confidence": 85
}}"""

ACTION_PROMPT_TEMPLATE = """Based on this form analysis and screenshot, what is the SINGLE next action to take?

Current Step: {step_number} - {step_name}
Has Errors: {has_errors}
Is Loading: {is_loading}
Unfilled Required Fields: {unfilled}

Available permit data:
- Valuation Cost: ${valuation}
- Equipment Tonnage: {tonnage} tons
- Contractor: {contractor}
- Address: {address}

Respond in JSON format:
{{
  "action": "fill_field" | "click_button" | "wait" | "scroll" | "error",
  "target": "reference or button name",
  "value": "value to fill if applicable",
  "reason": "brief explanation"
}}"""


def permit_data_lines(request: SubmissionRequest) -> str:
    """Submission fields the model may need, one per line."""
    lines = [
        f"- Installation Type: {request.installation_type.value}",
        f"- Valuation Cost: ${request.valuation_text}",
        f"- Equipment Tonnage: {request.equipment_tonnage:g} tons",
        f"- Street Address: {request.street_address}",
        f"- City: {request.city}, {request.state} {request.zip_code}".rstrip(),
        f"- Contractor: {request.contractor_name}",
        f"- ROC License: {request.roc_license_number}",
        f"- City Privilege License: {request.city_privilege_license}",
    ]
    if request.manufacturer:
        lines.append(f"- Equipment Manufacturer: {request.manufacturer}")
    if request.model_number:
        lines.append(f"- Equipment Model: {request.model_number}")
    if request.btu:
        lines.append(f"- BTU Rating: {request.btu}")
    return "\n".join(lines)


def fallback_analysis(step_number: int, reason: Optional[str] = None) -> VisionAnalysis:
    """Zero-confidence analysis used whenever the model answer is unusable."""
    recommendations = [FALLBACK_RECOMMENDATION]
    if reason:
        logger.warning(f"Vision analysis for step {step_number} degraded: {reason}")
    return VisionAnalysis(
        step_number=step_number,
        step_name=f"Step {step_number}",
        recommendations=recommendations,
        confidence=0,
    )


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    """JSON booleans, or the strings "true"/"yes"; anything else is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes")
    return False


def _as_str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


def parse_analysis(content: str, step_number: int) -> VisionAnalysis:
    """
    Parse a model answer into a ``VisionAnalysis``.

    Missing stepNumber and stepName default from the requested step; a
    missing confidence defaults to 0 and any confidence is clamped to
    0..100. Fields that cannot be expressed as an action descriptor are
    dropped individually. Anything else unparseable yields the
    zero-confidence fallback.
    """
    try:
        parsed = json.loads(extract_json_text(content))
    except ValueError as e:
        return fallback_analysis(step_number, f"invalid JSON ({e})")
    if not isinstance(parsed, dict):
        return fallback_analysis(step_number, "answer is not a JSON object")

    fields: List[ActionDescriptor] = []
    raw_fields = parsed.get("fields") or []
    if not isinstance(raw_fields, list):
        raw_fields = []
    for raw in raw_fields:
        try:
            fields.append(descriptor_from_field(raw))
        except DescriptorParseError as e:
            logger.info(f"Dropped field from vision answer: {e}")

    raw_submit = parsed.get("submitReference", parsed.get("nextButtonSelector"))

    confidence = _as_int(parsed.get("confidence"))
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    confidence = max(0, min(100, confidence))

    return VisionAnalysis(
        step_number=_as_int(parsed.get("stepNumber")) or step_number,
        step_name=str(parsed.get("stepName") or f"Step {step_number}"),
        fields=fields,
        submit_reference=submit_reference_from(raw_submit),
        has_errors=_as_bool(parsed.get("hasErrors")),
        error_messages=_as_str_list(parsed.get("errorMessages")),
        is_loading=_as_bool(parsed.get("isLoading")),
        recommendations=_as_str_list(parsed.get("recommendations")),
        confidence=confidence,
    )


def parse_next_action(content: str) -> NextAction:
    """Parse a next-action answer; anything unusable becomes ``action="error"``."""
    try:
        parsed = json.loads(extract_json_text(content))
    except ValueError as e:
        return NextAction(action="error", reason=f"Unparseable action answer: {e}")
    if not isinstance(parsed, dict):
        return NextAction(action="error", reason="Action answer is not a JSON object")

    action = str(parsed.get("action", "")).lower()
    if action not in VALID_ACTIONS:
        return NextAction(action="error", reason=f"Unknown action: {action or 'missing'}")
    value = parsed.get("value")
    return NextAction(
        action=action,
        target=str(parsed.get("target") or ""),
        value=None if value is None else str(value),
        reason=str(parsed.get("reason") or ""),
    )


class VisionAnalyzer:
    """
    Vision-model analysis of portal screenshots.

    Attributes:
        provider: Any vision-capable ``BaseLLMProvider``

    Example:
        >>> analyzer = VisionAnalyzer(create_provider_from_env())
        >>> analysis = await analyzer.analyze_step(png, 7, request, "Cost field not found")
        >>> analysis.confidence
        85
    """

    def __init__(self, provider: BaseLLMProvider) -> None:
        self.provider = provider
        if not provider.vision_enabled:
            logger.warning(f"Model {provider.model} may not support images; analyses will degrade")

    def build_user_prompt(
        self,
        step_number: int,
        request: SubmissionRequest,
        context: Optional[str] = None,
    ) -> str:
        context_block = f"\nPREVIOUS CONTEXT: {context}\n" if context else ""
        return USER_PROMPT_TEMPLATE.format(
            step=step_number,
            permit_data=permit_data_lines(request),
            context=context_block,
        )

    def _image(self, screenshot: bytes) -> ImageInput:
        return ImageInput.from_bytes(screenshot, media_type="image/png", detail=IMAGE_DETAIL)

    async def analyze_step(
        self,
        screenshot: bytes,
        step_number: int,
        request: SubmissionRequest,
        context: Optional[str] = None,
    ) -> VisionAnalysis:
        """
        Describe the wizard screen in ``screenshot``.

        Never raises: provider errors and unparseable answers produce a
        zero-confidence analysis.
        """
        prompt = self.build_user_prompt(step_number, request, context)
        try:
            response = await self.provider.generate_with_vision(
                prompt=prompt,
                image_data=self._image(screenshot),
                system_prompt=SYSTEM_PROMPT,
                temperature=ANALYSIS_TEMPERATURE,
                max_tokens=ANALYSIS_MAX_TOKENS,
                detail=IMAGE_DETAIL,
            )
        except Exception as e:
            return fallback_analysis(step_number, f"provider error: {e}")

        analysis = parse_analysis(response.content, step_number)
        logger.info(
            f"Vision analysis for step {step_number}: {analysis.step_name} "
            f"({len(analysis.fields)} fields, confidence {analysis.confidence})"
        )
        return analysis

    async def determine_action(
        self,
        screenshot: bytes,
        analysis: VisionAnalysis,
        request: SubmissionRequest,
    ) -> NextAction:
        """Ask for the single next action on the current screen."""
        unfilled = [
            f.reference_name for f in analysis.fields if f.required and not f.current_value
        ]
        prompt = ACTION_PROMPT_TEMPLATE.format(
            step_number=analysis.step_number,
            step_name=analysis.step_name,
            has_errors=analysis.has_errors,
            is_loading=analysis.is_loading,
            unfilled=", ".join(unfilled) or "None",
            valuation=request.valuation_text,
            tonnage=f"{request.equipment_tonnage:g}",
            contractor=request.contractor_name,
            address=f"{request.street_address}, {request.city}, {request.state} {request.zip_code}".rstrip(),
        )
        try:
            response = await self.provider.generate_with_vision(
                prompt=prompt,
                image_data=self._image(screenshot),
                system_prompt=ACTION_SYSTEM_PROMPT,
                temperature=0.0,
                max_tokens=ACTION_MAX_TOKENS,
                detail=IMAGE_DETAIL,
            )
        except Exception as e:
            return NextAction(action="error", reason=f"Action determination failed: {e}")
        return parse_next_action(response.content)
