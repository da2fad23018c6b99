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
Action descriptor grammar.

Vision models describe controls either with a structured reference object::

    {"reference": {"kind": "role", "role": "combobox", "name": "Use Type"},
     "action": "select", "value": "Single Family", "required": true}

or with a Playwright-style selector string::

    getByRole('combobox', { name: 'Use Type' })
    getByLabel('Project Valuation')
    getByText('Owner is Contractor')
    getByPlaceholder('Search address')
    button:has-text('Next')

Both are parsed here into an ``ActionDescriptor``. Selector strings are
matched against a closed grammar and are never evaluated; anything that looks
like code is rejected with ``DescriptorParseError``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from permitpilot.exceptions import DescriptorParseError
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    ElementAction,
    ReferenceKind,
)
from permitpilot.utils.logger import logger

# Quoted argument: '...' or "..."
_QUOTED = r"(?P<q>['\"])(?P<arg>.*?)(?P=q)"

_ROLE_RE = re.compile(
    r"^(?:page\.)?getByRole\(\s*(?P<rq>['\"])(?P<role>[a-z]+)(?P=rq)\s*"
    r"(?:,\s*\{\s*name\s*:\s*" + _QUOTED +
    r"\s*(?:,\s*exact\s*:\s*(?P<exact>true|false)\s*)?,?\s*\}\s*)?\)$"
)

_SIMPLE_RE = re.compile(
    r"^(?:page\.)?getBy(?P<kind>Label|Text|Placeholder)\(\s*" + _QUOTED +
    r"\s*(?:,\s*\{\s*exact\s*:\s*(?P<exact>true|false)\s*,?\s*\})?\s*\)$"
)

_LOCATOR_RE = re.compile(r"^(?:page\.)?locator\(\s*" + _QUOTED + r"\s*\)$")

# Markers of free-form code rather than a selector
_CODE_MARKERS = ("=>", ";", "await ", "evaluate", "function", "document.", "window.", "page.", "getBy", "locator(")

_SIMPLE_KINDS = {
    "Label": ReferenceKind.LABEL,
    "Text": ReferenceKind.TEXT,
    "Placeholder": ReferenceKind.PLACEHOLDER,
}

_ACTION_BY_FIELD_TYPE = {
    "text": ElementAction.FILL,
    "textarea": ElementAction.FILL,
    "number": ElementAction.FILL,
    "select": ElementAction.SELECT,
    "combobox": ElementAction.SELECT,
    "checkbox": ElementAction.CHECK,
    "radio": ElementAction.CHECK,
    "button": ElementAction.CLICK,
    "link": ElementAction.CLICK,
}

ParsedReference = Tuple[ReferenceKind, str, Optional[str], bool]


def parse_reference(selector: str) -> ParsedReference:
    """
    Parse a selector string into ``(kind, name, role, exact)``.

    Raises:
        DescriptorParseError: If the string is empty or is not one of the
            recognized forms
    """
    text = (selector or "").strip()
    if not text:
        raise DescriptorParseError("Empty selector")

    match = _ROLE_RE.match(text)
    if match:
        name = match.group("arg")
        if not name:
            raise DescriptorParseError(
                f"Role reference without a name: {text}", details={"selector": text}
            )
        return ReferenceKind.ROLE, name, match.group("role"), match.group("exact") == "true"

    match = _SIMPLE_RE.match(text)
    if match:
        return (
            _SIMPLE_KINDS[match.group("kind")],
            match.group("arg"),
            None,
            match.group("exact") == "true",
        )

    match = _LOCATOR_RE.match(text)
    if match:
        text = match.group("arg").strip()

    lowered = text.lower()
    for marker in _CODE_MARKERS:
        if marker.lower() in lowered:
            raise DescriptorParseError(
                f"Rejected selector that is not a plain reference: {selector}",
                details={"selector": selector, "marker": marker},
            )
    if not text:
        raise DescriptorParseError("Empty selector")
    return ReferenceKind.RAW_SELECTOR, text, None, False


def _action_for(field: Dict[str, Any]) -> ElementAction:
    raw_action = field.get("action") or field.get("element_action")
    if raw_action:
        try:
            return ElementAction(str(raw_action).lower())
        except ValueError as e:
            raise DescriptorParseError(
                f"Unsupported element action: {raw_action}", details={"action": raw_action}
            ) from e

    field_type = str(field.get("type", "")).lower()
    if field_type in _ACTION_BY_FIELD_TYPE:
        return _ACTION_BY_FIELD_TYPE[field_type]
    raise DescriptorParseError(f"Cannot infer action for field: {field}")


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    return text


def descriptor_from_field(field: Dict[str, Any]) -> ActionDescriptor:
    """
    Build an ``ActionDescriptor`` from one field object of a model answer.

    Structured ``reference`` objects take precedence over ``selector``
    strings. When neither is present the field's ``label`` is used as a
    label reference (text reference for clicks).

    Raises:
        DescriptorParseError: If the field cannot be expressed as a descriptor
    """
    if not isinstance(field, dict):
        raise DescriptorParseError(f"Field is not an object: {field!r}")

    action = _action_for(field)
    role: Optional[str] = None
    exact = False

    reference = field.get("reference")
    if isinstance(reference, dict):
        try:
            kind = ReferenceKind(str(reference.get("kind", "")).lower())
        except ValueError as e:
            raise DescriptorParseError(
                f"Unknown reference kind: {reference.get('kind')}", details={"field": field}
            ) from e
        name = _optional_text(reference.get("name"))
        role = _optional_text(reference.get("role"))
        exact = bool(reference.get("exact", False))
        if kind == ReferenceKind.RAW_SELECTOR and name:
            kind, name, role, exact = parse_reference(name)
    elif isinstance(reference, str) and reference.strip():
        kind, name, role, exact = parse_reference(reference)
    elif _optional_text(field.get("selector")):
        kind, name, role, exact = parse_reference(str(field["selector"]))
    elif _optional_text(field.get("label")):
        kind = ReferenceKind.TEXT if action == ElementAction.CLICK else ReferenceKind.LABEL
        name = _optional_text(field.get("label"))
    else:
        raise DescriptorParseError(f"Field has no reference: {field}")

    if not name:
        raise DescriptorParseError(f"Field reference has no name: {field}")

    try:
        return ActionDescriptor(
            reference_kind=kind,
            reference_name=name,
            element_action=action,
            value=_optional_text(field.get("value")),
            required=bool(field.get("required", False)),
            current_value=_optional_text(field.get("currentValue", field.get("current_value"))),
            role=role,
            exact=exact,
        )
    except ValidationError as e:
        raise DescriptorParseError(
            f"Invalid action descriptor: {e.errors()[0].get('msg', e)}",
            details={"field": field},
        ) from e


def submit_reference_from(raw: Any) -> Optional[ActionDescriptor]:
    """
    Parse the model's submit/next control reference.

    Returns None when the model named no control or named it in a form the
    grammar rejects; callers decide what a missing control means.
    """
    if isinstance(raw, dict):
        field = {"reference": raw} if "kind" in raw else dict(raw)
        field["action"] = "click"
        try:
            return descriptor_from_field(field)
        except DescriptorParseError as e:
            logger.info(f"Ignored submit reference from vision answer: {e}")
    elif isinstance(raw, str) and raw.strip():
        try:
            kind, name, role, exact = parse_reference(raw)
        except DescriptorParseError as e:
            logger.info(f"Ignored submit reference from vision answer: {e}")
            return None
        return ActionDescriptor(
            reference_kind=kind,
            reference_name=name,
            element_action=ElementAction.CLICK,
            role=role,
            exact=exact,
        )
    return None


def next_button() -> ActionDescriptor:
    """Descriptor for the wizard's advance control."""
    return ActionDescriptor(
        reference_kind=ReferenceKind.ROLE,
        reference_name="Next",
        element_action=ElementAction.CLICK,
        role="button",
        exact=True,
    )
