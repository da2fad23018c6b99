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
Pydantic models for the submission orchestrator.

This module defines the values that flow through a portal run:

- SubmissionRequest: immutable input produced by the intake forms
- SubmissionState: mutable progress, persisted in checkpoints
- StepResult: the only value a step handler may return
- ActionDescriptor: one abstract UI action, produced by vision analysis
  and consumed by the ActionExecutor
- VisionAnalysis: normalized answer of the vision model
- SubmissionResult: terminal outcome reported to the caller
- CheckpointRecord: durable row keyed by submission id

Example:
    >>> request = SubmissionRequest(
    ...     submission_id="sub-1",
    ...     street_address="3825 E CAMELBACK RD",
    ...     zip_code="85018",
    ...     installation_type="ac-furnace",
    ... )
    >>> request.installation_type
    <InstallationType.COMPLETE_SYSTEM: 'complete-system'>
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ==================== Steps ====================


class Step(str, Enum):
    """
    Portal wizard steps in execution order.

    LOGIN through CONFIRMATION are the nine wizard screens (0-9).
    AWAITING_PAYMENT is the pause point for the operator's manual payment.
    """

    LOGIN = "login"
    APPLICANT = "applicant"
    ADDRESS = "address"
    PERMIT_DETAILS = "permit_details"
    PROJECT_DETAILS = "project_details"
    CITY_USE = "city_use"
    WORK_ITEMS = "work_items"
    WORK_DETAILS = "work_details"
    DOCUMENTS = "documents"
    CONFIRMATION = "confirmation"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_COMPLETE = "payment_complete"
    DOWNLOAD_PERMIT = "download_permit"
    COMPLETE = "complete"

    @property
    def position(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def number(self) -> Optional[int]:
        """Wizard screen number (0-9), or None for pause and post-payment steps."""
        i = self.position
        return i if i <= STEP_ORDER.index(Step.CONFIRMATION) else None

    def successor(self) -> "Step":
        if self is Step.COMPLETE:
            return Step.COMPLETE
        return STEP_ORDER[self.position + 1]


STEP_ORDER: List[Step] = list(Step)


class InstallationType(str, Enum):
    """HVAC installation scope of a submission."""

    COMPLETE_SYSTEM = "complete-system"
    COOLING_ONLY = "cooling-only"
    HEATING_ONLY = "heating-only"
    DUCTLESS = "ductless"
    OTHER = "other"

    @classmethod
    def normalize(cls, value: Any) -> "InstallationType":
        """Accept canonical values and the legacy intake-form aliases."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = LEGACY_INSTALLATION_TYPES.get(key, key)
        return cls(key)


LEGACY_INSTALLATION_TYPES: Dict[str, str] = {
    "ac-furnace": "complete-system",
    "ac-only": "cooling-only",
    "furnace-only": "heating-only",
    "mini-split": "ductless",
    "custom": "other",
}


# ==================== Request ====================


class SubmissionRequest(BaseModel):
    """
    Permit request as produced by the intake forms.

    Never mutated by the orchestrator.
    """

    model_config = {"frozen": True}

    submission_id: str = Field(..., min_length=1, description="Stable id of the submission")

    # Contractor
    roc_license_number: str = Field("", description="Registrar of Contractors license")
    city_privilege_license: str = Field("", description="City privilege (sales tax) license")
    contractor_name: str = Field("", description="Contractor business name")
    contractor_phone: str = Field("", description="Contractor phone")
    contractor_email: str = Field("", description="Contractor email")

    # Property
    street_address: str = Field(..., min_length=1, description="Normalized street address")
    city: str = Field("Phoenix", description="City")
    state: str = Field("AZ", description="State")
    zip_code: str = Field("", description="ZIP code")

    # Job
    valuation: float = Field(5000, ge=0, description="Declared job valuation in dollars")
    installation_type: InstallationType = Field(
        InstallationType.COMPLETE_SYSTEM, description="Installation scope"
    )

    # Equipment
    equipment_tonnage: float = Field(3, gt=0, description="Equipment size in tons")
    manufacturer: Optional[str] = Field(None, description="Equipment manufacturer")
    model_number: Optional[str] = Field(None, description="Equipment model number")
    btu: Optional[int] = Field(None, ge=0, description="Heating/cooling BTU rating")

    @field_validator("installation_type", mode="before")
    @classmethod
    def normalize_installation_type(cls, v: Any) -> InstallationType:
        return InstallationType.normalize(v)

    @property
    def valuation_text(self) -> str:
        """Valuation as typed into the portal (no decimals for whole dollars)."""
        if float(self.valuation).is_integer():
            return str(int(self.valuation))
        return f"{self.valuation:.2f}"

    @property
    def short_address(self) -> str:
        return f"{self.street_address}, {self.city}"


# ==================== Actions ====================


class ReferenceKind(str, Enum):
    """How an action descriptor locates its control, most resilient first."""

    ROLE = "role"
    LABEL = "label"
    TEXT = "text"
    PLACEHOLDER = "placeholder"
    RAW_SELECTOR = "raw_selector"


class ElementAction(str, Enum):
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    CLICK = "click"


DEFAULT_ROLES: Dict[ElementAction, str] = {
    ElementAction.FILL: "textbox",
    ElementAction.SELECT: "combobox",
    ElementAction.CHECK: "checkbox",
    ElementAction.CLICK: "button",
}


class ActionDescriptor(BaseModel):
    """
    One abstract UI action.

    ``value`` must be present whenever the action is fill or select and the
    field is required.

    Attributes:
        reference_kind: Lookup strategy
        reference_name: Accessible name, label, text, placeholder or CSS selector
        element_action: Operation to perform
        value: Text to type or option to choose
        required: Whether the portal requires the field
        current_value: What the model saw already filled in
        role: ARIA role for ROLE references (defaults from the action)
        exact: Exact name matching for ROLE/LABEL/TEXT lookups
    """

    reference_kind: ReferenceKind
    reference_name: str = Field(..., min_length=1)
    element_action: ElementAction
    value: Optional[str] = None
    required: bool = False
    current_value: Optional[str] = None
    role: Optional[str] = None
    exact: bool = False

    @model_validator(mode="after")
    def check_value_present(self) -> "ActionDescriptor":
        if (
            self.required
            and self.element_action in (ElementAction.FILL, ElementAction.SELECT)
            and (self.value is None or self.value == "")
        ):
            raise ValueError(
                f"{self.element_action.value} action on required field "
                f"'{self.reference_name}' needs a value"
            )
        if self.reference_kind == ReferenceKind.ROLE and not self.role:
            self.role = DEFAULT_ROLES[self.element_action]
        return self

    @property
    def is_filled(self) -> bool:
        """True when the portal already shows the requested value."""
        return bool(self.current_value) and self.current_value == self.value

    def describe(self) -> str:
        if self.reference_kind == ReferenceKind.ROLE:
            return f"{self.role}[name={self.reference_name!r}]"
        return f"{self.reference_kind.value}={self.reference_name!r}"


class VisionAnalysis(BaseModel):
    """Normalized vision-model description of one wizard screen."""

    step_number: int
    step_name: str
    fields: List[ActionDescriptor] = Field(default_factory=list)
    submit_reference: Optional[ActionDescriptor] = None
    has_errors: bool = False
    error_messages: List[str] = Field(default_factory=list)
    is_loading: bool = False
    recommendations: List[str] = Field(default_factory=list)
    confidence: int = Field(0, ge=0, le=100)

    def recommends_advance(self) -> bool:
        """True if any recommendation asks to move to the next screen."""
        for rec in self.recommendations:
            text = rec.lower()
            if "next" in text or "advance" in text or "continue" in text or "proceed" in text:
                return True
        return False


class NextAction(BaseModel):
    """Single next action suggested for the current screen."""

    action: str = Field("error", description="fill_field, click_button, wait, scroll or error")
    target: str = ""
    value: Optional[str] = None
    reason: str = ""


# ==================== Progress ====================


class StepResult(BaseModel):
    """Outcome of one step handler."""

    success: bool
    next_step: Step
    error: Optional[str] = None

    @classmethod
    def advance(cls, next_step: Step) -> "StepResult":
        return cls(success=True, next_step=next_step)

    @classmethod
    def failed(cls, step: Step, error: str) -> "StepResult":
        return cls(success=False, next_step=step, error=error)


class SubmissionState(BaseModel):
    """
    Mutable orchestration progress for one submission.

    Round-trips through the checkpoint store between runs. ``current_step``
    is always the next step to execute.
    """

    submission_id: str
    current_step: Step = Step.LOGIN
    last_completed_step: Optional[Step] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    screenshots: List[str] = Field(default_factory=list)
    request: Optional[SubmissionRequest] = None

    @classmethod
    def fresh(cls, request: SubmissionRequest) -> "SubmissionState":
        return cls(submission_id=request.submission_id, request=request)

    @property
    def permit_number(self) -> Optional[str]:
        return self.data.get("permit_number")


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING_PAYMENT = "pending_payment"
    FAILED = "failed"


class SubmissionResult(BaseModel):
    """Terminal outcome of ``run`` or ``resume``."""

    submission_id: str
    success: bool
    status: SubmissionStatus
    steps_completed: List[Step] = Field(default_factory=list)
    permit_number: Optional[str] = None
    error: Optional[str] = None
    screenshots: List[str] = Field(default_factory=list)
    analyses: List[VisionAnalysis] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
    step_timings: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == SubmissionStatus.PENDING_PAYMENT


class CheckpointRecord(BaseModel):
    """Durable checkpoint row, one per submission, last write wins."""

    submission_id: str
    current_step: Step
    state: SubmissionState
    updated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_state(cls, state: SubmissionState) -> "CheckpointRecord":
        return cls(
            submission_id=state.submission_id,
            current_step=state.current_step,
            state=state,
        )
