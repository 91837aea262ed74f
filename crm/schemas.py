"""Request schemas.

Every JSON body is validated into one of these models before a route
touches the database. A pydantic.ValidationError raised here is turned
into a 400 response with a per-field error list by create_app().
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from flask import request
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from crm.models.email_template import EmailTemplate
from crm.models.lead import Lead

# Sanity check only, not RFC 5322
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

Priority = Literal["Low", "Medium", "High"]


def _match_choice(value, choices, label):
    """Case-insensitive match against a fixed list, returning the canonical spelling."""
    if value is None:
        return value
    for choice in choices:
        if str(value).strip().lower() == choice.lower():
            return choice
    raise ValueError(f"Invalid {label} '{value}'. Must be one of: {', '.join(choices)}")


def _blank_to_none(data):
    if isinstance(data, dict):
        return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
    return data


def _split_list(value):
    """Accept ["Mon", "Tue"], "Mon, Tue", or None."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class _Schema(BaseModel):
    # Spreadsheets and JSON clients send zip codes and phones as numbers
    model_config = ConfigDict(
        extra="ignore", str_strip_whitespace=True, coerce_numbers_to_str=True
    )

    @model_validator(mode="before")
    @classmethod
    def _blank_strings_to_none(cls, data):
        return _blank_to_none(data)


class LeadPayload(_Schema):
    """Create / full-update body for a lead (also used per import row)."""

    dispensary_name: str = Field(..., min_length=1, max_length=255)
    contact_date: Optional[date] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    dispensary_number: Optional[str] = None
    contact_name: Optional[str] = None
    contact_position: Optional[str] = None
    manager_name: Optional[str] = None
    owner_name: Optional[str] = None
    contact_number: Optional[str] = None
    contact_email: Optional[str] = None
    website: Optional[str] = None
    current_pos_system: Optional[str] = None
    deal_value: Optional[float] = Field(None, ge=0)
    priority: Optional[str] = None
    stage: Optional[str] = None
    callback_days: Optional[List[str]] = None
    callback_time_slots: Optional[List[str]] = None
    callback_time_from: Optional[str] = None
    callback_time_to: Optional[str] = None
    callback_date: Optional[date] = None
    notes: Optional[str] = None
    source: Optional[str] = None

    @field_validator("contact_email")
    @classmethod
    def _check_email(cls, v):
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("deal_value", mode="before")
    @classmethod
    def _parse_money(cls, v):
        # Imports arrive as "$1,200" or "1200.00"
        if isinstance(v, str):
            v = v.replace("$", "").replace(",", "").strip()
        return v

    @field_validator("priority")
    @classmethod
    def _check_priority(cls, v):
        return _match_choice(v, Lead.PRIORITIES, "priority")

    @field_validator("stage")
    @classmethod
    def _check_stage(cls, v):
        return _match_choice(v, Lead.STAGES, "stage")

    @field_validator("callback_days", "callback_time_slots", mode="before")
    @classmethod
    def _listify(cls, v):
        return _split_list(v)


class StageUpdate(_Schema):
    stage: str
    reason: Optional[str] = None

    @field_validator("stage")
    @classmethod
    def _check_stage(cls, v):
        return _match_choice(v, Lead.STAGES, "stage")


class CadenceUpdate(_Schema):
    step: int = Field(..., ge=0, le=5, validation_alias=AliasChoices("step", "cadence_step"))


class HistoryCreate(_Schema):
    contact_method: Literal["Phone", "Email", "In-Person", "Text", "Other"] = "Phone"
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    outcome: Optional[str] = None
    next_callback: Optional[datetime] = None

    @field_validator("contact_method", mode="before")
    @classmethod
    def _default_method(cls, v):
        return v or "Phone"


class MergeRequest(_Schema):
    keep_id: str = Field(..., min_length=1)
    merge_id: str = Field(..., min_length=1)
    fields_from_merge: List[str] = Field(default_factory=list)


class BulkImportRequest(_Schema):
    leads: List[Dict[str, Any]] = Field(..., min_length=1)
    source: Optional[str] = None


class BulkStageRequest(_Schema):
    lead_ids: List[str] = Field(..., min_length=1)
    stage: str
    reason: Optional[str] = None

    @field_validator("stage")
    @classmethod
    def _check_stage(cls, v):
        return _match_choice(v, Lead.STAGES, "stage")


class CheckDuplicatesRequest(_Schema):
    names: List[str] = Field(default_factory=list)


class ColumnMapRequest(_Schema):
    headers: List[str] = Field(..., min_length=1)


class ImportPreviewRequest(_Schema):
    text: str = Field(..., min_length=1)
    has_headers: bool = True


class TaskUpdate(_Schema):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: date
    due_time: Optional[str] = None
    priority: Priority = "Medium"

    @field_validator("due_time")
    @classmethod
    def _check_time(cls, v):
        if v is not None and not TIME_RE.match(v):
            raise ValueError("Time must be HH:MM")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, v):
        return v or "Medium"


class TaskCreate(TaskUpdate):
    lead_id: str = Field(..., min_length=1)


class TemplatePayload(_Schema):
    name: str = Field(..., min_length=1, max_length=255)
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1)
    category: str = "General"
    cadence_step: Optional[int] = Field(None, ge=1, le=5)
    delay_days: int = Field(0, ge=0)
    is_default: bool = False

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, v):
        return _match_choice(v or "General", EmailTemplate.CATEGORIES, "category")


class EmailSendRequest(_Schema):
    lead_id: str = Field(..., min_length=1, validation_alias=AliasChoices("lead_id", "leadId"))
    to: str
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    template_id: Optional[str] = Field(None, validation_alias=AliasChoices("template_id", "templateId"))

    @field_validator("to")
    @classmethod
    def _check_email(cls, v):
        if not EMAIL_RE.match(v):
            raise ValueError("Valid email address is required")
        return v


class EmailBatchRequest(_Schema):
    template_id: str = Field(..., min_length=1)
    lead_ids: List[str] = Field(..., min_length=1)


def error_list(exc):
    """Flatten a pydantic ValidationError into [{"field", "message"}]."""
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or None
        errors.append({"field": field, "message": err.get("msg", "Invalid value")})
    return errors



def load_body(schema):
    """Validate the current request's JSON body into `schema`.

    A missing or non-JSON body validates as {} so required fields are
    reported rather than a parse error.
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    return schema.model_validate(data)
