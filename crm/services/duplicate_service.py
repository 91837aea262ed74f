"""Duplicate detection and lead merge.

Detection groups leads that share a normalized name, phone, or email.
Groups are keyed by the exact set of lead ids: when the same set matches
on several fields only the first match is reported (name, then phone,
then email). Groups are never chained together: {X, Y} sharing a phone
and {Y, Z} sharing an email are two separate groups.

A merge copies chosen fields from the merged lead onto the kept lead,
moves all of its history, tasks, and scheduled emails across, logs one
history row on the kept lead, and deletes the merged lead. Functions
flush but do NOT commit. The caller commits or rolls back the whole
unit.
"""

import logging
import re

from crm.errors import NotFoundError
from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.models.scheduled_email import ScheduledEmail
from crm.models.task import Task
from crm.services.lead_service import get_lead

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 7

# Fields a merge may copy from the merged lead. Anything else requested
# is ignored.
MERGEABLE_FIELDS = [
    "dispensary_name",
    "contact_name",
    "contact_position",
    "manager_name",
    "owner_name",
    "contact_number",
    "contact_email",
    "dispensary_number",
    "address",
    "city",
    "state",
    "zip_code",
    "website",
    "license_number",
    "current_pos_system",
    "stage",
    "deal_value",
    "priority",
    "notes",
    "source",
    "callback_days",
    "callback_time_slots",
    "callback_time_from",
    "callback_time_to",
    "callback_date",
]


def normalize_name(value):
    """Case- and whitespace-insensitive name key, or None if blank."""
    if not value:
        return None
    key = re.sub(r"\s+", " ", value.strip().lower())
    return key or None


def normalize_phone(value):
    """Digits only; None when fewer than MIN_PHONE_DIGITS remain."""
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    return digits if len(digits) >= MIN_PHONE_DIGITS else None


def normalize_email(value):
    if not value:
        return None
    key = re.sub(r"\s+", "", value).lower()
    return key or None


MATCHERS = [
    ("name", lambda lead: normalize_name(lead.dispensary_name)),
    ("phone", lambda lead: normalize_phone(lead.contact_number)),
    ("email", lambda lead: normalize_email(lead.contact_email)),
]


def find_duplicate_groups(session):
    """Return clusters of likely-duplicate leads.

    Returns:
        list[dict]: [{"match_field": "name"|"phone"|"email",
                      "match_value": normalized key,
                      "leads": [Lead, ...]}]  (leads oldest first)
    """
    leads = session.query(Lead).order_by(Lead.created_at.asc(), Lead.id.asc()).all()

    groups = []
    seen_sets = set()
    for field, key_fn in MATCHERS:
        buckets = {}
        for lead in leads:
            key = key_fn(lead)
            if key:
                buckets.setdefault(key, []).append(lead)

        for key, members in buckets.items():
            if len(members) < 2:
                continue
            id_set = frozenset(lead.id for lead in members)
            if id_set in seen_sets:
                continue
            seen_sets.add(id_set)
            groups.append({
                "match_field": field,
                "match_value": key,
                "leads": members,
            })
    return groups


def check_names(session, names):
    """Find existing leads whose normalized name matches each input name.

    Used by the import preview. Returns one entry per (input, existing) pair:
    [{"input_index", "input_name", "existing_id", "existing_name", "stage"}]
    """
    wanted = {}
    for index, name in enumerate(names):
        key = normalize_name(name)
        if key:
            wanted.setdefault(key, []).append((index, name))
    if not wanted:
        return []

    matches = []
    for lead in session.query(Lead).all():
        key = normalize_name(lead.dispensary_name)
        for index, name in wanted.get(key, []):
            matches.append({
                "input_index": index,
                "input_name": name,
                "existing_id": lead.id,
                "existing_name": lead.dispensary_name,
                "stage": lead.stage,
            })
    matches.sort(key=lambda m: m["input_index"])
    return matches


def merge_leads(session, keep_id, merge_id, fields_from_merge=None):
    """Merge lead merge_id into keep_id.

    Args:
        session: SQLAlchemy session (the caller commits or rolls back).
        keep_id: Surviving lead id.
        merge_id: Lead id that will be deleted.
        fields_from_merge: Field names whose values should be taken from
            the merged lead. Names outside MERGEABLE_FIELDS are ignored.

    Returns:
        dict: {"lead": kept Lead, "fields_copied": [...], "moved": {...}}

    Raises:
        ValueError: keep_id == merge_id.
        NotFoundError: either lead is missing.
    """
    if keep_id == merge_id:
        raise ValueError("Cannot merge a lead with itself.")

    keep = get_lead(session, keep_id)
    merge = get_lead(session, merge_id)
    merge_name = merge.dispensary_name

    requested = list(dict.fromkeys(fields_from_merge or []))
    copied = [f for f in requested if f in MERGEABLE_FIELDS]
    ignored = [f for f in requested if f not in MERGEABLE_FIELDS]
    if ignored:
        logger.info(f"Merge {merge_id} -> {keep_id}: ignoring non-mergeable fields {ignored}")

    for field in copied:
        setattr(keep, field, getattr(merge, field))
    session.flush()

    moved = {}
    for label, model in (
        ("contact_history", ContactHistory),
        ("tasks", Task),
        ("scheduled_emails", ScheduledEmail),
    ):
        moved[label] = (
            session.query(model)
            .filter(model.lead_id == merge_id)
            .update({"lead_id": keep_id}, synchronize_session=False)
        )

    # Loaded relationship collections still point at the old rows
    session.expire_all()

    merge = session.get(Lead, merge_id)
    if merge is None:
        raise NotFoundError("Lead", merge_id)

    detail = f" (fields taken: {', '.join(copied)})" if copied else ""
    session.add(ContactHistory(
        lead_id=keep_id,
        contact_method="Other",
        notes=f'Merged with duplicate lead "{merge_name}"{detail}',
        outcome="Leads merged",
        entry_type="merge",
    ))
    session.delete(merge)
    session.flush()

    logger.info(
        f"Merged lead {merge_id} into {keep_id}: copied {copied}, moved {moved}"
    )
    return {
        "lead": session.get(Lead, keep_id),
        "fields_copied": copied,
        "moved": moved,
    }
