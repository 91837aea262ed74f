"""Import column auto-mapper.

Maps arbitrary CSV / pasted-table headers to Lead field names using a
fixed alias table. Advisory only: the import screen lets the user
override every choice before committing.

Three passes over the still-unmapped headers, highest confidence first:
  1. exact alias match (or the field name with spaces for underscores)
  2. prefix match, either direction
  3. substring match, either direction
A field claimed in an earlier pass is never handed out again.
"""

import re

FIELD_ALIASES = {
    "dispensary_name": ["dispensary name", "dispensary", "company", "company name", "business",
                        "business name", "store", "store name", "shop", "name"],
    "contact_name": ["contact name", "contact", "primary contact", "person"],
    "contact_email": ["contact email", "email", "email address", "e-mail"],
    "contact_number": ["contact number", "contact phone", "phone number", "phone", "mobile",
                       "cell", "telephone"],
    "contact_position": ["contact position", "position", "title", "job title", "role"],
    "dispensary_number": ["dispensary number", "dispensary phone", "business phone",
                          "office phone", "main phone"],
    "address": ["address", "street", "street address", "location"],
    "city": ["city", "town"],
    "state": ["state", "province", "region"],
    "zip_code": ["zip code", "zip", "postal code", "postal", "zipcode"],
    "manager_name": ["manager name", "manager", "recommended contact"],
    "owner_name": ["owner name", "owner", "recommended position"],
    "website": ["website", "web", "url", "site"],
    "current_pos_system": ["current pos system", "pos system", "pos", "current pos", "current system"],
    "notes": ["notes", "comments", "description", "details", "memo"],
    "priority": ["priority", "importance", "urgency"],
    "stage": ["stage", "status", "pipeline stage", "sales stage"],
    "source": ["source", "lead source", "origin", "referral"],
    "deal_value": ["deal value", "deal", "value", "revenue", "amount", "price"],
    "contact_date": ["contact date", "date", "first contact", "date added"],
    "license_number": ["license number", "license", "licence"],
}

# Display labels for the manual-override dropdown
CRM_FIELDS = [
    {"value": "dispensary_name", "label": "Dispensary Name"},
    {"value": "contact_name", "label": "Primary Contact"},
    {"value": "contact_email", "label": "Contact Email"},
    {"value": "contact_number", "label": "Contact Phone"},
    {"value": "contact_position", "label": "Contact Position"},
    {"value": "dispensary_number", "label": "Dispensary Phone"},
    {"value": "address", "label": "Address"},
    {"value": "city", "label": "City"},
    {"value": "state", "label": "State"},
    {"value": "zip_code", "label": "Zip Code"},
    {"value": "manager_name", "label": "Recommended Contact"},
    {"value": "owner_name", "label": "Recommended Position"},
    {"value": "website", "label": "Website"},
    {"value": "current_pos_system", "label": "Current POS System"},
    {"value": "notes", "label": "Notes"},
    {"value": "priority", "label": "Priority"},
    {"value": "stage", "label": "Stage"},
    {"value": "source", "label": "Source"},
    {"value": "deal_value", "label": "Deal Value"},
    {"value": "contact_date", "label": "Contact Date"},
    {"value": "license_number", "label": "License Number"},
]


def normalize(header):
    """Lowercase, trim, drop punctuation, collapse whitespace."""
    value = (header or "").lower().strip()
    value = re.sub(r"[^a-z0-9\s]", "", value)
    return re.sub(r"\s+", " ", value)


def _exact(norm, field, aliases):
    return norm in aliases or norm == field.replace("_", " ")


def _prefix(norm, field, aliases):
    return any(norm.startswith(a) or a.startswith(norm) for a in aliases)


def _contains(norm, field, aliases):
    return any(a in norm or norm in a for a in aliases)


PASSES = [_exact, _prefix, _contains]


def auto_map_columns(headers):
    """Map each header to a Lead field name or None.

    Returns:
        dict: {header: field_name | None}, one entry per input header.
    """
    mapping = {}
    used_fields = set()
    normalized = [normalize(h) for h in headers]

    for matcher in PASSES:
        for header, norm in zip(headers, normalized):
            if mapping.get(header):
                continue
            # An empty header would prefix-match every alias
            if not norm:
                continue
            for field, aliases in FIELD_ALIASES.items():
                if field in used_fields:
                    continue
                if matcher(norm, field, aliases):
                    mapping[header] = field
                    used_fields.add(field)
                    break

    for header in headers:
        mapping.setdefault(header, None)
    return mapping
