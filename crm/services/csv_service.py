"""CSV export and tabular-text parsing for lead import/export."""

import csv
import io

EXPORT_COLUMNS = [
    "id",
    "dispensary_name",
    "stage",
    "priority",
    "score",
    "deal_value",
    "contact_name",
    "contact_position",
    "contact_number",
    "contact_email",
    "manager_name",
    "owner_name",
    "dispensary_number",
    "address",
    "city",
    "state",
    "zip_code",
    "website",
    "license_number",
    "current_pos_system",
    "callback_days",
    "callback_date",
    "cadence_step",
    "source",
    "notes",
    "contact_date",
    "created_at",
]


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value


def export_leads_csv(rows):
    """Render lead dicts as CSV text.

    Embedded quotes are doubled and any field containing a comma, quote,
    or newline is wrapped in quotes (csv.QUOTE_MINIMAL).
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(EXPORT_COLUMNS)
    for row in rows:
        writer.writerow([_cell(row.get(col)) for col in EXPORT_COLUMNS])
    return buf.getvalue()


def detect_delimiter(text):
    """Tab if the first line has one (spreadsheet paste / TSV), else comma."""
    first_line = text.lstrip("\ufeff").split("\n", 1)[0]
    return "\t" if "\t" in first_line else ","


def parse_tabular_text(text, has_headers=True):
    """Parse CSV, TSV, or pasted spreadsheet text.

    Args:
        text: Raw text. A UTF-8 BOM is ignored.
        has_headers: Treat the first non-empty row as column names. When
            False, headers are generated as "Column 1", "Column 2", ...

    Returns:
        dict: {"headers": [...], "rows": [[...], ...]} with every row padded
        or truncated to the header width. Blank rows are dropped.
    """
    text = (text or "").lstrip("\ufeff")
    if not text.strip():
        raise ValueError("No data to import.")

    reader = csv.reader(io.StringIO(text), delimiter=detect_delimiter(text))
    rows = [
        [cell.strip() for cell in row]
        for row in reader
        if any(cell.strip() for cell in row)
    ]
    if not rows:
        raise ValueError("No data to import.")

    if has_headers:
        headers = rows[0]
        rows = rows[1:]
    else:
        width = max(len(r) for r in rows)
        headers = [f"Column {i + 1}" for i in range(width)]

    width = len(headers)
    rows = [(r + [""] * width)[:width] for r in rows]
    return {"headers": headers, "rows": rows}
