"""Tests for import and export.

Covers:
- Column auto-mapper (passes, claimed fields, normalization)
- Tabular text parsing (CSV, TSV, BOM, generated headers)
- Bulk import with row-level atomicity
- Import preview / column-map / check-duplicates endpoints
- CSV export escaping and download headers
"""

import csv
import io

from crm.models.lead import Lead
from crm.services import lead_service
from crm.services.column_mapper import auto_map_columns, normalize
from crm.services.csv_service import export_leads_csv, parse_tabular_text


# ══════════════════════════════════════════════
#  COLUMN AUTO-MAPPER
# ══════════════════════════════════════════════

class TestColumnMapper:

    def test_example_headers(self):
        mapping = auto_map_columns(["Company Name", "E-mail", "Random123"])
        assert mapping == {
            "Company Name": "dispensary_name",
            "E-mail": "contact_email",
            "Random123": None,
        }

    def test_normalize(self):
        assert normalize("  Contact   E-Mail! ") == "contact email"
        assert normalize("ZIP/Postal") == "zippostal"

    def test_field_name_with_spaces_is_exact(self):
        assert auto_map_columns(["current pos system"]) == {"current pos system": "current_pos_system"}

    def test_prefix_match(self):
        # "phone ext" starts with the "phone" alias
        assert auto_map_columns(["Phone Ext"])["Phone Ext"] == "contact_number"

    def test_substring_match(self):
        assert auto_map_columns(["Primary Email Addr"])["Primary Email Addr"] == "contact_email"

    def test_exact_beats_earlier_fuzzy_header(self):
        # "Email Notes" would substring-match contact_email, but the exact
        # "Email" header claims the field first.
        mapping = auto_map_columns(["Email Notes", "Email"])
        assert mapping["Email"] == "contact_email"
        assert mapping["Email Notes"] != "contact_email"

    def test_field_is_never_claimed_twice(self):
        mapping = auto_map_columns(["Store Name", "Business Name"])
        assert mapping["Store Name"] == "dispensary_name"
        assert mapping["Business Name"] != "dispensary_name"

    def test_empty_header_is_unmapped(self):
        assert auto_map_columns(["", "City"]) == {"": None, "City": "city"}


# ══════════════════════════════════════════════
#  TABULAR TEXT PARSING
# ══════════════════════════════════════════════

class TestParseTabularText:

    def test_csv_with_headers(self):
        parsed = parse_tabular_text('Name,City\n"Leaf, Inc",Denver\n')
        assert parsed["headers"] == ["Name", "City"]
        assert parsed["rows"] == [["Leaf, Inc", "Denver"]]

    def test_tab_separated_paste(self):
        parsed = parse_tabular_text("Name\tPhone\nLeaf\t555-1234\n")
        assert parsed["headers"] == ["Name", "Phone"]
        assert parsed["rows"] == [["Leaf", "555-1234"]]

    def test_generated_headers(self):
        parsed = parse_tabular_text("Leaf,Denver\nBud,Boulder", has_headers=False)
        assert parsed["headers"] == ["Column 1", "Column 2"]
        assert len(parsed["rows"]) == 2

    def test_bom_and_blank_rows_dropped(self):
        parsed = parse_tabular_text("\ufeffName,City\n\n,\nLeaf,Denver\n")
        assert parsed["headers"] == ["Name", "City"]
        assert parsed["rows"] == [["Leaf", "Denver"]]

    def test_short_rows_are_padded(self):
        parsed = parse_tabular_text("A,B,C\n1\n")
        assert parsed["rows"] == [["1", "", ""]]

    def test_empty_input_rejected(self):
        try:
            parse_tabular_text("   ")
        except ValueError as e:
            assert "No data" in str(e)
        else:
            raise AssertionError("expected ValueError")


# ══════════════════════════════════════════════
#  BULK IMPORT
# ══════════════════════════════════════════════

class TestBulkImport:

    def test_valid_rows_created_bad_rows_reported(self, db_session):
        rows = [
            {"dispensary_name": "First Leaf", "city": "Denver"},
            {"city": "No Name Town"},
            {"dispensary_name": "Third Leaf", "contact_email": "not-an-email"},
            {"dispensary_name": "Fourth Leaf", "deal_value": "$1,200", "priority": "high"},
        ]
        result = lead_service.bulk_import(db_session, rows)
        db_session.commit()

        assert result["created"] == 2
        assert result["failed"] == 2
        assert [e["row"] for e in result["errors"]] == [2, 3]
        assert "dispensary_name" in result["errors"][0]["error"]

        names = sorted(lead.dispensary_name for lead in db_session.query(Lead).all())
        assert names == ["First Leaf", "Fourth Leaf"]
        fourth = db_session.query(Lead).filter_by(dispensary_name="Fourth Leaf").one()
        assert fourth.deal_value == 1200
        assert fourth.priority == "High"
        assert fourth.source == "import"

    def test_source_override(self, db_session):
        result = lead_service.bulk_import(
            db_session, [{"dispensary_name": "Leaf"}], source="trade-show"
        )
        db_session.commit()
        lead = db_session.get(Lead, result["ids"][0])
        assert lead.source == "trade-show"

    def test_bulk_endpoint(self, client, db_session):
        resp = client.post("/api/leads/bulk", json={
            "leads": [
                {"dispensary_name": "API Leaf", "stage": "contacted"},
                {"dispensary_name": "Bad Stage", "stage": "Sleeping"},
            ],
        })
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["created"] == 1
        assert data["failed"] == 1
        assert data["errors"][0]["row"] == 2
        assert db_session.query(Lead).count() == 1
        assert db_session.query(Lead).one().stage == "Contacted"

    def test_database_failure_rolls_back_only_that_row(self, db_session, monkeypatch):
        real_create = lead_service.create_lead

        def create_then_fail(session, payload, source=None):
            lead = real_create(session, payload, source=source)
            if lead.dispensary_name == "B":
                raise RuntimeError("constraint failed")
            return lead

        monkeypatch.setattr(lead_service, "create_lead", create_then_fail)
        rows = [{"dispensary_name": name} for name in ("A", "B", "C")]
        result = lead_service.bulk_import(db_session, rows)
        db_session.commit()

        assert result["created"] == 2
        assert result["errors"] == [{"row": 2, "error": "constraint failed"}]
        names = sorted(lead.dispensary_name for lead in db_session.query(Lead).all())
        assert names == ["A", "C"]

    def test_bulk_endpoint_numeric_cells(self, client, db_session):
        resp = client.post("/api/leads/bulk", json={
            "leads": [{"dispensary_name": "Numbers Leaf", "zip_code": 80202, "contact_number": 5550001111}],
        })
        assert resp.status_code == 201
        assert resp.get_json()["failed"] == 0
        lead = db_session.query(Lead).one()
        assert lead.zip_code == "80202"
        assert lead.contact_number == "5550001111"

    def test_bulk_endpoint_requires_rows(self, client):
        resp = client.post("/api/leads/bulk", json={"leads": []})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Validation failed"


# ══════════════════════════════════════════════
#  IMPORT HELPER ENDPOINTS
# ══════════════════════════════════════════════

class TestImportEndpoints:

    def test_preview_parses_and_maps(self, client):
        resp = client.post("/api/leads/import/preview", json={
            "text": "Dispensary\tPhone\tCity\nLeaf\t555-1234\tDenver\n",
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["headers"] == ["Dispensary", "Phone", "City"]
        assert data["rows"] == [["Leaf", "555-1234", "Denver"]]
        assert data["mapping"] == {
            "Dispensary": "dispensary_name",
            "Phone": "contact_number",
            "City": "city",
        }

    def test_preview_empty_text(self, client):
        resp = client.post("/api/leads/import/preview", json={"text": ""})
        assert resp.status_code == 400

    def test_column_map_endpoint(self, client):
        resp = client.post("/api/leads/column-map", json={"headers": ["Store", "Zip"]})
        assert resp.get_json()["mapping"] == {"Store": "dispensary_name", "Zip": "zip_code"}

    def test_check_duplicates(self, client, seed_data):
        resp = client.post("/api/leads/check-duplicates", json={
            "names": ["New Place", "  green leaf   WELLNESS "],
        })
        matches = resp.get_json()["duplicates"]
        assert len(matches) == 1
        assert matches[0]["input_index"] == 1
        assert matches[0]["existing_id"] == seed_data["green_id"]


# ══════════════════════════════════════════════
#  CSV EXPORT
# ══════════════════════════════════════════════

class TestExport:

    def test_quotes_and_newlines_escaped(self):
        text = export_leads_csv([{
            "dispensary_name": 'The "Best" Buds, LLC',
            "notes": "line one\nline two",
            "callback_days": ["Monday", "Friday"],
        }])
        assert '"The ""Best"" Buds, LLC"' in text
        rows = list(csv.DictReader(io.StringIO(text)))
        assert rows[0]["notes"] == "line one\nline two"
        assert rows[0]["callback_days"] == "Monday, Friday"
        assert rows[0]["stage"] == ""

    def test_export_endpoint(self, client, seed_data):
        resp = client.get("/api/leads/export/csv")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "attachment" in resp.headers["Content-Disposition"]
        rows = list(csv.DictReader(io.StringIO(resp.get_data(as_text=True))))
        assert [r["dispensary_name"] for r in rows] == [
            "Coastal Cannabis Co",
            "Green Leaf - Downtown",
            "Green Leaf Wellness",
        ]
        assert all(r["score"] for r in rows)
