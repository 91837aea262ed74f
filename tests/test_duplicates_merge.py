"""Tests for duplicate detection and lead merge.

Covers:
- Normalizers (name, phone, email)
- Grouping by name / phone / email, identical id sets reported once
- Overlapping pairs stay separate groups
- Merge: copied fields, allow-list, moved rows, merge history row, deletion
- Merge endpoint errors
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from crm.errors import NotFoundError
from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.models.scheduled_email import ScheduledEmail
from crm.models.task import Task
from crm.services import duplicate_service, lead_service
from crm.services.duplicate_service import normalize_email, normalize_name, normalize_phone

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _group_ids(groups):
    return [sorted(lead.id for lead in g["leads"]) for g in groups]


# ══════════════════════════════════════════════
#  NORMALIZERS
# ══════════════════════════════════════════════

class TestNormalizers:

    def test_name(self):
        assert normalize_name("  Green   Leaf ") == "green leaf"
        assert normalize_name("   ") is None
        assert normalize_name(None) is None

    def test_phone_digits_only(self):
        assert normalize_phone("(555) 201-3344") == "5552013344"

    def test_short_phone_ignored(self):
        assert normalize_phone("555-12") is None

    def test_email(self):
        assert normalize_email(" Sam@GreenLeaf.Example ") == "sam@greenleaf.example"


# ══════════════════════════════════════════════
#  DETECTION
# ══════════════════════════════════════════════

class TestFindDuplicates:

    def test_phone_group(self, db_session, seed_data):
        groups = duplicate_service.find_duplicate_groups(db_session)
        assert len(groups) == 1
        assert groups[0]["match_field"] == "phone"
        assert groups[0]["match_value"] == "5552013344"
        # oldest first
        assert [l.id for l in groups[0]["leads"]] == [
            seed_data["green_id"], seed_data["green_dup_id"],
        ]

    def test_same_set_reported_once_with_first_reason(self, db_session, make_lead):
        a = make_lead(dispensary_name="Bud Barn", contact_number="555-000-1111",
                      contact_email="x@barn.example", created_at=T0)
        b = make_lead(dispensary_name="bud  barn", contact_number="5550001111",
                      contact_email="X@BARN.example", created_at=T0 + timedelta(hours=1))

        groups = duplicate_service.find_duplicate_groups(db_session)
        assert len(groups) == 1
        assert groups[0]["match_field"] == "name"
        assert _group_ids(groups) == [sorted([a.id, b.id])]

    def test_overlapping_pairs_stay_separate(self, db_session, make_lead):
        x = make_lead(dispensary_name="X Store", contact_number="555-111-2222", created_at=T0)
        y = make_lead(dispensary_name="Y Store", contact_number="555 111 2222",
                      contact_email="shared@store.example", created_at=T0 + timedelta(hours=1))
        z = make_lead(dispensary_name="Z Store", contact_email="shared@store.example",
                      created_at=T0 + timedelta(hours=2))

        groups = duplicate_service.find_duplicate_groups(db_session)
        assert len(groups) == 2
        by_field = {g["match_field"]: sorted(l.id for l in g["leads"]) for g in groups}
        assert by_field["phone"] == sorted([x.id, y.id])
        assert by_field["email"] == sorted([y.id, z.id])

    def test_three_way_key_is_one_group(self, db_session, make_lead):
        ids = [
            make_lead(dispensary_name=f"Store {i}", contact_email="same@store.example").id
            for i in range(3)
        ]
        groups = duplicate_service.find_duplicate_groups(db_session)
        assert _group_ids(groups) == [sorted(ids)]

    def test_duplicates_endpoint(self, client, seed_data):
        resp = client.get("/api/leads/duplicates")
        assert resp.status_code == 200
        groups = resp.get_json()
        assert len(groups) == 1
        assert {l["id"] for l in groups[0]["leads"]} == {
            seed_data["green_id"], seed_data["green_dup_id"],
        }
        assert "score" in groups[0]["leads"][0]


# ══════════════════════════════════════════════
#  MERGE
# ══════════════════════════════════════════════

def _attach_rows(session, lead_id, template_id):
    session.add(ContactHistory(lead_id=lead_id, contact_method="Phone", notes="Called front desk"))
    session.add(ContactHistory(lead_id=lead_id, contact_method="Email", notes="Sent menu", entry_type="email"))
    session.add(Task(lead_id=lead_id, title="Call back", due_date=date(2026, 3, 1)))
    session.add(ScheduledEmail(
        lead_id=lead_id, template_id=template_id, cadence_step=1,
        send_at=datetime.now(timezone.utc) + timedelta(days=1),
    ))
    session.flush()


class TestMerge:

    def test_merge_properties(self, db_session, seed_data):
        keep_id, merge_id = seed_data["green_id"], seed_data["green_dup_id"]
        _attach_rows(db_session, merge_id, seed_data["intro_id"])
        keep_before = db_session.get(Lead, keep_id).to_dict()
        merge_before = db_session.get(Lead, merge_id).to_dict()
        moved_history = {h.id for h in db_session.query(ContactHistory).filter_by(lead_id=merge_id)}
        db_session.commit()

        result = duplicate_service.merge_leads(
            db_session, keep_id, merge_id, ["contact_name", "stage"],
        )
        db_session.commit()

        kept = db_session.get(Lead, keep_id)
        # copied fields take the merged lead's values
        assert kept.contact_name == merge_before["contact_name"]
        assert kept.stage == merge_before["stage"]
        # everything else is untouched
        assert kept.contact_email == keep_before["contact_email"]
        assert kept.dispensary_name == keep_before["dispensary_name"]
        assert kept.deal_value == keep_before["deal_value"]

        assert db_session.get(Lead, merge_id) is None
        assert result["fields_copied"] == ["contact_name", "stage"]
        assert result["moved"] == {"contact_history": 2, "tasks": 1, "scheduled_emails": 1}

        history = db_session.query(ContactHistory).filter_by(lead_id=keep_id).all()
        assert moved_history <= {h.id for h in history}
        merge_rows = [h for h in history if h.entry_type == "merge"]
        assert len(merge_rows) == 1
        assert merge_rows[0].notes.startswith('Merged with duplicate lead "Green Leaf - Downtown"')
        assert merge_rows[0].outcome == "Leads merged"

        assert db_session.query(Task).filter_by(lead_id=keep_id).count() == 1
        assert db_session.query(ScheduledEmail).filter_by(lead_id=keep_id).count() == 1
        assert db_session.query(ContactHistory).filter_by(lead_id=merge_id).count() == 0

    def test_fields_outside_allow_list_ignored(self, db_session, seed_data):
        keep = db_session.get(Lead, seed_data["green_id"])
        original_created = keep.created_at
        result = duplicate_service.merge_leads(
            db_session, seed_data["green_id"], seed_data["green_dup_id"],
            ["id", "created_at", "city"],
        )
        assert result["fields_copied"] == ["city"]
        assert result["lead"].id == seed_data["green_id"]
        assert result["lead"].created_at == original_created

    def test_merge_with_self_rejected(self, db_session, seed_data):
        with pytest.raises(ValueError):
            duplicate_service.merge_leads(db_session, seed_data["green_id"], seed_data["green_id"])

    def test_merge_missing_lead(self, db_session, seed_data):
        with pytest.raises(NotFoundError):
            duplicate_service.merge_leads(db_session, seed_data["green_id"], "gone")

    def test_merged_lead_history_keeps_scoring(self, db_session, seed_data):
        recent = datetime.now(timezone.utc) - timedelta(days=1)
        db_session.add(ContactHistory(
            lead_id=seed_data["green_dup_id"], contact_method="Phone", contact_date=recent,
        ))
        db_session.commit()

        duplicate_service.merge_leads(db_session, seed_data["green_id"], seed_data["green_dup_id"])
        db_session.commit()

        detail = lead_service.lead_detail(db_session, seed_data["green_id"])
        assert detail["score_breakdown"]["recency"] == 25


class TestMergeEndpoint:

    def test_merge_endpoint(self, client, seed_data, db_session):
        resp = client.post("/api/leads/merge", json={
            "keep_id": seed_data["green_id"],
            "merge_id": seed_data["green_dup_id"],
            "fields_from_merge": ["source"],
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["lead"]["source"] == "import"
        assert client.get(f"/api/leads/{seed_data['green_dup_id']}").status_code == 404

    def test_failed_merge_leaves_everything_in_place(self, client, seed_data, db_session, monkeypatch):
        keep_id, merge_id = seed_data["green_id"], seed_data["green_dup_id"]
        _attach_rows(db_session, merge_id, seed_data["intro_id"])
        db_session.commit()

        def refuse_delete(self, instance):
            raise RuntimeError("database went away")

        # fails after fields are copied and rows reassigned
        monkeypatch.setattr(Session, "delete", refuse_delete)
        resp = client.post("/api/leads/merge", json={
            "keep_id": keep_id, "merge_id": merge_id,
            "fields_from_merge": ["contact_name", "stage"],
        })
        assert resp.status_code == 500

        keep = db_session.get(Lead, keep_id)
        assert keep.contact_name == "Sam Rivera"
        assert keep.stage == "Contacted"
        assert db_session.get(Lead, merge_id) is not None
        assert db_session.query(ContactHistory).filter_by(lead_id=merge_id).count() == 2
        assert db_session.query(Task).filter_by(lead_id=merge_id).count() == 1
        assert db_session.query(ScheduledEmail).filter_by(lead_id=merge_id).count() == 1
        assert db_session.query(ContactHistory).filter_by(lead_id=keep_id).count() == 0

    def test_merge_endpoint_same_ids(self, client, seed_data):
        resp = client.post("/api/leads/merge", json={
            "keep_id": seed_data["green_id"], "merge_id": seed_data["green_id"],
        })
        assert resp.status_code == 400

    def test_merge_endpoint_missing_lead(self, client, seed_data, db_session):
        resp = client.post("/api/leads/merge", json={
            "keep_id": seed_data["green_id"], "merge_id": "missing",
            "fields_from_merge": ["city"],
        })
        assert resp.status_code == 404
        assert db_session.query(Lead).count() == 3

    def test_merge_endpoint_requires_ids(self, client):
        resp = client.post("/api/leads/merge", json={})
        assert resp.status_code == 400
        fields = {e["field"] for e in resp.get_json()["errors"]}
        assert fields == {"keep_id", "merge_id"}
