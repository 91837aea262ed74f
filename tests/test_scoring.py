"""Tests for lead scoring.

Covers:
- Each weight table (stage, recency, value, completeness)
- The worked 100-point example
- Scores above 100 are not clamped
- Temperature labels
- Recency ignores system-logged history rows
"""

from datetime import date, datetime, timedelta, timezone

from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.services import lead_service, scoring

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _lead(**fields):
    data = {"dispensary_name": "Scored Dispensary", "stage": "New Lead"}
    data.update(fields)
    return Lead(**data)


# ══════════════════════════════════════════════
#  WEIGHT TABLES
# ══════════════════════════════════════════════

class TestWeights:

    def test_stage_weights(self):
        assert scoring.stage_weight("New Lead") == 5
        assert scoring.stage_weight("Contacted") == 10
        assert scoring.stage_weight("Demo Scheduled") == 15
        assert scoring.stage_weight("Demo Completed") == 20
        assert scoring.stage_weight("Proposal Sent") == 25
        assert scoring.stage_weight("Negotiating") == 30
        assert scoring.stage_weight("Closed Won") == 30
        assert scoring.stage_weight("Closed Lost") == 0

    def test_unknown_stage_gets_default(self):
        assert scoring.stage_weight("Somewhere Else") == 5

    def test_recency_buckets(self):
        assert scoring.recency_weight(0) == 25
        assert scoring.recency_weight(3) == 25
        assert scoring.recency_weight(4) == 20
        assert scoring.recency_weight(7) == 20
        assert scoring.recency_weight(14) == 12
        assert scoring.recency_weight(30) == 5
        assert scoring.recency_weight(31) == 0

    def test_never_contacted_scores_no_recency(self):
        assert scoring.recency_weight(None) == 0

    def test_value_buckets(self):
        assert scoring.value_weight(None) == 0
        assert scoring.value_weight(0) == 0
        assert scoring.value_weight(150) == 8
        assert scoring.value_weight(200) == 8
        assert scoring.value_weight(500) == 14
        assert scoring.value_weight(501) == 20

    def test_completeness_counts_each_field(self):
        lead = _lead(contact_email="a@b.co", contact_number="5551234567")
        assert scoring.completeness_bonus(lead) == 10

    def test_completeness_ignores_blank_values(self):
        lead = _lead(contact_email="  ", manager_name="", callback_days=[])
        assert scoring.completeness_bonus(lead) == 0

    def test_completeness_max(self):
        lead = _lead(
            contact_email="a@b.co",
            contact_number="5551234567",
            manager_name="Dana",
            callback_days=["Monday"],
            callback_date=date(2026, 3, 12),
        )
        assert scoring.completeness_bonus(lead) == 25


# ══════════════════════════════════════════════
#  TOTAL SCORE
# ══════════════════════════════════════════════

class TestScore:

    def test_worked_example_scores_100(self):
        lead = _lead(
            stage="Negotiating",
            deal_value=600,
            contact_email="buyer@shop.example",
            contact_number="5551234567",
            manager_name="Dana",
            callback_days=["Tuesday"],
            callback_date=date(2026, 3, 12),
        )
        breakdown = scoring.score_breakdown(lead, NOW - timedelta(days=2), NOW)
        assert breakdown["stage"] == 30
        assert breakdown["recency"] == 25
        assert breakdown["value"] == 20
        assert breakdown["completeness"] == 25
        assert breakdown["total"] == 100
        assert breakdown["days_since_contact"] == 2

    def test_score_is_sum_of_parts(self):
        lead = _lead(stage="Contacted", deal_value=300, contact_email="x@y.co")
        score = scoring.score_lead(lead, NOW - timedelta(days=10), NOW)
        assert score == 10 + 12 + 14 + 5

    def test_closed_won_scores_like_negotiating(self):
        lead = _lead(
            stage="Closed Won",
            deal_value=1000,
            contact_email="buyer@shop.example",
            contact_number="5551234567",
            manager_name="Dana",
            callback_days=["Tuesday"],
            callback_date=date(2026, 3, 12),
        )
        won = scoring.score_breakdown(lead, NOW, NOW)
        lead.stage = "Negotiating"
        negotiating = scoring.score_breakdown(lead, NOW, NOW)

        assert won["total"] == negotiating["total"]
        assert won["total"] == sum(won[k] for k in ("stage", "recency", "value", "completeness"))

    def test_closed_lost_keeps_other_weights(self):
        lead = _lead(stage="Closed Lost", deal_value=100, contact_email="x@y.co")
        assert scoring.score_lead(lead, NOW, NOW) == 0 + 25 + 8 + 5

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2026, 3, 5, 12, 0)
        assert scoring.days_since(naive, NOW) == 5

    def test_future_contact_counts_as_today(self):
        assert scoring.days_since(NOW + timedelta(days=2), NOW) == 0

    def test_temperature_labels(self):
        assert scoring.temperature(100) == "Hot"
        assert scoring.temperature(70) == "Hot"
        assert scoring.temperature(69) == "Warm"
        assert scoring.temperature(40) == "Warm"
        assert scoring.temperature(39) == "Cold"


# ══════════════════════════════════════════════
#  RECENCY SOURCE
# ══════════════════════════════════════════════

class TestLastContact:

    def test_stage_changes_do_not_count_as_contact(self, db_session, make_lead):
        lead = make_lead(stage="New Lead")
        lead_service.set_stage(db_session, lead.id, "Contacted")
        lead_service.advance_cadence(db_session, lead.id, 2)

        assert lead_service.last_contact_map(db_session, [lead.id]) == {}

    def test_real_contact_is_used(self, db_session, make_lead):
        lead = make_lead()
        when = datetime.now(timezone.utc) - timedelta(days=1)
        db_session.add(ContactHistory(
            lead_id=lead.id, contact_method="Phone", notes="Called", contact_date=when,
        ))
        db_session.flush()

        last = lead_service.last_contact_map(db_session, [lead.id])[lead.id]
        assert scoring.days_since(last) == 1

    def test_listed_leads_carry_score_and_temperature(self, db_session, make_lead):
        make_lead(stage="Negotiating", deal_value=600)
        rows = lead_service.list_leads(db_session)
        assert rows[0]["score"] == 50
        assert rows[0]["temperature"] == "Warm"
