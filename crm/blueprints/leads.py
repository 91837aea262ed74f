"""Leads blueprint — /api/leads/*

JSON API over the lead pipeline: CRUD, stage and cadence transitions,
contact history, duplicate detection and merge, import and export,
callbacks, stats, and analytics.

Route Map:
  GET    /api/leads                      — List (search, priority, stage, sort, order)
  POST   /api/leads                      — Create
  GET    /api/leads/<id>                 — Detail (history, tasks, score breakdown)
  PUT    /api/leads/<id>                 — Update
  DELETE /api/leads/<id>                 — Delete (cascades)
  PATCH  /api/leads/<id>/stage           — Set stage (logged)
  PATCH  /api/leads/<id>/cadence-step    — Set cadence step (logged, may queue email)
  GET    /api/leads/<id>/history         — Contact history
  POST   /api/leads/<id>/history         — Log an interaction
  PATCH  /api/leads/bulk/stage           — Set stage on many leads (all or nothing)
  POST   /api/leads/bulk                 — Bulk import rows
  POST   /api/leads/import/preview       — Parse pasted CSV/TSV + suggested mapping
  POST   /api/leads/column-map           — Auto-map header names to lead fields
  POST   /api/leads/check-duplicates     — Existing leads matching import names
  GET    /api/leads/duplicates           — Duplicate groups
  POST   /api/leads/merge                — Merge two leads
  GET    /api/leads/export/csv           — CSV download
  GET    /api/leads/stats                — Dashboard counters
  GET    /api/leads/callbacks/today      — Callbacks due today
  GET    /api/leads/callbacks/upcoming   — All leads with callback scheduling
  GET    /api/leads/analytics            — Pipeline analytics
  GET    /api/leads/options              — Enumerations for forms
"""

from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify, request

from crm.decorators import check_api_key
from crm.extensions import db
from crm.models.contact_history import ContactHistory
from crm.models.lead import Lead
from crm.schemas import (
    BulkImportRequest,
    BulkStageRequest,
    CadenceUpdate,
    CheckDuplicatesRequest,
    ColumnMapRequest,
    HistoryCreate,
    ImportPreviewRequest,
    LeadPayload,
    MergeRequest,
    StageUpdate,
    load_body,
)
from crm.services import analytics_service, duplicate_service, lead_service
from crm.services.column_mapper import CRM_FIELDS, auto_map_columns
from crm.services.csv_service import export_leads_csv, parse_tabular_text

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")
leads_bp.before_request(check_api_key)


def _lead_response(lead, status=200):
    last_contact = lead_service.last_contact_map(db.session, [lead.id]).get(lead.id)
    return jsonify(lead_service.scored_dict(lead, last_contact)), status


# ─── Collection ──────────────────────────────────────────────────

@leads_bp.route("", methods=["GET"])
def list_leads():
    rows = lead_service.list_leads(
        db.session,
        search=request.args.get("search", "").strip() or None,
        priority=request.args.get("priority") or None,
        stage=request.args.get("stage") or None,
        sort=request.args.get("sort", "updated_at"),
        order=request.args.get("order", "DESC"),
    )
    return jsonify(rows)


@leads_bp.route("", methods=["POST"])
def create_lead():
    payload = load_body(LeadPayload)
    lead = lead_service.create_lead(db.session, payload, source=payload.source or "manual")
    db.session.commit()
    return _lead_response(lead, 201)


# ─── Single lead ─────────────────────────────────────────────────

@leads_bp.route("/<lead_id>", methods=["GET"])
def get_lead(lead_id):
    return jsonify(lead_service.lead_detail(db.session, lead_id))


@leads_bp.route("/<lead_id>", methods=["PUT"])
def update_lead(lead_id):
    payload = load_body(LeadPayload)
    reason = (request.get_json(silent=True) or {}).get("reason")
    lead = lead_service.update_lead(db.session, lead_id, payload, reason=reason)
    db.session.commit()
    return _lead_response(lead)


@leads_bp.route("/<lead_id>", methods=["DELETE"])
def delete_lead(lead_id):
    lead_service.delete_lead(db.session, lead_id)
    db.session.commit()
    return jsonify({"success": True})


@leads_bp.route("/<lead_id>/stage", methods=["PATCH"])
def set_stage(lead_id):
    body = load_body(StageUpdate)
    lead, entry = lead_service.set_stage(db.session, lead_id, body.stage, reason=body.reason)
    db.session.commit()
    data = lead.to_dict()
    data["history_entry"] = entry.to_dict() if entry else None
    return jsonify(data)


@leads_bp.route("/<lead_id>/cadence-step", methods=["PATCH"])
def set_cadence_step(lead_id):
    body = load_body(CadenceUpdate)
    lead, entry, scheduled = lead_service.advance_cadence(db.session, lead_id, body.step)
    db.session.commit()
    data = lead.to_dict()
    data["history_entry"] = entry.to_dict() if entry else None
    data["scheduled_email"] = scheduled.to_dict() if scheduled else None
    return jsonify(data)


# ─── Contact history ─────────────────────────────────────────────

@leads_bp.route("/<lead_id>/history", methods=["GET"])
def list_history(lead_id):
    entries = lead_service.list_history(db.session, lead_id)
    return jsonify([e.to_dict() for e in entries])


@leads_bp.route("/<lead_id>/history", methods=["POST"])
def add_history(lead_id):
    payload = load_body(HistoryCreate)
    entry = lead_service.add_history(db.session, lead_id, payload)
    db.session.commit()
    return jsonify(entry.to_dict()), 201


# ─── Bulk operations ─────────────────────────────────────────────

@leads_bp.route("/bulk/stage", methods=["PATCH"])
def bulk_stage():
    body = load_body(BulkStageRequest)
    updated = lead_service.bulk_set_stage(
        db.session, body.lead_ids, body.stage, reason=body.reason
    )
    db.session.commit()
    return jsonify({"updated": updated, "stage": body.stage})


@leads_bp.route("/bulk", methods=["POST"])
def bulk_import():
    body = load_body(BulkImportRequest)
    result = lead_service.bulk_import(db.session, body.leads, source=body.source)
    db.session.commit()
    return jsonify(result), 201 if result["created"] else 200


# ─── Import helpers ──────────────────────────────────────────────

@leads_bp.route("/import/preview", methods=["POST"])
def import_preview():
    body = load_body(ImportPreviewRequest)
    parsed = parse_tabular_text(body.text, has_headers=body.has_headers)
    parsed["mapping"] = auto_map_columns(parsed["headers"])
    return jsonify(parsed)


@leads_bp.route("/column-map", methods=["POST"])
def column_map():
    body = load_body(ColumnMapRequest)
    return jsonify({"mapping": auto_map_columns(body.headers)})


@leads_bp.route("/check-duplicates", methods=["POST"])
def check_duplicates():
    body = load_body(CheckDuplicatesRequest)
    return jsonify({"duplicates": duplicate_service.check_names(db.session, body.names)})


# ─── Duplicates & merge ──────────────────────────────────────────

@leads_bp.route("/duplicates", methods=["GET"])
def duplicates():
    groups = duplicate_service.find_duplicate_groups(db.session)
    lead_ids = {lead.id for group in groups for lead in group["leads"]}
    contacts = lead_service.last_contact_map(db.session, lead_ids)
    return jsonify([
        {
            "match_field": group["match_field"],
            "match_value": group["match_value"],
            "leads": [
                lead_service.scored_dict(lead, contacts.get(lead.id))
                for lead in group["leads"]
            ],
        }
        for group in groups
    ])


@leads_bp.route("/merge", methods=["POST"])
def merge():
    body = load_body(MergeRequest)
    result = duplicate_service.merge_leads(
        db.session, body.keep_id, body.merge_id, body.fields_from_merge
    )
    db.session.commit()
    return jsonify({
        "success": True,
        "lead": result["lead"].to_dict(),
        "fields_copied": result["fields_copied"],
        "moved": result["moved"],
    })


# ─── Export ──────────────────────────────────────────────────────

@leads_bp.route("/export/csv", methods=["GET"])
def export_csv():
    rows = lead_service.list_leads(db.session, sort="dispensary_name", order="ASC")
    filename = f"leads-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        export_leads_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ─── Dashboard ───────────────────────────────────────────────────

@leads_bp.route("/stats", methods=["GET"])
def stats():
    return jsonify(lead_service.dashboard_stats(db.session))


@leads_bp.route("/callbacks/today", methods=["GET"])
def callbacks_today():
    return jsonify([l.to_dict() for l in lead_service.callbacks_today(db.session)])


@leads_bp.route("/callbacks/upcoming", methods=["GET"])
def callbacks_upcoming():
    return jsonify([l.to_dict() for l in lead_service.callbacks_upcoming(db.session)])


@leads_bp.route("/analytics", methods=["GET"])
def analytics():
    stale_days = current_app.config.get("STALE_LEAD_DAYS", 14)
    return jsonify(analytics_service.pipeline_analytics(db.session, stale_days=stale_days))


@leads_bp.route("/options", methods=["GET"])
def options():
    return jsonify({
        "stages": Lead.STAGES,
        "priorities": Lead.PRIORITIES,
        "contact_methods": ContactHistory.METHODS,
        "cadence_steps": [
            {"step": step, "label": label} for step, label in Lead.CADENCE_STEPS.items()
        ],
        "closed_won_reasons": Lead.CLOSED_WON_REASONS,
        "closed_lost_reasons": Lead.CLOSED_LOST_REASONS,
        "import_fields": CRM_FIELDS,
    })
