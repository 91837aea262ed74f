"""Tasks blueprint — /api/tasks/*

Route Map:
  GET    /api/tasks                 — List (status, priority, lead_id, period); generates reminders first
  GET    /api/tasks/stats           — Overdue / today / upcoming counts
  POST   /api/tasks                 — Create
  GET    /api/tasks/<id>            — Detail
  PUT    /api/tasks/<id>            — Update
  PATCH  /api/tasks/<id>/complete   — Toggle pending <-> completed
  DELETE /api/tasks/<id>            — Delete
"""

from flask import Blueprint, jsonify, request

from crm.decorators import check_api_key
from crm.extensions import db
from crm.schemas import TaskCreate, TaskUpdate, load_body
from crm.services import task_service

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")
tasks_bp.before_request(check_api_key)


@tasks_bp.route("", methods=["GET"])
def list_tasks():
    created = task_service.generate_reminder_tasks(db.session)
    if created:
        db.session.commit()

    tasks = task_service.list_tasks(
        db.session,
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        lead_id=request.args.get("lead_id") or None,
        period=request.args.get("period") or None,
    )
    return jsonify([t.to_dict() for t in tasks])


@tasks_bp.route("/stats", methods=["GET"])
def stats():
    return jsonify(task_service.task_stats(db.session))


@tasks_bp.route("", methods=["POST"])
def create_task():
    payload = load_body(TaskCreate)
    task = task_service.create_task(db.session, payload)
    db.session.commit()
    return jsonify(task.to_dict()), 201


@tasks_bp.route("/<task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(task_service.get_task(db.session, task_id).to_dict())


@tasks_bp.route("/<task_id>", methods=["PUT"])
def update_task(task_id):
    payload = load_body(TaskUpdate)
    task = task_service.update_task(db.session, task_id, payload)
    db.session.commit()
    return jsonify(task.to_dict())


@tasks_bp.route("/<task_id>/complete", methods=["PATCH"])
def toggle_complete(task_id):
    task = task_service.toggle_complete(db.session, task_id)
    db.session.commit()
    return jsonify(task.to_dict())


@tasks_bp.route("/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    task_service.delete_task(db.session, task_id)
    db.session.commit()
    return jsonify({"success": True})
