from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .admission import BookingAdmissionWorkflow
from .auth import (
    CAN_CREATE_BOOKINGS,
    CAN_DECIDE_BOOKINGS,
    CAN_EDIT_OWN_BOOKINGS,
    CAN_MANAGE_EXAM_PERIODS,
    CAN_MANAGE_LABS,
    CAN_READ_BOOKINGS,
    CAN_READ_EXAM_PERIODS,
    CAN_READ_LABS,
    current_principal,
    require_capability,
)
from .config import Settings, configure_logging, settings as default_settings
from .errors import LabBookingError, NotFoundError
from .exam_periods import ExamPeriodController
from .labs import register_lab
from .models import BookingFilter, BookingRecord, ExamPeriodFilter, ExamPeriodRecord, LabRecord, format_clock
from .validation import parse_bool, parse_date, parse_status, parse_year_group
from .yaml_store import LabBookingYamlRepository

logger = logging.getLogger(__name__)

BOOKING_FIELDS = {
    "labId": "lab_id",
    "date": "date",
    "startTime": "start_time",
    "endTime": "end_time",
    "title": "title",
    "purpose": "purpose",
    "studentCount": "student_count",
    "equipment": "equipment",
    "yearGroup": "year_group",
    "isExam": "is_exam",
    "status": "status",
}
EXAM_PERIOD_FIELDS = {
    "name": "name",
    "startDate": "start_date",
    "endDate": "end_date",
    "yearGroup": "year_group",
    "affectedLabs": "affected_labs",
    "isActive": "is_active",
}
# Returned by the API but never written through PUT.
READ_ONLY_BOOKING_KEYS = frozenset({"id", "lab", "user", "userId", "createdAt", "updatedAt"})
LAB_FIELDS = {
    "name": "name",
    "building": "building",
    "location": "location",
    "capacity": "capacity",
    "description": "description",
    "equipment": "equipment",
    "openingHours": "opening_hours",
    "status": "status",
}


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    settings: Settings | None = None,
) -> Flask:
    app = Flask(__name__)
    app_settings = settings or default_settings
    app.config["LAB_BOOKING_SETTINGS"] = app_settings

    repository = LabBookingYamlRepository(data_dir if data_dir is not None else app_settings.data_dir)
    clock: Callable[[], datetime] = now_provider or datetime.now
    workflow = BookingAdmissionWorkflow(repository, horizon_days=app_settings.booking_horizon_days, clock=clock)
    exam_periods = ExamPeriodController(repository, clock=clock)

    def _lab_summaries() -> dict[str, dict[str, str]]:
        return {lab.lab_id: {"id": lab.lab_id, "name": lab.name, "building": lab.building} for lab in repository.get_labs()}

    @app.errorhandler(LabBookingError)
    def handle_business_error(error: LabBookingError) -> Any:
        if error.status_code >= 500:
            logger.exception("Storage failure while handling %s %s", request.method, request.path)
            return _failure("internal_error", "An unexpected error occurred", 500)
        logger.warning("%s %s rejected: %s", request.method, request.path, error.message)
        return _failure(error.error_code, error.message, error.status_code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> Any:
        if isinstance(error, HTTPException):
            return _failure(error.name.lower().replace(" ", "_"), error.description or error.name, error.code or 500)
        logger.exception("Unexpected error while handling %s %s", request.method, request.path)
        return _failure("internal_error", "An unexpected error occurred", 500)

    # Bookings

    @app.get("/api/bookings")
    @require_capability(CAN_READ_BOOKINGS)
    def list_bookings() -> Any:
        criteria = _booking_filter_from_args(request.args)
        labs = _lab_summaries()
        records = workflow.list_bookings(criteria)
        return jsonify({"ok": True, "bookings": [_serialize_booking(record, labs) for record in records]})

    @app.post("/api/bookings")
    @require_capability(CAN_CREATE_BOOKINGS)
    def create_booking() -> Any:
        fields = _translate(_json_body(), BOOKING_FIELDS)
        fields.pop("status", None)
        created = workflow.create_booking(current_principal(), fields)
        return (
            jsonify(
                {
                    "ok": True,
                    "message": "Booking request submitted successfully",
                    "booking": _serialize_booking(created, _lab_summaries()),
                }
            ),
            201,
        )

    @app.get("/api/bookings/<booking_id>")
    @require_capability(CAN_READ_BOOKINGS)
    def get_booking(booking_id: str) -> Any:
        record = workflow.get_booking(booking_id)
        return jsonify({"ok": True, "booking": _serialize_booking(record, _lab_summaries())})

    @app.patch("/api/bookings/<booking_id>/status")
    @require_capability(CAN_DECIDE_BOOKINGS)
    def transition_booking(booking_id: str) -> Any:
        payload = _json_body()
        updated = workflow.transition_booking(booking_id, payload.get("status"))
        return jsonify(
            {
                "ok": True,
                "message": f"Booking {updated.status} successfully",
                "booking": _serialize_booking(updated, _lab_summaries()),
            }
        )

    @app.put("/api/bookings/<booking_id>")
    @require_capability(CAN_EDIT_OWN_BOOKINGS)
    def update_booking(booking_id: str) -> Any:
        principal = current_principal()
        payload = {key: value for key, value in _json_body().items() if key not in READ_ONLY_BOOKING_KEYS}
        changes = _translate(payload, BOOKING_FIELDS, keep_unknown=True)
        if not principal.can(CAN_DECIDE_BOOKINGS):
            existing = workflow.get_booking(booking_id)
            status_changed = "status" in changes and parse_status(changes["status"]) != existing.status
            if existing.user_id != principal.user_id or status_changed:
                return _failure("forbidden", "Insufficient permissions.", 403)

        updated = workflow.update_booking(booking_id, changes)
        return jsonify({"ok": True, "booking": _serialize_booking(updated, _lab_summaries())})

    @app.delete("/api/bookings/<booking_id>")
    @require_capability(CAN_EDIT_OWN_BOOKINGS)
    def cancel_booking(booking_id: str) -> Any:
        principal = current_principal()
        if not principal.can(CAN_DECIDE_BOOKINGS):
            existing = workflow.get_booking(booking_id)
            if existing.user_id != principal.user_id:
                return _failure("forbidden", "Insufficient permissions.", 403)

        removed = workflow.cancel_booking(booking_id)
        return jsonify(
            {
                "ok": True,
                "message": "Booking deleted successfully",
                "booking": _serialize_booking(removed, _lab_summaries()),
            }
        )

    # Labs

    @app.get("/api/labs")
    @require_capability(CAN_READ_LABS)
    def list_labs() -> Any:
        return jsonify({"ok": True, "labs": [_serialize_lab(lab) for lab in repository.get_labs()]})

    @app.get("/api/labs/<lab_id>")
    @require_capability(CAN_READ_LABS)
    def get_lab(lab_id: str) -> Any:
        lab = repository.get_lab(lab_id)
        if lab is None:
            raise NotFoundError("Lab not found")
        return jsonify({"ok": True, "lab": _serialize_lab(lab)})

    @app.post("/api/labs")
    @require_capability(CAN_MANAGE_LABS)
    def create_lab() -> Any:
        lab = register_lab(repository, _translate(_json_body(), LAB_FIELDS), clock())
        return jsonify({"ok": True, "lab": _serialize_lab(lab)}), 201

    # Exam periods

    @app.get("/api/exam-periods")
    @require_capability(CAN_READ_EXAM_PERIODS)
    def list_exam_periods() -> Any:
        criteria = _exam_period_filter_from_args(request.args)
        records = exam_periods.list_exam_periods(criteria)
        return jsonify({"ok": True, "examPeriods": [_serialize_exam_period(record) for record in records]})

    @app.post("/api/exam-periods")
    @require_capability(CAN_MANAGE_EXAM_PERIODS)
    def create_exam_period() -> Any:
        fields = _translate(_json_body(), EXAM_PERIOD_FIELDS)
        fields.pop("is_active", None)
        created = exam_periods.create_exam_period(fields)
        return (
            jsonify(
                {
                    "ok": True,
                    "message": "Exam period created successfully",
                    "examPeriod": _serialize_exam_period(created),
                }
            ),
            201,
        )

    @app.get("/api/exam-periods/<exam_period_id>")
    @require_capability(CAN_READ_EXAM_PERIODS)
    def get_exam_period(exam_period_id: str) -> Any:
        record = exam_periods.get_exam_period(exam_period_id)
        return jsonify({"ok": True, "examPeriod": _serialize_exam_period(record)})

    @app.put("/api/exam-periods/<exam_period_id>")
    @require_capability(CAN_MANAGE_EXAM_PERIODS)
    def update_exam_period(exam_period_id: str) -> Any:
        changes = _translate(_json_body(), EXAM_PERIOD_FIELDS, keep_unknown=True)
        updated = exam_periods.update_exam_period(exam_period_id, changes)
        return jsonify({"ok": True, "examPeriod": _serialize_exam_period(updated)})

    @app.patch("/api/exam-periods/<exam_period_id>/active")
    @require_capability(CAN_MANAGE_EXAM_PERIODS)
    def toggle_exam_period(exam_period_id: str) -> Any:
        payload = _json_body()
        updated = exam_periods.toggle_active(exam_period_id, payload.get("isActive"))
        return jsonify(
            {
                "ok": True,
                "message": f"Exam period {'activated' if updated.is_active else 'deactivated'} successfully",
                "examPeriod": _serialize_exam_period(updated),
            }
        )

    @app.delete("/api/exam-periods/<exam_period_id>")
    @require_capability(CAN_MANAGE_EXAM_PERIODS)
    def delete_exam_period(exam_period_id: str) -> Any:
        removed = exam_periods.delete_exam_period(exam_period_id)
        return jsonify(
            {
                "ok": True,
                "message": "Exam period deleted successfully",
                "examPeriod": _serialize_exam_period(removed),
            }
        )

    return app


def _failure(error_code: str, message: str, status_code: int) -> Any:
    return jsonify({"ok": False, "error": error_code, "message": message}), status_code


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _translate(payload: Mapping[str, Any], mapping: Mapping[str, str], keep_unknown: bool = False) -> dict[str, Any]:
    translated: dict[str, Any] = {}
    for key, value in payload.items():
        if key in mapping:
            translated[mapping[key]] = value
        elif keep_unknown:
            translated[key] = value
    return translated


def _booking_filter_from_args(args: Mapping[str, str]) -> BookingFilter:
    return BookingFilter(
        lab_id=args.get("labId") or None,
        date=parse_date(args["date"]) if args.get("date") else None,
        status=parse_status(args["status"]) if args.get("status") else None,
        year_group=parse_year_group(args["yearGroup"]) if args.get("yearGroup") else None,
        is_exam=parse_bool(args["isExam"], "isExam") if args.get("isExam") else None,
        user_id=args.get("userId") or None,
    )


def _exam_period_filter_from_args(args: Mapping[str, str]) -> ExamPeriodFilter:
    return ExamPeriodFilter(
        year_group=parse_year_group(args["yearGroup"]) if args.get("yearGroup") else None,
        is_active=parse_bool(args["isActive"], "isActive") if args.get("isActive") else None,
        lab_id=args.get("labId") or None,
        covers_date=parse_date(args["date"]) if args.get("date") else None,
    )


def _serialize_booking(record: BookingRecord, labs: Mapping[str, dict[str, str]]) -> dict[str, Any]:
    return {
        "id": record.booking_id,
        "labId": record.lab_id,
        "lab": labs.get(record.lab_id),
        "date": record.date.isoformat(),
        "startTime": format_clock(record.start_time),
        "endTime": format_clock(record.end_time),
        "title": record.title,
        "purpose": record.purpose,
        "userId": record.user_id,
        "user": record.user_name,
        "studentCount": record.student_count,
        "equipment": record.equipment,
        "yearGroup": record.year_group,
        "isExam": record.is_exam,
        "status": record.status,
        "createdAt": record.created_at.isoformat(timespec="seconds"),
        "updatedAt": record.updated_at.isoformat(timespec="seconds"),
    }


def _serialize_exam_period(record: ExamPeriodRecord) -> dict[str, Any]:
    return {
        "id": record.exam_period_id,
        "name": record.name,
        "startDate": record.start_date.isoformat(),
        "endDate": record.end_date.isoformat(),
        "yearGroup": record.year_group,
        "affectedLabs": list(record.affected_labs),
        "isActive": record.is_active,
        "createdAt": record.created_at.isoformat(timespec="seconds"),
        "updatedAt": record.updated_at.isoformat(timespec="seconds"),
    }


def _serialize_lab(lab: LabRecord) -> dict[str, Any]:
    return {
        "id": lab.lab_id,
        "name": lab.name,
        "building": lab.building,
        "location": lab.location,
        "capacity": lab.capacity,
        "description": lab.description,
        "equipment": list(lab.equipment),
        "openingHours": {day: hours.to_dict() for day, hours in lab.opening_hours.items()},
        "status": lab.status,
    }


if __name__ == "__main__":
    configure_logging()
    app = create_app()
    app.run(host=default_settings.host, port=default_settings.port, debug=False)
