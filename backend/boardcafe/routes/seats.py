# Overview: Flask API routes for seat sessions and live time billing quotes.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors, require_json
from ..services import seat_session_service, time_billing_service
from ..validation import ValidationError

seats_bp = Blueprint("seats", __name__, url_prefix="/api")


@seats_bp.post("/seats/sessions")
@require_json("seat_label")
@json_errors("open seat session")
def open_session_route():
    data = request.get_json()
    session = seat_session_service.open_session(
        data["seat_label"],
        customer_id=data.get("customer_id"),
        order_ref=data.get("order_ref"),
        start_timer=bool(data.get("start_timer", True)),
    )
    return jsonify({"session": session.to_dict()}), 201


@seats_bp.get("/seats/sessions/<int:session_id>")
@json_errors("load seat session")
def get_session_route(session_id: int):
    return jsonify({"session": seat_session_service.get_session(session_id).to_dict()}), 200


@seats_bp.post("/seats/sessions/<int:session_id>/start")
@json_errors("start seat timer")
def start_timer_route(session_id: int):
    session = seat_session_service.start_timer(session_id)
    return jsonify({"session": session.to_dict()}), 200


@seats_bp.get("/seats/sessions/<int:session_id>/charge")
@json_errors("quote seat charge")
def charge_route(session_id: int):
    return jsonify(seat_session_service.current_charge(session_id)), 200


@seats_bp.post("/seats/sessions/<int:session_id>/stop")
@json_errors("stop seat timer")
def stop_timer_route(session_id: int):
    result = seat_session_service.stop_timer(session_id)
    return jsonify(result.to_dict()), 200


@seats_bp.post("/seats/sessions/<int:session_id>/close")
@json_errors("close seat session")
def close_session_route(session_id: int):
    session = seat_session_service.close_session(session_id)
    return jsonify({"session": session.to_dict()}), 200


@seats_bp.get("/billing/quote")
@json_errors("quote time billing")
def billing_quote_route():
    """Quote by ?minutes=N or by ?started_at=<ISO-8601> against now."""
    started_at = request.args.get("started_at")
    if started_at:
        billing = time_billing_service.get_estimated_charge(started_at)
    else:
        minutes = request.args.get("minutes", type=int)
        if minutes is None:
            raise ValidationError("minutes or started_at is required")
        billing = time_billing_service.calculate_time_charge(minutes)

    data = billing.to_dict()
    data["description"] = time_billing_service.get_time_charge_description(billing)
    data["formatted"] = time_billing_service.format_time_charge(billing.total_charge)
    return jsonify(data), 200
