# Overview: Flask API routes for membership plans and customer memberships.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors, require_json
from ..services import membership_service

memberships_bp = Blueprint("memberships", __name__, url_prefix="/api/memberships")


@memberships_bp.get("/plans")
@json_errors("list membership plans")
def list_plans_route():
    return jsonify([p.to_dict() for p in membership_service.get_plans()]), 200


@memberships_bp.post("/plans")
@require_json("name", "price")
@json_errors("create membership plan")
def create_plan_route():
    plan = membership_service.create_plan(request.get_json())
    return jsonify(plan.to_dict()), 201


@memberships_bp.patch("/plans/<int:plan_id>")
@require_json()
@json_errors("update membership plan")
def update_plan_route(plan_id: int):
    plan = membership_service.update_plan(plan_id, request.get_json())
    return jsonify(plan.to_dict()), 200


@memberships_bp.delete("/plans/<int:plan_id>")
@json_errors("delete membership plan")
def delete_plan_route(plan_id: int):
    plan = membership_service.deactivate_plan(plan_id)
    return jsonify({"success": True, "plan": plan.to_dict()}), 200


@memberships_bp.post("/purchase")
@require_json("customer_id", "plan_id")
@json_errors("purchase membership")
def purchase_route():
    data = request.get_json()
    membership = membership_service.purchase_membership(
        data["customer_id"], data["plan_id"], bool(data.get("auto_renew", False)),
    )
    return jsonify({
        "membership": membership.to_dict(include_plan=True),
        "bonus_points": membership.plan.points_on_purchase,
    }), 201


@memberships_bp.get("/customers/<int:customer_id>/active")
@json_errors("load active membership")
def active_membership_route(customer_id: int):
    membership = membership_service.get_active_membership(customer_id)
    return jsonify({"membership": membership.to_dict(include_plan=True) if membership else None}), 200


@memberships_bp.post("/quote")
@require_json("hours")
@json_errors("quote time charges")
def quote_route():
    data = request.get_json()
    quote = membership_service.calculate_time_charges(
        data.get("customer_id"), data["hours"], data.get("regular_hourly_rate"),
    )
    return jsonify(quote), 200


@memberships_bp.post("/<int:membership_id>/usage")
@require_json("hours")
@json_errors("track membership usage")
def track_usage_route(membership_id: int):
    data = request.get_json()
    result = membership_service.track_hour_usage(
        membership_id, data["hours"], data.get("seat_session_id"), data.get("description"),
    )
    return jsonify(result.to_dict()), 201


@memberships_bp.get("/<int:membership_id>/usage")
@json_errors("list membership usage")
def usage_history_route(membership_id: int):
    rows = membership_service.get_usage_history(membership_id)
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@memberships_bp.post("/<int:membership_id>/renew")
@json_errors("renew membership")
def renew_route(membership_id: int):
    data = request.get_json(silent=True) or {}
    renewed = membership_service.renew_membership(
        membership_id, bool(data.get("carry_over_unused_hours", False)),
    )
    return jsonify({"membership": renewed.to_dict(include_plan=True)}), 201


@memberships_bp.post("/<int:membership_id>/cancel")
@json_errors("cancel membership")
def cancel_route(membership_id: int):
    membership = membership_service.cancel_membership(membership_id)
    return jsonify({"membership": membership.to_dict()}), 200


@memberships_bp.get("/stats")
@json_errors("load membership stats")
def stats_route():
    return jsonify(membership_service.get_membership_stats()), 200
