# Overview: Flask API routes for loyalty points; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import json_errors, require_json
from ..services import points_service

points_bp = Blueprint("points", __name__, url_prefix="/api/points")


@points_bp.get("/settings")
@json_errors("load points settings")
def get_settings_route():
    return jsonify(points_service.get_settings().to_dict()), 200


@points_bp.put("/settings")
@require_json()
@json_errors("update points settings")
def update_settings_route():
    data = request.get_json()
    settings = points_service.update_settings(
        regular_earn_rate=data.get("regular_earn_rate"),
        member_earn_rate=data.get("member_earn_rate"),
        points_per_yen=data.get("points_per_yen"),
    )
    return jsonify(settings.to_dict()), 200


@points_bp.get("/transactions")
@json_errors("list points transactions")
def list_transactions_route():
    rows = points_service.list_transactions(
        customer_id=request.args.get("customer_id", type=int),
        order_ref=request.args.get("order_ref"),
        limit=request.args.get("limit", default=50, type=int),
    )
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@points_bp.get("/liability")
@json_errors("compute points liability")
def liability_route():
    return jsonify({"total_points": points_service.get_total_points_liability()}), 200


@points_bp.get("/customers/<int:customer_id>")
@json_errors("load customer points")
def customer_points_route(customer_id: int):
    customer = points_service.get_customer(customer_id)
    limit = request.args.get("limit", default=50, type=int)
    history = points_service.get_points_history(customer_id, limit=limit)
    return jsonify({
        "customer_id": customer.id,
        "points_balance": customer.points_balance,
        "history": [r.to_dict() for r in history],
    }), 200


@points_bp.post("/customers/<int:customer_id>/quote")
@require_json("amount")
@json_errors("quote points")
def quote_points_route(customer_id: int):
    """Points a paid amount (minor units) would earn for this customer."""
    data = request.get_json()
    points = points_service.calculate_points_earned(data["amount"], customer_id)
    return jsonify({"customer_id": customer_id, "points": points}), 200


@points_bp.post("/customers/<int:customer_id>/award")
@require_json("amount")
@json_errors("award points")
def award_points_route(customer_id: int):
    data = request.get_json()
    result = points_service.award_points(
        customer_id, data["amount"], data.get("order_ref"), data.get("description"),
    )
    return jsonify(result.to_dict()), 201


@points_bp.post("/customers/<int:customer_id>/redeem")
@require_json("points")
@json_errors("redeem points")
def redeem_points_route(customer_id: int):
    data = request.get_json()
    result = points_service.redeem_points(
        customer_id, data["points"], data.get("order_ref"), data.get("description"),
    )
    return jsonify(result.to_dict()), 201


@points_bp.post("/customers/<int:customer_id>/refund")
@require_json("points")
@json_errors("refund points")
def refund_points_route(customer_id: int):
    data = request.get_json()
    result = points_service.refund_points(
        customer_id, data["points"], data.get("order_ref"), data.get("description"),
    )
    return jsonify(result.to_dict()), 201


@points_bp.post("/customers/<int:customer_id>/adjust")
@require_json("amount", "reason")
@json_errors("adjust points")
def adjust_points_route(customer_id: int):
    data = request.get_json()
    result = points_service.adjust_points(customer_id, data["amount"], data["reason"])
    return jsonify(result.to_dict()), 201
