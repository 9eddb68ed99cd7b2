"""
Routes for the check-outs blueprint.
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.check_outs import bp
from app.decorators import permission_required
from app.exceptions import NotFoundError
from app.services import checkout_service
from app.services.validation import parse_int


@bp.route("", methods=["GET"])
@login_required
@permission_required("checkout.view")
def list_checkouts():
    """
    Check-out records, newest first.

    ``id`` fetches a single record; otherwise ``assetId``, ``status``,
    ``startDate``, ``endDate`` and ``limit`` (max 100) filter the list.
    """
    checkout_id = request.args.get("id")
    if checkout_id:
        checkout = checkout_service.get_checkout(checkout_id)
        if checkout is None:
            raise NotFoundError("Checkout record not found")
        return jsonify({"checkout": checkout.to_dict()})

    checkouts = checkout_service.get_checkouts(
        asset_id=request.args.get("assetId"),
        status=request.args.get("status"),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
        limit=parse_int(request.args.get("limit"), 50, minimum=1, maximum=100),
    )
    return jsonify({"checkouts": [c.to_dict() for c in checkouts]})


@bp.route("", methods=["POST"])
@login_required
@permission_required("checkout.manage")
def create_checkout():
    data = request.get_json(silent=True) or {}
    checkout = checkout_service.check_out(data, actor=current_user)
    return jsonify({"checkout": checkout.to_dict()}), 201


@bp.route("/<checkout_id>/return", methods=["POST"])
@login_required
@permission_required("checkout.manage")
def return_checkout(checkout_id):
    data = request.get_json(silent=True) or {}
    checkout = checkout_service.check_in(checkout_id, data, actor=current_user)
    return jsonify({"checkout": checkout.to_dict()})
