"""
Routes for the employees blueprint.
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.employees import bp
from app.decorators import permission_required
from app.exceptions import NotFoundError
from app.services import employee_service, import_service
from app.services.validation import parse_bool


@bp.route("", methods=["GET"])
@login_required
@permission_required("employee.view")
def list_employees():
    """Employees ordered by name; ``search`` and ``active`` filter."""
    employees = employee_service.get_employees(
        search=request.args.get("search"),
        active=parse_bool(request.args.get("active")),
    )
    return jsonify({"employees": [e.to_dict() for e in employees]})


@bp.route("/<employee_pk>", methods=["GET"])
@login_required
@permission_required("employee.view")
def get_employee(employee_pk):
    employee = employee_service.get_employee_by_id(employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")
    return jsonify({"employee": employee.to_dict()})


@bp.route("", methods=["POST"])
@login_required
@permission_required("employee.manage")
def create_employee():
    data = request.get_json(silent=True) or {}
    employee = employee_service.create_employee(data, user_id=current_user.id)
    return jsonify({"employee": employee.to_dict()}), 201


@bp.route("/<employee_pk>", methods=["PUT"])
@login_required
@permission_required("employee.manage")
def update_employee(employee_pk):
    data = request.get_json(silent=True) or {}
    employee = employee_service.update_employee(employee_pk, data, user_id=current_user.id)
    return jsonify({"employee": employee.to_dict()})


@bp.route("/<employee_pk>", methods=["DELETE"])
@login_required
@permission_required("employee.manage")
def delete_employee(employee_pk):
    unlinked = employee_service.delete_employee(employee_pk, user_id=current_user.id)
    return jsonify({"message": "Employee deleted", "unlinkedAssets": unlinked})


@bp.route("/import", methods=["POST"])
@login_required
@permission_required("employee.manage")
def import_employees():
    """Import from a CSV upload (``file``) or JSON ``{"employees": [...]}``."""
    if "file" in request.files:
        rows = import_service.parse_employee_csv(
            import_service.read_text(request.files["file"])
        )
    else:
        data = request.get_json(silent=True) or {}
        rows = data.get("employees")
    result = employee_service.import_employees(rows, user_id=current_user.id)
    return jsonify(result)
