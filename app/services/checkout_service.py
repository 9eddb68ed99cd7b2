"""
Check-out service: handing assets to employees and taking them back.

A check-out record starts ``OUT`` and becomes ``RETURNED`` once.  Each
transition records an asset event so the asset's history shows who had
it and when.
"""

import logging

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.asset import (
    CHECKOUT_OUT,
    CHECKOUT_RETURNED,
    EVENT_CHECK_IN,
    EVENT_CHECK_OUT,
    Asset,
    AssetCheckout,
)
from app.models.employee import Employee
from app.models.lookup import Department
from app.models.mixins import utcnow
from app.services import asset_event_service, audit_service
from app.services.validation import optional_text, parse_datetime

logger = logging.getLogger(__name__)


def get_checkout(checkout_id: str) -> AssetCheckout | None:
    return db.session.get(AssetCheckout, checkout_id)


def get_checkouts(
    asset_id: str | None = None,
    status: str | None = None,
    start_date=None,
    end_date=None,
    limit: int | None = 50,
) -> list[AssetCheckout]:
    """
    Return check-out records, newest checkout date first.

    Unparseable dates are ignored rather than rejected.
    """
    query = AssetCheckout.query
    if asset_id:
        query = query.filter(AssetCheckout.asset_id == asset_id)
    if status:
        query = query.filter(AssetCheckout.status == status)
    for value, is_start in ((start_date, True), (end_date, False)):
        try:
            parsed = parse_datetime(value)
        except ValidationError:
            parsed = None
        if parsed is None:
            continue
        if is_start:
            query = query.filter(AssetCheckout.checkout_date >= parsed)
        else:
            query = query.filter(AssetCheckout.checkout_date <= parsed)
    query = query.order_by(AssetCheckout.checkout_date.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_open_checkout(asset_id: str) -> AssetCheckout | None:
    return AssetCheckout.query.filter_by(asset_id=asset_id, status=CHECKOUT_OUT).first()


def check_out(data: dict, actor=None) -> AssetCheckout:
    """
    Check an asset out to an employee.

    Args:
        data:  ``assetId``, ``assignToId``, ``checkoutDate`` (required),
               ``departmentId``, ``dueDate``, ``notes``, ``signature``.
        actor: The user performing the check-out.

    Raises:
        ValidationError: Missing or malformed fields.
        NotFoundError:   Unknown asset, employee or department.
        ConflictError:   The asset is already checked out.
    """
    asset_id = optional_text(data.get("assetId"))
    assign_to_id = optional_text(data.get("assignToId"))
    checkout_date_text = data.get("checkoutDate")
    if not asset_id or not assign_to_id or not checkout_date_text:
        raise ValidationError("assetId, assignToId, and checkoutDate are required")

    asset = db.session.get(Asset, asset_id)
    if asset is None:
        raise NotFoundError("Asset not found")
    assign_to = db.session.get(Employee, assign_to_id)
    if assign_to is None:
        raise NotFoundError("Employee not found")

    department_id = optional_text(data.get("departmentId"))
    if department_id and db.session.get(Department, department_id) is None:
        raise NotFoundError("Department not found")

    checkout_date = parse_datetime(checkout_date_text, "checkoutDate")
    due_date = parse_datetime(data.get("dueDate"), "dueDate")

    if get_open_checkout(asset.id) is not None:
        raise ConflictError(f"Asset {asset.no_asset} is already checked out")

    signature = data.get("signature")
    checkout = AssetCheckout(
        asset_id=asset.id,
        assign_to_id=assign_to.id,
        department_id=department_id,
        checkout_date=checkout_date,
        due_date=due_date,
        notes=optional_text(data.get("notes")),
        signature_data=signature if isinstance(signature, str) and signature else None,
        status=CHECKOUT_OUT,
    )
    db.session.add(checkout)
    db.session.flush()

    asset_event_service.record_event(
        asset_id=asset.id,
        event_type=EVENT_CHECK_OUT,
        actor=getattr(actor, "name", None),
        checkout_id=checkout.id,
        payload={
            "assignTo": {
                "id": assign_to.id,
                "name": assign_to.name,
                "employeeId": assign_to.employee_id,
            },
            "departmentId": department_id,
            "checkoutDate": checkout_date.isoformat(),
            "dueDate": due_date.isoformat() if due_date else None,
            "notes": checkout.notes,
        },
    )
    audit_service.log_change(
        user_id=getattr(actor, "id", None),
        action_type="CHECK_OUT",
        entity_type="asset_checkout",
        entity_id=checkout.id,
        new_value={"assetId": asset.id, "assignToId": assign_to.id},
    )
    db.session.commit()

    logger.info("Asset %s checked out to %s", asset.no_asset, assign_to.name)
    return checkout


def check_in(checkout_id: str, data: dict, actor=None) -> AssetCheckout:
    """
    Return a checked-out asset.

    Args:
        data: ``returnedAt`` (defaults to now), ``receivedById``,
              ``returnNotes``, ``signature``.

    Raises:
        NotFoundError:   Unknown check-out or receiving employee.
        ConflictError:   Already returned.
        ValidationError: Malformed date.
    """
    checkout = get_checkout(checkout_id)
    if checkout is None:
        raise NotFoundError("Checkout record not found")
    if checkout.status == CHECKOUT_RETURNED:
        raise ConflictError("Checkout already returned")

    returned_at = parse_datetime(data.get("returnedAt"), "returnedAt") or utcnow()

    received_by = None
    received_by_id = optional_text(data.get("receivedById"))
    if received_by_id:
        received_by = db.session.get(Employee, received_by_id)
        if received_by is None:
            raise NotFoundError("Receiving employee not found")

    signature = data.get("signature")
    checkout.status = CHECKOUT_RETURNED
    checkout.returned_at = returned_at
    checkout.received_by_id = received_by_id
    checkout.return_notes = optional_text(data.get("returnNotes"))
    checkout.return_signature_data = (
        signature if isinstance(signature, str) and signature else None
    )

    asset_event_service.record_event(
        asset_id=checkout.asset_id,
        event_type=EVENT_CHECK_IN,
        actor=getattr(actor, "name", None),
        checkout_id=checkout.id,
        payload={
            "receivedBy": received_by.name if received_by else None,
            "assignTo": {
                "id": checkout.assign_to_id,
                "name": checkout.assign_to.name if checkout.assign_to else None,
            },
            "returnedAt": returned_at.isoformat(),
            "notes": checkout.return_notes,
        },
    )
    audit_service.log_change(
        user_id=getattr(actor, "id", None),
        action_type="CHECK_IN",
        entity_type="asset_checkout",
        entity_id=checkout.id,
        previous_value={"status": CHECKOUT_OUT},
        new_value={"status": CHECKOUT_RETURNED},
    )
    db.session.commit()

    logger.info("Check-out %s returned", checkout.id)
    return checkout
