"""
Dashboard service: summary figures for the landing page.
"""

import logging

from sqlalchemy import func

from app.extensions import db
from app.models.asset import CHECKOUT_OUT, Asset, AssetCheckout
from app.models.employee import Employee
from app.models.lookup import Category, Site
from app.models.stock_opname import SESSION_ACTIVE, SOSession

logger = logging.getLogger(__name__)


def _count(model) -> int:
    return db.session.query(func.count(model.id)).scalar() or 0


def _grouped(column, label_model=None) -> list[dict]:
    """Asset counts grouped by ``column``; lookup ids resolved to names."""
    rows = (
        db.session.query(column, func.count(Asset.id))
        .group_by(column)
        .order_by(func.count(Asset.id).desc())
        .all()
    )
    names = {}
    if label_model is not None:
        names = dict(db.session.query(label_model.id, label_model.name).all())
    result = []
    for key, count in rows:
        if label_model is not None:
            label = names.get(key, "Unassigned") if key else "Unassigned"
        else:
            label = key or "Unknown"
        result.append({"id": key, "name": label, "count": count})
    return result


def get_summary(recent_limit: int = 5) -> dict:
    """Collect totals, breakdowns and recent activity in one payload."""
    active = (
        SOSession.query.filter_by(status=SESSION_ACTIVE)
        .order_by(SOSession.created_at.desc())
        .first()
    )
    active_summary = None
    if active is not None:
        scanned = active.entries.count()
        active_summary = {
            "id": active.id,
            "name": active.name,
            "year": active.year,
            "totalAssets": active.total_assets,
            "scanned": scanned,
            "completionRate": (
                round(scanned / active.total_assets * 100, 2)
                if active.total_assets
                else 0.0
            ),
        }

    recent = Asset.query.order_by(Asset.created_at.desc()).limit(recent_limit).all()
    open_checkouts = (
        db.session.query(func.count(AssetCheckout.id))
        .filter(AssetCheckout.status == CHECKOUT_OUT)
        .scalar()
        or 0
    )

    return {
        "totals": {
            "assets": _count(Asset),
            "employees": _count(Employee),
            "sites": _count(Site),
            "categories": _count(Category),
        },
        "assetsByStatus": _grouped(Asset.status),
        "assetsByCategory": _grouped(Asset.category_id, Category),
        "assetsBySite": _grouped(Asset.site_id, Site),
        "activeSession": active_summary,
        "openCheckouts": open_checkouts,
        "recentAssets": [a.to_dict(include_relations=False) for a in recent],
    }
