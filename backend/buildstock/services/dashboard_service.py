# Overview: Aggregate counts for the dashboard, scoped to the caller.

from __future__ import annotations

from sqlalchemy import func

from ..models import InventoryRecord, InventoryRequest, Location, Product
from ..models.inventory import PRODUCT_ACTIVE, PRODUCT_PENDING_APPROVAL, REQUEST_PENDING
from ..models.locations import LOCATION_SITE, LOCATION_STORE
from .access_service import CallerContext, scoped_filter


def dashboard_stats(session, caller: CallerContext) -> dict:
    """
    Headline numbers.

    Super admins get system-wide totals; staff get the same figures for
    their own location (or zeros when unassigned).
    """
    locations = scoped_filter(caller, session.query(Location), Location.id)
    records = scoped_filter(caller, session.query(InventoryRecord), InventoryRecord.location_id)
    requests = scoped_filter(caller, session.query(InventoryRequest), InventoryRequest.location_id)

    total_quantity = records.with_entities(func.coalesce(func.sum(InventoryRecord.quantity), 0)).scalar()

    stats = {
        "stores": locations.filter(Location.type == LOCATION_STORE).count(),
        "sites": locations.filter(Location.type == LOCATION_SITE).count(),
        "inventory_records": records.count(),
        "inventory_quantity": int(total_quantity or 0),
        "pending_requests": requests.filter(InventoryRequest.status == REQUEST_PENDING).count(),
    }
    if caller.is_super_admin:
        stats["active_products"] = session.query(Product).filter(Product.status == PRODUCT_ACTIVE).count()
        stats["pending_products"] = session.query(Product).filter(Product.status == PRODUCT_PENDING_APPROVAL).count()
    return stats
