"""
Resource classifier — tags a single resource usage for cost aggregation.

Workforce and composite resources are priced per organization (hourly rates,
square-meter rates), so they carry no unit price here. Everything else is a
material with a fixed catalog price.
"""

from typing import Optional

from .models import ResourceType
from .schemas import Contribution, ResourceUsage

_ORG_PRICED = {
    ResourceType.WORKFORCE.value: ResourceType.WORKFORCE,
    ResourceType.COMPOSITE.value: ResourceType.COMPOSITE,
}


def resource_kind(resource_type: str) -> ResourceType:
    """Any type other than workforce/composite prices as material."""
    return _ORG_PRICED.get(resource_type, ResourceType.MATERIAL)


def classify(usage: ResourceUsage, product_result_count: float,
             element_count: float) -> Optional[Contribution]:
    """
    Build the contribution of one resource usage inside a product result
    inside an element usage.

    total_count = resource count × product result count × element count

    Returns None when the resource reference no longer resolves; a deleted
    resource contributes nothing and is not reported as missing.
    """
    resource = usage.resource
    if resource is None or not resource.id:
        return None

    kind = resource_kind(resource.type)
    total_count = usage.count * product_result_count * element_count
    return Contribution(
        kind=kind,
        resource_id=resource.id,
        resource_name=resource.name,
        total_count=total_count,
        unit_price=resource.price if kind == ResourceType.MATERIAL else None,
    )
