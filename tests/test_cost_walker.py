"""
Resource classification and element walking.

Tests verify:
1. Classification — workforce/composite/material kinds, unknown types price as material
2. total_count = resource count × product result count × element count
3. Walk order — build before demolish, element → product result → resource
4. Dangling references contribute nothing
5. Labor time and material price rollups
"""

import pytest

from buildquote.cost_walker import ElementCostWalker
from buildquote.models import ResourceType
from buildquote.resource_classifier import classify, resource_kind
from buildquote.schemas import (
    BuildingElementUsage, ProductResult, ProductResultUsage, Resource, ResourceUsage,
)


LABOR = Resource(id="labor", name="Carpenter", type="workforce", price=0.0)
PANEL = Resource(id="panel", name="Panel", type="composite", price=12.0)
NAILS = Resource(id="nails", name="Nails", type="material", price=0.5)


def product_result(pr_id, *usages, time=1.0):
    return ProductResult(
        id=pr_id, title=pr_id, time=time,
        resources=[ResourceUsage(resource_id=r.id if r else "gone", resource=r, count=c) for r, c in usages],
    )


def element_usage(element_id, count, *pr_usages):
    return BuildingElementUsage(
        element_id=element_id, count=count,
        product_results=[
            ProductResultUsage(product_result_id=pr.id if pr else "gone", product_result=pr, count=c)
            for pr, c in pr_usages
        ],
    )


# ============================================================
# Classification
# ============================================================

def test_resource_kind_known_types():
    assert resource_kind("workforce") == ResourceType.WORKFORCE
    assert resource_kind("composite") == ResourceType.COMPOSITE
    assert resource_kind("material") == ResourceType.MATERIAL


def test_resource_kind_unknown_type_is_material():
    assert resource_kind("equipment") == ResourceType.MATERIAL
    assert resource_kind("") == ResourceType.MATERIAL


def test_classify_scales_count_through_both_levels():
    contribution = classify(ResourceUsage(resource_id="nails", resource=NAILS, count=4), 2, 3)
    assert contribution.kind == ResourceType.MATERIAL
    assert contribution.total_count == 24
    assert contribution.unit_price == 0.5
    assert contribution.resource_name == "Nails"


def test_classify_workforce_carries_no_unit_price():
    contribution = classify(ResourceUsage(resource_id="labor", resource=LABOR, count=1.5), 2, 1)
    assert contribution.kind == ResourceType.WORKFORCE
    assert contribution.total_count == 3
    assert contribution.unit_price is None


def test_classify_unresolved_resource_is_skipped():
    assert classify(ResourceUsage(resource_id="gone", resource=None, count=5), 1, 1) is None


# ============================================================
# Walk
# ============================================================

def test_walk_order_build_then_demolish():
    framing = product_result("framing", (LABOR, 1), (NAILS, 10))
    cladding = product_result("cladding", (PANEL, 2))
    removal = product_result("removal", (LABOR, 3))

    build = [element_usage("wall", 2, (framing, 1), (cladding, 1))]
    demolish = [element_usage("old-wall", 1, (removal, 1))]

    contributions = list(ElementCostWalker().walk(build, demolish))
    assert [(c.resource_id, c.total_count) for c in contributions] == [
        ("labor", 2), ("nails", 20), ("panel", 4), ("labor", 3),
    ]


def test_walk_skips_dangling_references():
    """A deleted resource or product result contributes nothing and does not raise."""
    framing = product_result("framing", (None, 5), (NAILS, 1))
    build = [
        element_usage("wall", 1, (framing, 1), (None, 3)),
        BuildingElementUsage(element_id="empty", count=4),
    ]
    contributions = list(ElementCostWalker().walk(build))
    assert [c.resource_id for c in contributions] == ["nails"]


def test_walk_is_repeatable():
    framing = product_result("framing", (LABOR, 1), (NAILS, 10))
    build = [element_usage("wall", 2, (framing, 1))]
    walker = ElementCostWalker()
    assert list(walker.walk(build)) == list(walker.walk(build))


# ============================================================
# Rollups
# ============================================================

def test_labor_time_sums_product_result_time_per_element():
    framing = product_result("framing", (LABOR, 1), time=2.0)
    cladding = product_result("cladding", (PANEL, 1), time=0.5)
    elements = [element_usage("wall", 3, (framing, 2), (cladding, 4))]
    # 3 × (2 × 2.0 + 4 × 0.5)
    assert ElementCostWalker().labor_time(elements) == pytest.approx(18.0)


def test_material_price_excludes_workforce_and_counts_composites_at_catalog_price():
    framing = product_result("framing", (LABOR, 5), (NAILS, 10), (PANEL, 1))
    elements = [element_usage("wall", 2, (framing, 1))]
    # nails 10 × 2 × 0.5 + panel 1 × 2 × 12
    assert ElementCostWalker().material_price(elements) == pytest.approx(34.0)
