"""
Planner reconciliation — scene counts to element usages.
"""

import json
from unittest.mock import MagicMock

import pytest

from buildquote.errors import RuleViolationError
from buildquote.planner_openings import DEFAULT_DOOR_IDS, OpeningTables
from buildquote.planner_reconciler import PlannerReconciler
from buildquote.schemas import (
    BuildingElement, BuildingElementUsage, ProductResult, ProductResultUsage, Project, Scene,
)


BUILD_PR = ProductResultUsage(product_result_id="pr-build", product_result=ProductResult(id="pr-build"), count=1)
DEMO_PR = ProductResultUsage(product_result_id="pr-demo", product_result=ProductResult(id="pr-demo"), count=1)


def element(element_id, external_id=None):
    return BuildingElement(id=element_id, name=element_id, planner_external_id=external_id,
                           product_results=[BUILD_PR], demolished_product_results=[DEMO_PR])


class FakeCatalog:
    def __init__(self, *elements):
        self.elements = {e.id: e for e in elements}

    def get_by_id(self, element_id):
        return self.elements.get(element_id)

    def get_by_ids(self, element_ids):
        return {eid: self.elements[eid] for eid in element_ids if eid in self.elements}

    def get_by_external_ids(self, external_ids):
        return {e.planner_external_id: e for e in self.elements.values() if e.planner_external_id in external_ids}


CATALOG = FakeCatalog(element("wall"), element("floor"), element("window"), element("door", external_id="D1"))
TABLES = OpeningTables(window_ids=["W1", "W2"], door_ids=["D1"])


def project(**kwargs):
    values = dict(id="p1", planner_key="key-1", default_building_elements={"window": "window"})
    values.update(kwargs)
    return Project(**values)


def counts(usages):
    return [(u.element_id, u.count) for u in usages]


# ============================================================
# Reconcile
# ============================================================

def test_windows_aggregate_into_default_window():
    scene = Scene(build_doors_and_windows={"W1": 2, "W2": 3, "D1": 1})
    result = PlannerReconciler(TABLES).reconcile(scene, project(), CATALOG)
    assert counts(result.build_elements) == [("door", 1), ("window", 5)]
    assert result.demolish_elements == []
    assert not result.degraded


def test_result_order_and_preserved_3d_usages():
    kept = BuildingElementUsage(element_id="stairs", count=1, from_3d=True)
    dropped = BuildingElementUsage(element_id="old", count=4)
    scene = Scene(build={"floor": 10, "wall": 4}, build_doors_and_windows={"W1": 1, "D1": 2})

    result = PlannerReconciler(TABLES).reconcile(scene, project(build_elements=[kept, dropped]), CATALOG)
    assert counts(result.build_elements) == [
        ("stairs", 1), ("floor", 10), ("wall", 4), ("door", 2), ("window", 1),
    ]


def test_demolish_side_uses_demolished_recipes():
    scene = Scene(demolish={"wall": 2}, demolish_doors_and_windows={"W2": 1, "D1": 1})
    result = PlannerReconciler(TABLES).reconcile(scene, project(), CATALOG)

    assert result.build_elements == []
    assert counts(result.demolish_elements) == [("wall", 2), ("door", 1), ("window", 1)]
    assert all(u.product_results == [DEMO_PR] for u in result.demolish_elements)


def test_unknown_ids_are_ignored():
    scene = Scene(build={"ghost": 3, "wall": 1}, build_doors_and_windows={"X9": 7, "W1": 0})
    result = PlannerReconciler(TABLES).reconcile(scene, project(), CATALOG)
    assert counts(result.build_elements) == [("wall", 1)]


def test_missing_default_window_raises():
    scene = Scene(build_doors_and_windows={"W1": 2})
    with pytest.raises(RuleViolationError):
        PlannerReconciler(TABLES).reconcile(scene, project(default_building_elements={}), CATALOG)


# ============================================================
# Planner client failures
# ============================================================

@pytest.mark.parametrize("response", [
    {"error": "timeout"},
    {"result": {"error": True, "errorMessage": "Project not found"}},
    {"result": {"errorMessage": "Project not found"}},
])
def test_planner_error_degrades_and_leaves_project_unchanged(response):
    client = MagicMock()
    client.get_scene_by_key.return_value = response
    p = project(build_elements=[BuildingElementUsage(element_id="wall", count=3)])

    result = PlannerReconciler(TABLES).reconcile_from_client(p, client, CATALOG)
    assert result.degraded
    assert result.reason
    assert result.build_elements == []
    assert counts(p.build_elements) == [("wall", 3)]


def test_reconcile_from_client_parses_scene():
    client = MagicMock()
    client.get_scene_by_key.return_value = {"result": {
        "build": {"wall": 2}, "demolish": {},
        "buildDoorsAndWindows": {"W1": 1, "W2": 1}, "demolishDoorsAndWindows": {},
    }}
    result = PlannerReconciler(TABLES).reconcile_from_client(project(), client, CATALOG)
    client.get_scene_by_key.assert_called_once_with("key-1")
    assert counts(result.build_elements) == [("wall", 2), ("window", 2)]


# ============================================================
# Opening tables
# ============================================================

def test_partition_keeps_input_order():
    doors, windows = TABLES.partition(["W2", "D1", "zz", "W1"])
    assert doors == ["D1"]
    assert windows == ["W2", "W1"]


def test_opening_tables_load_from_file(tmp_path):
    path = tmp_path / "openings.json"
    path.write_text(json.dumps({"windows": ["w-a"], "doors": ["d-a", "d-b"]}))
    tables = OpeningTables.load(str(path))
    assert tables.is_window("w-a")
    assert tables.is_door("d-b")
    assert not tables.is_door("n_door_1")


def test_opening_tables_fall_back_to_defaults(tmp_path):
    tables = OpeningTables.load(str(tmp_path / "missing.json"))
    assert tables.door_ids == frozenset(DEFAULT_DOOR_IDS)


def test_opening_tables_fall_back_for_directory_path(tmp_path):
    tables = OpeningTables.load(str(tmp_path))
    assert tables.door_ids == frozenset(DEFAULT_DOOR_IDS)


def test_opening_tables_fall_back_for_non_object_json(tmp_path):
    path = tmp_path / "openings.json"
    path.write_text(json.dumps(["w-a", "d-a"]))
    tables = OpeningTables.load(str(path))
    assert tables.door_ids == frozenset(DEFAULT_DOOR_IDS)
    assert not tables.is_window("w-a")
