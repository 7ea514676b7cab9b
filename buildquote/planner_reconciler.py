"""
Planner reconciler — maps a planner scene onto a project's element lists.

Build side, in order:
    1. usages already marked from_3d (kept as they are)
    2. plain scene elements, resolved by catalog id
    3. doors, resolved by planner external id
    4. one usage of the project's default window carrying the summed window count

The demolish side mirrors this with the demolished recipes and starts empty.
"""

import logging
from typing import Dict, List

from .errors import RuleViolationError
from .planner_client import parse_scene, planner_error
from .planner_openings import OpeningTables
from .schemas import BuildingElement, BuildingElementUsage, Project, ReconcileResult, Scene

logger = logging.getLogger(__name__)

WINDOW_ROLE = "window"


class PlannerReconciler:

    def __init__(self, opening_tables: OpeningTables = None):
        self.opening_tables = opening_tables or OpeningTables.default()

    def reconcile(self, scene: Scene, project: Project, catalog) -> ReconcileResult:
        build = [usage for usage in project.build_elements if usage.from_3d]
        build += self._reconcile_side(scene.build, scene.build_doors_and_windows,
                                      project, catalog, demolish=False)
        demolish = self._reconcile_side(scene.demolish, scene.demolish_doors_and_windows,
                                        project, catalog, demolish=True)
        return ReconcileResult(build_elements=build, demolish_elements=demolish)

    def reconcile_from_client(self, project: Project, client, catalog) -> ReconcileResult:
        """
        Fetch the project's scene and reconcile it. A planner failure yields a
        degraded result and leaves the project untouched.
        """
        response = client.get_scene_by_key(project.planner_key)
        error = planner_error(response)
        if error:
            logger.warning("Planner sync of project %s degraded: %s", project.id, error)
            return ReconcileResult.degraded_with(error)
        return self.reconcile(parse_scene(response), project, catalog)

    def _reconcile_side(self, plain_counts: Dict[str, float], opening_counts: Dict[str, float],
                        project: Project, catalog, demolish: bool) -> List[BuildingElementUsage]:
        usages = []

        if plain_counts:
            resolved = catalog.get_by_ids(list(plain_counts))
            for element_id, count in plain_counts.items():
                element = resolved.get(element_id)
                if element is None:
                    logger.debug("Planner element %s is not in the catalog", element_id)
                    continue
                usages.append(self._usage(element, count, demolish))

        if not opening_counts:
            return usages

        door_ids, window_ids = self.opening_tables.partition(opening_counts)
        if door_ids:
            doors = catalog.get_by_external_ids(door_ids)
            for door_id in door_ids:
                element = doors.get(door_id)
                if element is None:
                    logger.debug("No catalog door for planner id %s", door_id)
                    continue
                usages.append(self._usage(element, opening_counts[door_id], demolish))

        window_total = sum(opening_counts[window_id] for window_id in window_ids)
        if window_total > 0:
            window = self._default_window(project, catalog)
            usages.append(self._usage(window, window_total, demolish))

        return usages

    def _default_window(self, project: Project, catalog) -> BuildingElement:
        window_id = project.default_building_elements.get(WINDOW_ROLE)
        window = catalog.get_by_id(window_id) if window_id else None
        if window is None:
            raise RuleViolationError(f"Project {project.id} has no default window element")
        return window

    @staticmethod
    def _usage(element: BuildingElement, count: float, demolish: bool) -> BuildingElementUsage:
        return BuildingElementUsage(
            element_id=element.id,
            element=element,
            count=count,
            product_results=list(element.recipe(demolish=demolish)),
        )
