"""
Snapshot archiver — project status state machine for the element lists.

    waiting / created / pending   live lists are authoritative and editable
    accepted / completed          lists are frozen into versioned snapshots

Once frozen, a snapshot's product-result recipes never change. Only element
counts can drift, through the privileged (admin) quantity edit path.
Re-opening a locked project is not supported.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from .cost_walker import ElementCostWalker
from .errors import RuleViolationError
from .models import LOCKED_STATUSES, ProjectStatus
from .schemas import BuildingElementUsage, ElementEdit, ElementSnapshot, Project

logger = logging.getLogger(__name__)

# Allowed moves between locked statuses
_LOCKED_ORDER = {ProjectStatus.ACCEPTED: 0, ProjectStatus.COMPLETED: 1}


class SnapshotArchiver:

    def __init__(self, walker: Optional[ElementCostWalker] = None):
        self.walker = walker or ElementCostWalker()

    def authoritative_elements(self, project: Project) -> Tuple[List[BuildingElementUsage],
                                                                List[BuildingElementUsage]]:
        """(build, demolish) lists that cost computation must use for this status."""
        if project.status in LOCKED_STATUSES:
            build = project.build_snapshot.elements if project.build_snapshot else []
            demolish = project.demolish_snapshot.elements if project.demolish_snapshot else []
            return list(build), list(demolish)
        return list(project.build_elements), list(project.demolish_elements)

    def freeze(self, project: Project) -> Project:
        """Copy the live lists into new snapshots."""
        return project.model_copy(update={
            "build_snapshot": ElementSnapshot(elements=list(project.build_elements)),
            "demolish_snapshot": ElementSnapshot(elements=list(project.demolish_elements)),
        })

    def transition(self, project: Project, new_status: ProjectStatus) -> Project:
        """
        Move the project to `new_status`, freezing the live lists when it
        enters a locked status. Raises RuleViolationError for any move out of
        a locked status.
        """
        current = project.status
        if new_status == current:
            return project

        if current in LOCKED_STATUSES:
            if new_status not in LOCKED_STATUSES or _LOCKED_ORDER[new_status] < _LOCKED_ORDER[current]:
                raise RuleViolationError(
                    f"Project {project.id} is {current.value} — it cannot move back to {new_status.value}"
                )
            moved = project.model_copy(update={"status": new_status})
            if moved.build_snapshot is None and moved.demolish_snapshot is None:
                moved = self.freeze(moved)
            return moved

        if new_status in LOCKED_STATUSES:
            logger.info("Freezing element lists of project %s on %s", project.id, new_status.value)
            return self.freeze(project.model_copy(update={"status": new_status}))

        return project.model_copy(update={
            "status": new_status,
            "build_snapshot": None,
            "demolish_snapshot": None,
        })

    def merge_quantity_edits(self, project: Project, edits: Iterable[ElementEdit], catalog) -> Project:
        """
        Apply quantity edits to the frozen snapshots of a locked project.

        An element already in the snapshot keeps its archived recipe and only
        gets the submitted count. An element not in the snapshot is resolved
        from the catalog and appended with the catalog default recipe.
        Entries not mentioned by any edit are kept unchanged.
        """
        if project.status not in LOCKED_STATUSES:
            raise RuleViolationError(f"Project {project.id} is not locked — edit the live lists instead")

        build, demolish = self.authoritative_elements(project)
        for edit in edits:
            target = demolish if edit.demolished else build
            self._merge_edit(target, edit, catalog)

        return project.model_copy(update={
            "build_snapshot": ElementSnapshot(elements=build),
            "demolish_snapshot": ElementSnapshot(elements=demolish),
        })

    def completion_rollup(self, project: Project) -> Tuple[float, float]:
        """(labor_time, material_price) computed from the archived recipes."""
        build, demolish = self.authoritative_elements(project)
        labor_time = self.walker.labor_time(build) + self.walker.labor_time(demolish)
        material_price = self.walker.material_price(build) + self.walker.material_price(demolish)
        return labor_time, material_price

    def _merge_edit(self, entries: List[BuildingElementUsage], edit: ElementEdit, catalog) -> None:
        for index, entry in enumerate(entries):
            if entry.element_id == edit.element_id:
                entries[index] = entry.model_copy(update={"count": edit.count})
                return

        element = catalog.get_by_id(edit.element_id)
        if element is None:
            logger.debug("Skipping snapshot edit for unknown element %s", edit.element_id)
            return
        entries.append(BuildingElementUsage(
            element_id=element.id,
            element=element,
            count=edit.count,
            from_3d=edit.from_3d,
            product_results=list(element.recipe(demolish=edit.demolished)),
        ))
