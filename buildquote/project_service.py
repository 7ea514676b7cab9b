"""
Project service — one method per use case.

Each method loads the project, runs the engine on its resolved value object
and writes the whole aggregate back in one commit. Planner calls are soft:
a failed call is logged and the use case carries on.
"""

import logging
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from . import models, schemas
from .catalog import (
    CatalogRepository, assemble_project, organization_directory, store_project,
)
from .config import settings
from .cost_walker import ElementCostWalker
from .errors import NotFoundError, PermissionDeniedError, RuleViolationError
from .planner_client import PlannerClient, planner_error
from .planner_openings import OpeningTables
from .planner_reconciler import PlannerReconciler
from .quote_engine import OrganizationQuoteEngine
from .snapshot_archiver import SnapshotArchiver

logger = logging.getLogger(__name__)

# Roles whose completion recomputes the archived rollup
COMPLETING_ROLES = (models.RoleType.CONTRACTOR, models.RoleType.FABRICATOR)


def apply_detail_rules(details: schemas.ProjectDetails) -> dict:
    """
    Normalized project detail fields.

    - apartments must give a floor count
    - fewer than 3 floors means no elevator
    - parking must be provided or rated; when both are set the rate is 0
    """
    values = details.model_dump(include=set(schemas.ProjectDetails.model_fields))
    if details.building_type == models.BuildingType.APARTMENT and not details.floors:
        raise RuleViolationError("Apartment projects must provide the number of floors")
    if details.floors is not None and details.floors < 3 and details.elevator:
        values["elevator"] = False
    if not details.parking_provided and not details.parking_rate:
        raise RuleViolationError("Provide parking or a parking rate")
    if details.parking_provided and details.parking_rate:
        values["parking_rate"] = 0.0
    return values


class ProjectService:

    def __init__(self, db: Session, planner: Optional[PlannerClient] = None,
                 reconciler: Optional[PlannerReconciler] = None,
                 quote_engine: Optional[OrganizationQuoteEngine] = None):
        self.db = db
        self.catalog = CatalogRepository(db)
        self.planner = planner or PlannerClient()
        self.reconciler = reconciler or PlannerReconciler(OpeningTables.load(settings.PLANNER_OPENINGS_PATH))
        self.quote_engine = quote_engine or OrganizationQuoteEngine(settings.QUOTE_MARKUP_PCT)
        self.walker = ElementCostWalker()
        self.archiver = SnapshotArchiver(self.walker)

    # --- Create / read ---

    def create_project(self, user: models.User, data: schemas.ProjectCreate) -> models.Project:
        values = apply_detail_rules(data)
        self._ensure_unique_name(user.id, data.name)

        row = models.Project(
            user_id=user.id,
            status=models.ProjectStatus.CREATED,
            is_manual=data.is_manual,
            default_building_elements=dict(data.default_building_elements),
            build_elements=[],
            demolish_elements=[],
            **values,
        )
        self.db.add(row)
        self.db.flush()

        if not data.is_manual:
            response = self.planner.create_scene(row.name, row.project_type.value)
            error = planner_error(response)
            key = (response.get("result") or {}).get("key") if not error else None
            if key:
                row.planner_key = key
            else:
                logger.warning("Planner create_scene for project %s failed: %s", row.id, error or "no key returned")

        row.summary = models.ProjectSummary(material_price=0.0, labor_time=0.0)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Project %s created by user %s", row.id, user.id)
        return row

    def get_project(self, user: models.User, project_id: str) -> schemas.ProjectView:
        row = self._get_row(user, project_id)
        project = assemble_project(row, self.catalog)
        build, demolish = self.archiver.authoritative_elements(project)

        other_ids = []
        for usage in build + demolish:
            element = usage.element
            if element is None or element.code != models.OTHER_ELEMENT_CODE or not element.other_element_id:
                continue
            if element.other_element_id not in other_ids:
                other_ids.append(element.other_element_id)

        summary = schemas.SummaryView.model_validate(row.summary) if row.summary else None
        logger.info("Project %s fetched by user %s", row.id, user.id)
        return schemas.ProjectView(
            id=row.id,
            user_id=row.user_id,
            organization_id=row.organization_id,
            name=row.name,
            description=row.description,
            address=row.address,
            status=row.status,
            project_type=row.project_type,
            building_type=row.building_type,
            floors=row.floors,
            elevator=bool(row.elevator),
            parking_provided=bool(row.parking_provided),
            parking_rate=row.parking_rate,
            is_manual=bool(row.is_manual),
            planner_key=row.planner_key,
            default_building_elements=dict(row.default_building_elements or {}),
            build_elements=build,
            demolish_elements=demolish,
            other_elements=self.catalog.get_by_ids(other_ids),
            summary=summary,
        )

    def list_projects(self, user: models.User) -> List[models.Project]:
        """
        Projects visible to the user: the ones they own, and for organizations
        also the ones assigned to them once past the pending stage.
        """
        query = self.db.query(models.Project).filter(models.Project.deleted.is_(False))
        if user.role_type in OrganizationQuoteEngine.QUOTING_ROLES:
            query = query.filter(or_(
                models.Project.user_id == user.id,
                and_(models.Project.organization_id == user.id,
                     models.Project.status != models.ProjectStatus.PENDING),
            ))
        else:
            query = query.filter(models.Project.user_id == user.id)
        rows = query.order_by(models.Project.created_at.desc(), models.Project.id).all()
        logger.info("%d projects fetched for user %s", len(rows), user.id)
        return rows

    def get_project_element(self, user: models.User, project_id: str,
                            element_id: str) -> schemas.BuildingElementUsage:
        """One element usage of the project, build list first, then demolish list."""
        row = self._get_row(user, project_id)
        build, demolish = self.archiver.authoritative_elements(assemble_project(row, self.catalog))
        usage = next((u for u in build + demolish if u.element_id == element_id), None)
        if usage is None:
            raise NotFoundError(f"Element {element_id} is not part of project {row.id}")
        return usage

    def default_elements(self) -> List[schemas.BuildingElement]:
        """Catalog elements offered as the default window of a project."""
        elements = self.catalog.get_default_by_codes(settings.DEFAULT_WINDOW_CODES)
        logger.info("%d default building elements fetched", len(elements))
        return elements

    # --- Edits ---

    def update_project(self, user: models.User, project_id: str, data: schemas.ProjectUpdate) -> models.Project:
        """
        Update details and/or the element list.

        Locked projects can only be edited by an acting admin, and then only
        the counts in the frozen snapshots change.
        """
        row = self._get_row(user, project_id)
        if row.status in models.LOCKED_STATUSES and not user.act_as_admin:
            raise RuleViolationError(f"Project {row.id} is {row.status.value} and can no longer be changed")

        if not data.only_update_elements:
            if data.details is None:
                raise RuleViolationError("Project details are required")
            values = apply_detail_rules(data.details)
            if values["name"] != row.name:
                self._ensure_unique_name(row.user_id, values["name"], exclude_id=row.id)
            for field, value in values.items():
                setattr(row, field, value)

        project = assemble_project(row, self.catalog)
        edits = [schemas.ElementEdit(**entry.model_dump()) for entry in data.building_elements]
        if edits and project.is_locked:
            project = self.archiver.merge_quantity_edits(project, edits, self.catalog)
        elif edits:
            project = self._apply_live_edits(user, row, project, edits)
        elif row.is_manual:
            project = project.model_copy(update={"build_elements": [], "demolish_elements": []})
            if project.is_locked:
                project = project.model_copy(update={
                    "build_snapshot": schemas.ElementSnapshot(),
                    "demolish_snapshot": schemas.ElementSnapshot(),
                })

        store_project(row, project)
        self.db.commit()
        if not project.is_locked:
            self.recount_running_total(row)
        logger.info("Project %s updated by user %s", row.id, user.id)
        return row

    def update_element_recipe(self, user: models.User, project_id: str, element_id: str,
                              data: schemas.RecipeUpdate) -> schemas.BuildingElementUsage:
        """Replace the product results of one build element, or reset them to the catalog recipe."""
        row = self._get_row(user, project_id)
        if row.status in models.LOCKED_STATUSES:
            raise RuleViolationError(f"Project {row.id} is {row.status.value} and can no longer be changed")

        project = assemble_project(row, self.catalog)
        index = next((i for i, usage in enumerate(project.build_elements) if usage.element_id == element_id), None)
        if index is None:
            raise NotFoundError(f"Element {element_id} is not part of project {row.id}")

        usage = project.build_elements[index]
        if data.reset_default:
            element = usage.element or self.catalog.get_by_id(element_id)
            recipe = list(element.product_results) if element else []
            usage = usage.model_copy(update={"product_results": recipe, "overridden": False})
        else:
            resolved = self.catalog.get_product_results(item.product_result_id for item in data.product_results)
            recipe = [
                schemas.ProductResultUsage(
                    product_result_id=item.product_result_id,
                    product_result=resolved[item.product_result_id],
                    count=item.count,
                )
                for item in data.product_results
                if item.product_result_id in resolved
            ]
            usage = usage.model_copy(update={"product_results": recipe, "overridden": True})

        build = list(project.build_elements)
        build[index] = usage
        store_project(row, project.model_copy(update={"build_elements": build}))
        self.db.commit()
        self.recount_running_total(row)
        logger.info("Element %s recipe of project %s updated", element_id, row.id)
        return usage

    def set_default_elements(self, user: models.User, project_id: str,
                             data: schemas.DefaultElementsUpdate) -> models.Project:
        """Replace the role -> element map used when the planner reports aggregated elements."""
        row = self._get_row(user, project_id, owner_only=True)
        resolved = self.catalog.get_by_ids(data.default_building_elements.values())
        missing = [eid for eid in data.default_building_elements.values() if eid not in resolved]
        if missing:
            raise NotFoundError(f"Building elements not found: {', '.join(missing)}")
        row.default_building_elements = dict(data.default_building_elements)
        self.db.commit()
        logger.info("Default building elements of project %s updated", row.id)
        return row

    # --- Planner ---

    def sync_from_planner(self, user: models.User, project_id: str) -> schemas.ReconcileResult:
        row = self._get_row(user, project_id)
        if row.is_manual:
            raise RuleViolationError(f"Project {row.id} is manual and has no planner scene")
        if row.status in models.LOCKED_STATUSES:
            raise RuleViolationError(f"Project {row.id} is {row.status.value} and can no longer be changed")

        project = assemble_project(row, self.catalog)
        result = self.reconciler.reconcile_from_client(project, self.planner, self.catalog)
        if result.degraded:
            return result

        store_project(row, project.model_copy(update={
            "build_elements": result.build_elements,
            "demolish_elements": result.demolish_elements,
        }))
        self.db.commit()
        self.recount_running_total(row)
        logger.info("Project %s synced from planner: %d build, %d demolish elements",
                    row.id, len(result.build_elements), len(result.demolish_elements))
        return result

    # --- Quotes ---

    def get_quotes(self, user: models.User, project_id: str) -> List[schemas.Quote]:
        """Per-organization quotes. Non-manual live projects are synced from the planner first."""
        row = self._get_row(user, project_id, owner_only=True)
        if not row.is_manual and row.status not in models.LOCKED_STATUSES:
            try:
                self.sync_from_planner(user, project_id)
            except RuleViolationError as e:
                logger.warning("Planner sync before quoting project %s failed: %s", row.id, e)
            self.db.refresh(row)

        project = assemble_project(row, self.catalog)
        build, demolish = self.archiver.authoritative_elements(project)
        quotes = self.quote_engine.build_quotes(
            self.walker.walk(build, demolish), organization_directory(self.db),
        )
        logger.info("Project %s quoted by %d organizations", row.id, len(quotes))
        return quotes

    def not_included_resources(self, user: models.User, project_id: str) -> schemas.NotIncludedReport:
        """
        Workforces and composites of the project that the acting organization
        does not price. Locked projects are checked against the price tables
        captured at acceptance.
        """
        row = self._get_row(user, project_id)
        project = assemble_project(row, self.catalog)

        if project.is_locked:
            specification_ids = [item["specification_id"] for item in row.org_specifications or []]
            composite_ids = [item["composite_id"] for item in row.org_composites or []]
        else:
            specification_ids = [item["specification_id"] for item in user.specifications or []]
            composite_ids = [item["composite_id"] for item in user.composites or []]

        build, demolish = self.archiver.authoritative_elements(project)
        report = self.quote_engine.not_included_resources(
            self.walker.walk(build, demolish), specification_ids, composite_ids,
        )
        logger.info("Not included resources of project %s fetched", row.id)
        return report

    # --- Status ---

    def accept_project(self, user: models.User, project_id: str, organization_id: str) -> models.Project:
        """Assign the organization, capture its price tables and freeze the element lists."""
        row = self._get_row(user, project_id, owner_only=True)
        if row.status in models.LOCKED_STATUSES:
            raise RuleViolationError(f"Project {row.id} is already {row.status.value}")
        organization = self.db.query(models.User).filter(
            models.User.id == organization_id,
            models.User.is_active.is_(True),
        ).first()
        if organization is None or organization.role_type not in OrganizationQuoteEngine.QUOTING_ROLES:
            raise NotFoundError(f"Organization {organization_id} not found")

        project = assemble_project(row, self.catalog)
        contributions = self.walker.walk(project.build_elements, project.demolish_elements)
        if organization.role_type not in self.quote_engine.eligible_roles(contributions):
            raise RuleViolationError(
                f"Project {row.id} contains composite resources and can only be accepted by a fabricator"
            )

        project = self.archiver.transition(
            project.model_copy(update={"organization_id": organization.id}),
            models.ProjectStatus.ACCEPTED,
        )
        row.organization_id = organization.id
        row.org_specifications = list(organization.specifications or [])
        row.org_composites = list(organization.composites or [])
        store_project(row, project)
        self.db.commit()
        logger.info("Project %s accepted with organization %s", row.id, organization.id)
        return row

    def complete_project(self, user: models.User, project_id: str) -> models.ProjectSummary:
        """
        Mark the project completed.

        Contractors and fabricators recompute labor time and material price
        from the archived recipes. Anyone else may only complete an accepted
        project that has an organization, and the stored summary is kept.
        """
        row = self._get_row(user, project_id)
        summary = row.summary
        if summary is None:
            raise NotFoundError(f"Summary of project {row.id} not found")

        privileged = user.role_type in COMPLETING_ROLES
        if not privileged and (row.status != models.ProjectStatus.ACCEPTED or not row.organization_id):
            raise RuleViolationError(f"Project {row.id} must be accepted by an organization before completion")

        project = self.archiver.transition(assemble_project(row, self.catalog), models.ProjectStatus.COMPLETED)
        if privileged:
            summary.labor_time, summary.material_price = self.archiver.completion_rollup(project)

        store_project(row, project)
        self.db.commit()
        self.db.refresh(summary)
        logger.info("Project %s completed: material price %.2f, labor time %.2f",
                    row.id, summary.material_price, summary.labor_time)
        return summary

    def make_manual(self, user: models.User, project_id: str) -> models.Project:
        """Detach a freshly created project from its planner scene."""
        if not user.act_as_admin:
            raise PermissionDeniedError("Only an acting admin can make a project manual")

        row = self._get_row(user, project_id, owner_only=True)
        if row.status != models.ProjectStatus.CREATED:
            raise RuleViolationError(f"Only created projects can be made manual (project {row.id} is {row.status.value})")
        if row.is_manual:
            raise RuleViolationError(f"Project {row.id} is already manual")

        if row.planner_key:
            self._soft_planner_call("archive_scene", row, self.planner.archive_scene, row.planner_key)
        row.is_manual = True
        row.planner_key = None
        self.db.commit()
        logger.info("Project %s made manual", row.id)
        return row

    # --- Rename / delete ---

    def rename_project(self, user: models.User, project_id: str, name: str) -> models.Project:
        row = self._get_row(user, project_id, owner_only=True)
        self._ensure_unique_name(user.id, name, exclude_id=row.id, include_waiting=True)
        row.name = name
        self.db.commit()

        if not row.is_manual and row.planner_key:
            self._soft_planner_call("update_scene_name", row, self.planner.update_scene_name, row.planner_key, name)
        logger.info("Project %s renamed to %s", row.id, name)
        return row

    def delete_project(self, user: models.User, project_id: str) -> None:
        row = self._get_row(user, project_id, owner_only=True)
        row.deleted = True
        self.db.commit()

        if not row.is_manual and row.planner_key:
            self._soft_planner_call("archive_scene", row, self.planner.archive_scene, row.planner_key)
        logger.info("Project %s deleted", row.id)

    # --- Running total ---

    def recount_running_total(self, row: models.Project) -> Optional[models.ProjectSummary]:
        """
        Refresh the project summary from the live lists. The estimated cost
        is the cheapest organization quote. Failures are logged and the
        previous summary is kept.
        """
        try:
            project = assemble_project(row, self.catalog)
            build, demolish = project.build_elements, project.demolish_elements
            quotes = self.quote_engine.build_quotes(self.walker.walk(build, demolish),
                                                    organization_directory(self.db))

            summary = row.summary or models.ProjectSummary(project_id=row.id)
            summary.material_price = self.walker.material_price(build) + self.walker.material_price(demolish)
            summary.labor_time = self.walker.labor_time(build) + self.walker.labor_time(demolish)
            summary.estimated_cost = float(min(q.cost for q in quotes)) if quotes else None
            row.summary = summary
            self.db.commit()
            return summary
        except Exception as e:
            self.db.rollback()
            logger.error(f"Running total of project {row.id} could not be recomputed: {e}")
            return None

    # --- Helpers ---

    def _get_row(self, user: models.User, project_id: str, owner_only: bool = False) -> models.Project:
        query = self.db.query(models.Project).filter(
            models.Project.id == project_id,
            models.Project.deleted.is_(False),
        )
        if owner_only:
            query = query.filter(models.Project.user_id == user.id)
        else:
            query = query.filter(or_(models.Project.user_id == user.id,
                                     models.Project.organization_id == user.id))
        row = query.first()
        if row is None:
            raise NotFoundError(f"Project {project_id} not found")
        return row

    def _ensure_unique_name(self, owner_id: str, name: str, exclude_id: Optional[str] = None,
                            include_waiting: bool = False) -> None:
        query = self.db.query(models.Project).filter(
            models.Project.user_id == owner_id,
            models.Project.name == name,
            models.Project.deleted.is_(False),
        )
        if not include_waiting:
            query = query.filter(models.Project.status != models.ProjectStatus.WAITING)
        if exclude_id:
            query = query.filter(models.Project.id != exclude_id)
        if query.first():
            raise RuleViolationError(f"You already have a project named '{name}'")

    def _apply_live_edits(self, user: models.User, row: models.Project, project: schemas.Project,
                          edits: List[schemas.ElementEdit]) -> schemas.Project:
        elements = self.catalog.get_by_ids(edit.element_id for edit in edits)
        current_build = {usage.element_id: usage for usage in project.build_elements}
        current_demolish = {usage.element_id: usage for usage in project.demolish_elements}

        contractor_project = user.role_type == models.RoleType.CONTRACTOR or (
            row.organization is not None and row.organization.role_type == models.RoleType.CONTRACTOR
        )
        renovation = row.project_type == models.ProjectType.RENOVATION

        build, demolish = [], []
        for edit in edits:
            element = elements.get(edit.element_id)
            if element is None:
                logger.debug("Skipping edit of unknown element %s", edit.element_id)
                continue

            demolished = renovation and edit.demolished
            current = (current_demolish if demolished else current_build).get(edit.element_id)
            if contractor_project and current is None and self.catalog.element_has_composite(element):
                logger.info("Dropping composite element %s from contractor project %s", element.id, row.id)
                continue

            if current is not None:
                usage = current.model_copy(update={"count": edit.count, "from_3d": edit.from_3d})
            else:
                usage = schemas.BuildingElementUsage(
                    element_id=element.id,
                    element=element,
                    count=edit.count,
                    from_3d=edit.from_3d,
                    product_results=list(element.recipe(demolish=demolished)),
                )
            (demolish if demolished else build).append(usage)

        return project.model_copy(update={"build_elements": build, "demolish_elements": demolish})

    def _soft_planner_call(self, operation: str, row: models.Project, call, *args) -> None:
        response = call(*args)
        error = planner_error(response)
        if error:
            logger.warning("Planner %s for project %s failed: %s", operation, row.id, error)
