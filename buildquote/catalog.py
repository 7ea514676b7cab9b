"""
Catalog lookups and read-side assembly.

Rows are turned into fully resolved value objects here, so the engine never
touches the session. Soft-deleted catalog rows are invisible: a reference to
one resolves to None and contributes nothing downstream.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

QUOTING_ROLES = (models.RoleType.CONTRACTOR, models.RoleType.FABRICATOR)


class CatalogRepository:
    """
    Read-only access to building elements, product results and resources.

    Resolved product results and resources are memoized for the lifetime of
    the repository, which is one request.
    """

    def __init__(self, db: Session):
        self.db = db
        self._resources: Dict[str, Optional[schemas.Resource]] = {}
        self._product_results: Dict[str, Optional[schemas.ProductResult]] = {}

    # --- Building elements ---

    def get_by_id(self, element_id: str) -> Optional[schemas.BuildingElement]:
        if not element_id:
            return None
        row = self._elements().filter(models.BuildingElement.id == element_id).first()
        return self._element(row) if row else None

    def get_by_ids(self, element_ids: Iterable[str]) -> Dict[str, schemas.BuildingElement]:
        element_ids = list(element_ids)
        if not element_ids:
            return {}
        rows = self._elements().filter(models.BuildingElement.id.in_(element_ids)).all()
        return {row.id: self._element(row) for row in rows}

    def get_by_external_ids(self, external_ids: Iterable[str]) -> Dict[str, schemas.BuildingElement]:
        """Elements keyed by their planner catalog id."""
        external_ids = list(external_ids)
        if not external_ids:
            return {}
        rows = self._elements().filter(
            models.BuildingElement.planner_external_id.in_(external_ids)
        ).all()
        return {row.planner_external_id: self._element(row) for row in rows}

    def get_default_by_codes(self, codes: Iterable[int]) -> List[schemas.BuildingElement]:
        codes = list(codes)
        if not codes:
            return []
        rows = (
            self._elements()
            .filter(models.BuildingElement.code.in_(codes), models.BuildingElement.is_default.is_(True))
            .order_by(models.BuildingElement.code, models.BuildingElement.name)
            .all()
        )
        return [self._element(row) for row in rows]

    def element_has_composite(self, element: schemas.BuildingElement) -> bool:
        for pr_usage in element.product_results:
            if pr_usage.product_result is None:
                continue
            for resource_usage in pr_usage.product_result.resources:
                resource = resource_usage.resource
                if resource is not None and resource.type == models.ResourceType.COMPOSITE.value:
                    return True
        return False

    # --- Product results and resources ---

    def get_product_results(self, product_result_ids: Iterable[str]) -> Dict[str, schemas.ProductResult]:
        resolved = {}
        for product_result_id in product_result_ids:
            product_result = self.get_product_result(product_result_id)
            if product_result is not None:
                resolved[product_result_id] = product_result
        return resolved

    def get_product_result(self, product_result_id: str) -> Optional[schemas.ProductResult]:
        if product_result_id in self._product_results:
            return self._product_results[product_result_id]

        row = self.db.query(models.ProductResult).filter(
            models.ProductResult.id == product_result_id,
            models.ProductResult.deleted.is_(False),
        ).first()
        product_result = None
        if row is None:
            logger.debug("Product result %s does not resolve", product_result_id)
        else:
            product_result = schemas.ProductResult(
                id=row.id,
                title=row.title,
                unit=row.unit or "pcs",
                price=row.price or 0.0,
                time=row.time or 0.0,
                resources=[self._resource_usage(item) for item in row.resources or []],
            )
        self._product_results[product_result_id] = product_result
        return product_result

    def get_resource(self, resource_id: str) -> Optional[schemas.Resource]:
        if resource_id in self._resources:
            return self._resources[resource_id]

        row = self.db.query(models.Resource).filter(
            models.Resource.id == resource_id,
            models.Resource.deleted.is_(False),
        ).first()
        resource = None
        if row is None:
            logger.debug("Resource %s does not resolve", resource_id)
        else:
            resource = schemas.Resource(id=row.id, name=row.name, type=row.type or "", price=row.price or 0.0)
        self._resources[resource_id] = resource
        return resource

    def resolve_recipe(self, items) -> List[schemas.ProductResultUsage]:
        """[{"product_result_id", "count"}] -> resolved usages. Unresolved entries are kept as None."""
        return [
            schemas.ProductResultUsage(
                product_result_id=item["product_result_id"],
                product_result=self.get_product_result(item["product_result_id"]),
                count=item.get("count", 0.0),
            )
            for item in items or []
        ]

    def _resource_usage(self, item) -> schemas.ResourceUsage:
        return schemas.ResourceUsage(
            resource_id=item["resource_id"],
            resource=self.get_resource(item["resource_id"]),
            count=item.get("count", 0.0),
        )

    def _elements(self):
        return self.db.query(models.BuildingElement).filter(models.BuildingElement.deleted.is_(False))

    def _element(self, row: models.BuildingElement) -> schemas.BuildingElement:
        return schemas.BuildingElement(
            id=row.id,
            name=row.name,
            code=row.code,
            other_element_id=row.other_element_id,
            planner_external_id=row.planner_external_id,
            product_results=self.resolve_recipe(row.product_results),
            demolished_product_results=self.resolve_recipe(row.demolished_product_results),
        )


# --- Project assembly ---

def assemble_project(row: models.Project, catalog: CatalogRepository) -> schemas.Project:
    """Resolve a project row into the value object the engine works on."""
    return schemas.Project(
        id=row.id,
        user_id=row.user_id,
        organization_id=row.organization_id,
        name=row.name,
        status=row.status,
        project_type=row.project_type or models.ProjectType.NEW,
        is_manual=bool(row.is_manual),
        planner_key=row.planner_key,
        build_elements=_assemble_usages(row.build_elements, catalog, demolish=False),
        demolish_elements=_assemble_usages(row.demolish_elements, catalog, demolish=True),
        build_snapshot=load_snapshot(row.build_snapshot),
        demolish_snapshot=load_snapshot(row.demolish_snapshot),
        default_building_elements=dict(row.default_building_elements or {}),
    )


def _assemble_usages(items, catalog: CatalogRepository, demolish: bool) -> List[schemas.BuildingElementUsage]:
    items = items or []
    elements = catalog.get_by_ids(item["building_element_id"] for item in items)
    usages = []
    for item in items:
        element = elements.get(item["building_element_id"])
        if element is None:
            logger.debug("Project element %s does not resolve", item["building_element_id"])
        stored = item.get("product_results")
        if stored is not None:
            recipe = catalog.resolve_recipe(stored)
        elif element is not None:
            recipe = list(element.recipe(demolish=demolish))
        else:
            recipe = []
        usages.append(schemas.BuildingElementUsage(
            element_id=item["building_element_id"],
            element=element,
            count=item.get("count", 0.0),
            from_3d=bool(item.get("from_3d")),
            overridden=stored is not None,
            product_results=recipe,
        ))
    return usages


def dump_usages(usages: Iterable[schemas.BuildingElementUsage]) -> List[dict]:
    """Live list storage: only overridden recipes are written out."""
    return [
        {
            "building_element_id": usage.element_id,
            "count": usage.count,
            "from_3d": usage.from_3d,
            "product_results": [
                {"product_result_id": pr.product_result_id, "count": pr.count}
                for pr in usage.product_results
            ] if usage.overridden else None,
        }
        for usage in usages
    ]


def dump_snapshot(snapshot: Optional[schemas.ElementSnapshot]) -> Optional[dict]:
    return snapshot.model_dump(mode="json") if snapshot is not None else None


def load_snapshot(data) -> Optional[schemas.ElementSnapshot]:
    if data is None:
        return None
    return schemas.ElementSnapshot.model_validate(data)


def store_project(row: models.Project, project: schemas.Project) -> None:
    """Write the engine-owned fields of `project` back onto its row."""
    row.status = project.status
    row.build_elements = dump_usages(project.build_elements)
    row.demolish_elements = dump_usages(project.demolish_elements)
    row.build_snapshot = dump_snapshot(project.build_snapshot)
    row.demolish_snapshot = dump_snapshot(project.demolish_snapshot)


# --- Organizations ---

def organization_from_user(user: models.User) -> schemas.Organization:
    specifications = {
        item["specification_id"]: item.get("price_per_hour")
        for item in user.specifications or []
    }
    composites = {}
    if user.role_type == models.RoleType.FABRICATOR:
        composites = {
            item["composite_id"]: item.get("square_meter_price")
            for item in user.composites or []
        }
    return schemas.Organization(
        id=user.id,
        name=user.name,
        photo=user.photo,
        role_type=user.role_type,
        specifications=specifications,
        composites=composites,
    )


def organization_directory(db: Session) -> List[schemas.Organization]:
    """Active contractors and fabricators, in creation order."""
    users = (
        db.query(models.User)
        .filter(models.User.is_active.is_(True), models.User.role_type.in_(QUOTING_ROLES))
        .order_by(models.User.created_at, models.User.id)
        .all()
    )
    return [organization_from_user(user) for user in users]
