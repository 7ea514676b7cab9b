"""
Value objects handed to and returned by the cost engine.

Every catalog reference is already resolved when these are built (see
catalog.py). A reference that no longer resolves is carried as None so the
engine can skip it without raising.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from .models import BuildingType, ProjectStatus, ProjectType, ResourceType, RoleType, LOCKED_STATUSES

SNAPSHOT_VERSION = 1


class ValueObject(BaseModel):
    class Config:
        frozen = True


# --- Catalog ---

class Resource(ValueObject):
    id: str
    name: str = ""
    type: str = ResourceType.MATERIAL.value
    price: float = 0.0


class ResourceUsage(ValueObject):
    resource_id: str
    resource: Optional[Resource] = None
    count: float = 0.0


class ProductResult(ValueObject):
    id: str
    title: str = ""
    unit: str = "pcs"
    price: float = 0.0
    time: float = 0.0
    resources: List[ResourceUsage] = []


class ProductResultUsage(ValueObject):
    product_result_id: str
    product_result: Optional[ProductResult] = None
    count: float = 0.0


class BuildingElement(ValueObject):
    id: str
    name: str = ""
    code: Optional[int] = None
    other_element_id: Optional[str] = None
    planner_external_id: Optional[str] = None
    product_results: List[ProductResultUsage] = []
    demolished_product_results: List[ProductResultUsage] = []

    def recipe(self, demolish: bool = False) -> List[ProductResultUsage]:
        return self.demolished_product_results if demolish else self.product_results


# --- Project ---

class BuildingElementUsage(ValueObject):
    element_id: str
    element: Optional[BuildingElement] = None
    count: float = 0.0
    from_3d: bool = False
    overridden: bool = False  # True when the user replaced the catalog recipe
    product_results: List[ProductResultUsage] = []


class ElementSnapshot(ValueObject):
    version: int = SNAPSHOT_VERSION
    elements: List[BuildingElementUsage] = []


class Project(ValueObject):
    id: str
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    name: str = ""
    status: ProjectStatus = ProjectStatus.CREATED
    project_type: ProjectType = ProjectType.NEW
    is_manual: bool = False
    planner_key: Optional[str] = None
    build_elements: List[BuildingElementUsage] = []
    demolish_elements: List[BuildingElementUsage] = []
    build_snapshot: Optional[ElementSnapshot] = None
    demolish_snapshot: Optional[ElementSnapshot] = None
    default_building_elements: Dict[str, str] = {}

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES


class ElementEdit(ValueObject):
    """One element quantity submitted by a direct edit."""
    element_id: str
    count: float = 0.0
    demolished: bool = False
    from_3d: bool = False


# --- Organizations and quotes ---

class Organization(ValueObject):
    id: str
    name: str = ""
    photo: Optional[str] = None
    role_type: RoleType
    # resource id -> price; a None price is an incomplete entry
    specifications: Dict[str, Optional[float]] = {}
    composites: Dict[str, Optional[float]] = {}


class Contribution(ValueObject):
    kind: ResourceType
    resource_id: str
    resource_name: str = ""
    total_count: float = 0.0
    unit_price: Optional[float] = None  # Material only


class NotIncludedResource(ValueObject):
    id: str
    name: str = ""


class Quote(ValueObject):
    organization_id: str
    name: str = ""
    photo: Optional[str] = None
    role_type: RoleType
    cost: Decimal
    not_included_workforces: List[NotIncludedResource] = []
    not_included_composites: Optional[List[NotIncludedResource]] = None  # Fabricators only


class NotIncludedReport(ValueObject):
    not_included_workforces: List[NotIncludedResource] = []
    not_included_composites: List[NotIncludedResource] = []


# --- Planner ---

class Scene(ValueObject):
    """Element counts read from a planner scene, keyed by id."""
    build: Dict[str, float] = {}
    demolish: Dict[str, float] = {}
    build_doors_and_windows: Dict[str, float] = {}
    demolish_doors_and_windows: Dict[str, float] = {}


class ReconcileResult(ValueObject):
    build_elements: List[BuildingElementUsage] = []
    demolish_elements: List[BuildingElementUsage] = []
    degraded: bool = False
    reason: Optional[str] = None

    @classmethod
    def degraded_with(cls, reason: str) -> "ReconcileResult":
        return cls(degraded=True, reason=reason)


# --- Requests ---

class ProjectDetails(BaseModel):
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    project_type: ProjectType = ProjectType.NEW
    building_type: BuildingType = BuildingType.HOUSE
    floors: Optional[int] = None
    elevator: bool = False
    parking_provided: bool = False
    parking_rate: Optional[float] = None


class ProjectCreate(ProjectDetails):
    is_manual: bool = False
    default_building_elements: Dict[str, str] = {}


class ElementEntry(BaseModel):
    element_id: str
    count: float = 0.0
    demolished: bool = False
    from_3d: bool = False


class ProjectUpdate(BaseModel):
    only_update_elements: bool = False
    details: Optional[ProjectDetails] = None
    building_elements: List[ElementEntry] = []


class RecipeItem(BaseModel):
    product_result_id: str
    count: float = 0.0


class RecipeUpdate(BaseModel):
    product_results: List[RecipeItem] = []
    reset_default: bool = False


class AcceptRequest(BaseModel):
    organization_id: str


class RenameRequest(BaseModel):
    name: str


class DefaultElementsUpdate(BaseModel):
    default_building_elements: Dict[str, str] = {}


# --- Responses ---

class SummaryView(BaseModel):
    material_price: float = 0.0
    labor_time: float = 0.0
    estimated_cost: Optional[float] = None

    class Config:
        from_attributes = True


class ProjectListItem(BaseModel):
    id: str
    user_id: str
    organization_id: Optional[str] = None
    name: str
    status: ProjectStatus
    project_type: Optional[ProjectType] = None
    is_manual: bool = False
    planner_key: Optional[str] = None
    created_at: Optional[datetime] = None
    summary: Optional[SummaryView] = None

    class Config:
        from_attributes = True


class ProjectView(BaseModel):
    id: str
    user_id: str
    organization_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    status: ProjectStatus
    project_type: Optional[ProjectType] = None
    building_type: Optional[BuildingType] = None
    floors: Optional[int] = None
    elevator: bool = False
    parking_provided: bool = False
    parking_rate: Optional[float] = None
    is_manual: bool = False
    planner_key: Optional[str] = None
    default_building_elements: Dict[str, str] = {}
    build_elements: List[BuildingElementUsage] = []
    demolish_elements: List[BuildingElementUsage] = []
    # other_element_id -> element, for "other element" usages
    other_elements: Dict[str, BuildingElement] = {}
    summary: Optional[SummaryView] = None
