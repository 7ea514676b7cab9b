from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Enum, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import uuid

from .database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


# --- Enums ---

class ProjectStatus(str, enum.Enum):
    WAITING = "waiting"
    CREATED = "created"
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"


# Statuses in which the element lists are frozen into snapshots
LOCKED_STATUSES = (ProjectStatus.ACCEPTED, ProjectStatus.COMPLETED)


class RoleType(str, enum.Enum):
    CUSTOMER = "customer"
    CONTRACTOR = "contractor"
    FABRICATOR = "fabricator"
    ADMIN = "admin"


class ResourceType(str, enum.Enum):
    WORKFORCE = "workforce"
    COMPOSITE = "composite"
    MATERIAL = "material"


class ProjectType(str, enum.Enum):
    NEW = "new"
    RENOVATION = "renovation"


class BuildingType(str, enum.Enum):
    HOUSE = "house"
    APARTMENT = "apartment"
    COMMERCIAL = "commercial"


# Catalog code of the "other element" kind: carries other_element_id
OTHER_ELEMENT_CODE = 27


# --- Users and organizations ---

class User(Base):
    """Customers and organizations (contractors, fabricators) share one table."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    photo = Column(String, nullable=True)
    role_type = Column(Enum(RoleType), default=RoleType.CUSTOMER, nullable=False)
    is_active = Column(Boolean, default=True)
    act_as_admin = Column(Boolean, default=False)
    # [{"specification_id": str, "price_per_hour": float}]
    specifications = Column(JSON, default=list)
    # [{"composite_id": str, "square_meter_price": float}], fabricators only
    composites = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    projects = relationship("Project", back_populates="user", foreign_keys="Project.user_id")


# --- Catalog ---

class Resource(Base):
    __tablename__ = "resources"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    type = Column(String, default=ResourceType.MATERIAL.value)  # Unknown types price as material
    price = Column(Float, default=0.0)
    deleted = Column(Boolean, default=False)


class ProductResult(Base):
    """Priced, timed recipe step composed of resource usages."""
    __tablename__ = "product_results"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String, nullable=False)
    unit = Column(String, default="pcs")
    price = Column(Float, default=0.0)
    time = Column(Float, default=0.0)  # Labor hours per unit
    resources = Column(JSON, default=list)  # [{"resource_id": str, "count": float}]
    deleted = Column(Boolean, default=False)


class BuildingElement(Base):
    __tablename__ = "building_elements"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    code = Column(Integer, nullable=True)
    other_element_id = Column(String, nullable=True)  # Only meaningful for OTHER_ELEMENT_CODE
    planner_external_id = Column(String, nullable=True, index=True)
    is_default = Column(Boolean, default=False)  # Offered as a default for its code
    product_results = Column(JSON, default=list)  # [{"product_result_id": str, "count": float}]
    demolished_product_results = Column(JSON, default=list)
    deleted = Column(Boolean, default=False)


# --- Projects ---

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    organization_id = Column(String, ForeignKey("users.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String, nullable=True)
    status = Column(Enum(ProjectStatus), default=ProjectStatus.CREATED, nullable=False)
    project_type = Column(Enum(ProjectType), default=ProjectType.NEW)
    building_type = Column(Enum(BuildingType), default=BuildingType.HOUSE)
    floors = Column(Integer, nullable=True)
    elevator = Column(Boolean, default=False)
    parking_provided = Column(Boolean, default=False)
    parking_rate = Column(Float, nullable=True)
    is_manual = Column(Boolean, default=False)
    planner_key = Column(String, nullable=True)
    deleted = Column(Boolean, default=False)

    # Live lists: [{"building_element_id", "count", "from_3d", "product_results": [...] | None}]
    # product_results is None while the element inherits its catalog recipe
    build_elements = Column(JSON, default=list)
    demolish_elements = Column(JSON, default=list)
    # Frozen snapshots, present only while ACCEPTED / COMPLETED (ElementSnapshot dumps)
    build_snapshot = Column(JSON, nullable=True)
    demolish_snapshot = Column(JSON, nullable=True)
    default_building_elements = Column(JSON, default=dict)  # role -> building element id
    # Price tables of the accepted organization, captured at acceptance
    org_specifications = Column(JSON, nullable=True)
    org_composites = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="projects", foreign_keys=[user_id])
    organization = relationship("User", foreign_keys=[organization_id])
    summary = relationship("ProjectSummary", back_populates="project", uselist=False,
                           cascade="all, delete-orphan")


class ProjectSummary(Base):
    """Running totals — refreshed after every live edit, frozen at completion."""
    __tablename__ = "project_summaries"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String, ForeignKey("projects.id"), unique=True, nullable=False)
    material_price = Column(Float, default=0.0)
    labor_time = Column(Float, default=0.0)
    estimated_cost = Column(Float, nullable=True)  # Cheapest organization quote
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="summary")
