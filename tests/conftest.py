"""
Shared test fixtures — SQLite test database, test client, planner mock, seeded catalog.
"""

import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Point settings at the test database before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["PLANNER_BASE_URL"] = "http://planner.test/api"

from buildquote.database import Base, get_db
from buildquote.main import app
from buildquote.routers.projects import get_planner_client
from buildquote import models


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


def empty_scene():
    return {"result": {"build": {}, "demolish": {}, "buildDoorsAndWindows": {}, "demolishDoorsAndWindows": {}}}


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def planner():
    """Planner client mock — every call succeeds unless a test says otherwise."""
    mock = MagicMock()
    mock.create_scene.return_value = {"result": {"key": "scene-1"}}
    mock.get_scene_by_key.return_value = empty_scene()
    mock.update_scene_name.return_value = {"result": {"success": True}}
    mock.archive_scene.return_value = {"result": {"success": True}}
    app.dependency_overrides[get_planner_client] = lambda: mock
    yield mock
    app.dependency_overrides.pop(get_planner_client, None)


@pytest.fixture
def client(planner):
    """FastAPI test client. The planner is always mocked."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# --- Users ---

_BASE_TIME = datetime(2024, 1, 1)


def _add_user(db, user_id, role, minutes=0, **kwargs):
    user = models.User(
        id=user_id,
        name=kwargs.pop("name", user_id),
        role_type=role,
        created_at=_BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def customer(db):
    return _add_user(db, "cust-1", models.RoleType.CUSTOMER)


@pytest.fixture
def admin_customer(db):
    """Customer acting as admin."""
    return _add_user(db, "cust-admin", models.RoleType.CUSTOMER, act_as_admin=True)


@pytest.fixture
def contractor(db):
    return _add_user(
        db, "org-c", models.RoleType.CONTRACTOR, minutes=1, name="Acme Builders",
        specifications=[{"specification_id": "r-labor", "price_per_hour": 50.0}],
    )


@pytest.fixture
def fabricator(db):
    return _add_user(
        db, "org-f", models.RoleType.FABRICATOR, minutes=2, name="Panel Works",
        specifications=[{"specification_id": "r-labor", "price_per_hour": 40.0}],
        composites=[{"composite_id": "r-panel", "square_meter_price": 100.0}],
    )


def headers_for(user):
    return {"X-User-Id": user.id}


# --- Catalog ---

@pytest.fixture
def seeded_catalog(db):
    """
    Resources:        r-labor (workforce), r-brick (material, 2.00), r-panel (composite)
    Product results:  pr-wall  = 1 r-labor + 10 r-brick, 2h
                      pr-demo  = 1 r-labor, 0.5h
                      pr-panel = 1 r-panel + 0.5 r-labor, 1h
    Elements:         el-wall, el-panel, el-window (default window), el-door (n_door_1),
                      el-other (code 27 -> el-wall)
    """
    db.add_all([
        models.Resource(id="r-labor", name="Mason", type="workforce", price=0.0),
        models.Resource(id="r-brick", name="Brick", type="material", price=2.0),
        models.Resource(id="r-panel", name="Wall panel", type="composite", price=10.0),
        models.ProductResult(id="pr-wall", title="Brick wall", unit="m2", time=2.0, resources=[
            {"resource_id": "r-labor", "count": 1},
            {"resource_id": "r-brick", "count": 10},
        ]),
        models.ProductResult(id="pr-demo", title="Wall removal", unit="m2", time=0.5, resources=[
            {"resource_id": "r-labor", "count": 1},
        ]),
        models.ProductResult(id="pr-panel", title="Panel wall", unit="m2", time=1.0, resources=[
            {"resource_id": "r-panel", "count": 1},
            {"resource_id": "r-labor", "count": 0.5},
        ]),
        models.BuildingElement(
            id="el-wall", name="Wall", code=1,
            product_results=[{"product_result_id": "pr-wall", "count": 1}],
            demolished_product_results=[{"product_result_id": "pr-demo", "count": 1}],
        ),
        models.BuildingElement(
            id="el-panel", name="Panel wall", code=2,
            product_results=[{"product_result_id": "pr-panel", "count": 1}],
        ),
        models.BuildingElement(
            id="el-window", name="Window", code=11, is_default=True,
            product_results=[{"product_result_id": "pr-wall", "count": 1}],
            demolished_product_results=[{"product_result_id": "pr-demo", "count": 1}],
        ),
        models.BuildingElement(
            id="el-door", name="Door", code=12, planner_external_id="n_door_1",
            product_results=[{"product_result_id": "pr-wall", "count": 1}],
        ),
        models.BuildingElement(
            id="el-other", name="Other", code=models.OTHER_ELEMENT_CODE, other_element_id="el-wall",
            product_results=[{"product_result_id": "pr-wall", "count": 1}],
        ),
    ])
    db.commit()


def make_project(db, owner, **kwargs):
    """Insert a project row directly, bypassing the create rules."""
    values = dict(
        name="House", status=models.ProjectStatus.CREATED, parking_provided=True,
        is_manual=True, build_elements=[], demolish_elements=[],
        default_building_elements={"window": "el-window"},
    )
    values.update(kwargs)
    project = models.Project(user_id=owner.id, **values)
    project.summary = models.ProjectSummary(material_price=0.0, labor_time=0.0)
    db.add(project)
    db.commit()
    return project


def live_entry(element_id, count, from_3d=False, product_results=None):
    return {"building_element_id": element_id, "count": count, "from_3d": from_3d,
            "product_results": product_results}
