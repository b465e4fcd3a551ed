import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_lineage.main import app
from recipe_lineage.db import Base, get_db
from recipe_lineage.models import RecipeVersion, SourceLink
from recipe_lineage.schemas import Ingredient, Step
from recipe_lineage.services.lineage_store import SqlLineageStore

# --- Test Database Setup ---

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, 'sqlite')
def compile_jsonb(element, compiler, **kw):
    return "JSON"


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # Share the in-memory database across sessions
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    return SqlLineageStore(db_session)


# --- Content helpers ---

def make_ingredients(*items: str) -> list[Ingredient]:
    return [
        Ingredient(id=f"ing-{idx}", item=item, quantity=1, unit="cup", sort_order=idx)
        for idx, item in enumerate(items)
    ]


def make_steps(*instructions: str) -> list[Step]:
    return [
        Step(step_number=idx, instruction=text)
        for idx, text in enumerate(instructions, start=1)
    ]


@pytest.fixture
def carbonara_content():
    ingredients = make_ingredients("spaghetti", "guanciale", "eggs", "pecorino")
    steps = make_steps("Boil the pasta", "Crisp the guanciale", "Toss with eggs and cheese")
    return ingredients, steps


@pytest.fixture
def outsourced_recipe(store, carbonara_content):
    """Imported recipe with only its v1."""
    from recipe_lineage.services.recipe_versions import create_recipe
    ingredients, steps = carbonara_content
    return create_recipe(store, owner_id="local", title="Carbonara", ingredients=ingredients, steps=steps)


@pytest.fixture
def forked_recipe(store, outsourced_recipe):
    from recipe_lineage.services.recipe_versions import fork_recipe
    return fork_recipe(store, outsourced_recipe, "local")


@pytest.fixture
def pending_source_link(db_session):
    link = SourceLink(
        owner_id="local",
        link_status="pending",
        extracted_title="Creamy Carbonara",
        extracted_description="From a short video",
        extracted_ingredients=[
            {"id": "src-0", "item": "spaghetti", "quantity": 200, "unit": "g"},
            {"id": "src-1", "item": "pancetta", "quantity": 100, "unit": "g"},
            {"id": "src-2", "item": "egg yolks", "quantity": 4},
        ],
        extracted_steps=[
            {"step_number": 1, "instruction": "Boil the pasta in salted water"},
            {"step_number": 2, "instruction": "Fry the pancetta", "duration_minutes": 5},
        ],
        source_url="https://example.com/v/123",
        source_platform="tiktok",
        source_creator="@pastachef",
    )
    db_session.add(link)
    db_session.commit()
    db_session.refresh(link)
    return link


def add_version(db_session, recipe_id: str, version_number: int, **fields) -> RecipeVersion:
    """Insert a version row directly, bypassing the allocator."""
    version = RecipeVersion(
        master_recipe_id=recipe_id,
        version_number=version_number,
        ingredients=fields.pop("ingredients", [{"id": "ing-0", "item": "spaghetti"}]),
        steps=fields.pop("steps", [{"step_number": 1, "instruction": "Boil the pasta"}]),
        created_from_mode=fields.pop("created_from_mode", "edit"),
        **fields,
    )
    db_session.add(version)
    db_session.commit()
    db_session.refresh(version)
    return version


class FailingUpdateSession:
    """Session wrapper whose UPDATEs against one table fail at execute time."""

    def __init__(self, db, table: str):
        self._db = db
        self._table = table
        self.failed = 0

    def execute(self, statement, *args, **kwargs):
        if str(statement).startswith(f"UPDATE {self._table}"):
            self.failed += 1
            raise OperationalError(str(statement), {}, Exception("disk I/O error"))
        return self._db.execute(statement, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._db, name)


import fakeredis
import fakeredis.aioredis
from recipe_lineage.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client._redis_async = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)

    yield

    redis_client._redis_async = None
