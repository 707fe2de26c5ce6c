import os

TEST_DB_FILE = "test_gradebook.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# must be set before gradebook.db.session builds its engine
os.environ.setdefault("GRADEBOOK_DATABASE_URL", TEST_DB_URL)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from gradebook.core.deps import get_db  # noqa: E402
from gradebook.db.base_class import Base  # noqa: E402
from gradebook.main import app  # noqa: E402
from gradebook.models.category import GradebookCategory  # noqa: E402
from gradebook.models.gradebook import Gradebook  # noqa: E402
from gradebook.models.item import GradebookItem  # noqa: E402
from gradebook.models.user_grade import UserGrade  # noqa: E402
from gradebook.services.lifecycle import GradebookService  # noqa: E402

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed_data():
    """Seed a clean gradebook (course 1) for each test."""
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        db.query(UserGrade).delete()
        db.query(GradebookItem).delete()
        db.query(GradebookCategory).filter(GradebookCategory.parent_id.is_not(None)).update(
            {GradebookCategory.parent_id: None}
        )
        db.query(GradebookCategory).delete()
        db.query(Gradebook).delete()
        db.commit()

        gradebook = Gradebook(course_id=1)
        db.add(gradebook)
        db.commit()
        db.refresh(gradebook)

        yield gradebook.id
    finally:
        db.close()


@pytest.fixture()
def gradebook_id(seed_data):
    return seed_data


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def service(db):
    return GradebookService(db)


@pytest.fixture()
def other_service():
    """A service on its own session, standing in for a concurrent request."""
    session = TestingSessionLocal()
    try:
        yield GradebookService(session)
    finally:
        session.close()


@pytest.fixture()
def client():
    """Test client that uses the test DB session via dependency override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
