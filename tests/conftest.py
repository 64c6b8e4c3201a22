import asyncio
import os
import sys
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# Keep the application engine off the developer database while tests import it
os.environ["DATABASE_URL"] = "sqlite://"

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

import httpx
from sqlalchemy.pool import StaticPool

from entrance_pathway import config
from entrance_pathway.auth_utils import AuthUser, create_access_token
from entrance_pathway.models import Exam, ExamQuestion, Question, Subject, Topic, User

TEST_JWT_SECRET = "test-secret-for-entrance-pathway"

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # all connections share the same in-memory database
)

TABLES_IN_DELETE_ORDER = [
    "exam_answers",
    "exam_attempts",
    "course_exams",
    "exam_questions",
    "exams",
    "questions",
    "notes",
    "live_classes",
    "lesson_progress",
    "enrollments",
    "lessons",
    "chapters",
    "course_subjects",
    "courses",
    "topics",
    "subjects",
    "users",
]


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    with Session(test_engine) as session:
        for table in TABLES_IN_DELETE_ORDER:
            session.exec(text(f"DELETE FROM {table}"))
        session.commit()


@pytest.fixture
def enforce_foreign_keys():
    """Turn on SQLite foreign key checks for a single test."""
    with test_engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield
    with test_engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(config, "JWT_AUDIENCE", None)
    return TEST_JWT_SECRET


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from entrance_pathway.database import get_session
from entrance_pathway.main import app


class SyncClientWrapper:
    """Drive an httpx AsyncClient from synchronous tests."""

    def __init__(self, async_client, loop):
        self.async_client = async_client
        self.loop = loop

    def get(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

    def post(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

    def put(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.put(*args, **kwargs))

    def patch(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.patch(*args, **kwargs))

    def delete(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.delete(*args, **kwargs))


@pytest.fixture
def client():
    """Create test client using httpx AsyncClient with sync wrapper."""

    def override_get_session():
        # Must use the same test_engine instance that has the tables
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


# ============================================================================
# AUTH HELPERS
# ============================================================================


def make_token(user_id: str, email: str = "", role=None, **claims) -> str:
    payload = {"sub": user_id, "email": email, **claims}
    if role:
        payload["role"] = role
    return create_access_token(payload, secret=TEST_JWT_SECRET)


def auth_headers(user) -> dict:
    """Bearer header for a stored user (or AuthUser)."""
    return {"Authorization": f"Bearer {make_token(user.id, user.email, user.role)}"}


def as_auth_user(user: User) -> AuthUser:
    return AuthUser(id=user.id, email=user.email, role=user.role, full_name=user.full_name)


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _create_user(user_id: str, email: str, role: str, full_name: str) -> User:
    with Session(test_engine) as session:
        user = User(id=user_id, email=email, role=role, full_name=full_name)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def student_user():
    return _create_user("student-1", "alice@example.com", "student", "Alice Student")


@pytest.fixture
def other_student():
    return _create_user("student-2", "bob@example.com", "student", "Bob Student")


@pytest.fixture
def mentor_user():
    return _create_user("mentor-1", "mentor@example.com", "mentor", "Maya Mentor")


@pytest.fixture
def admin_user():
    return _create_user("admin-1", "admin@example.com", "admin", "Admin User")


@pytest.fixture
def subject():
    with Session(test_engine) as session:
        subject = Subject(name="Physics", description="Mechanics and waves")
        session.add(subject)
        session.commit()
        session.refresh(subject)
        return subject


@pytest.fixture
def topic(subject):
    with Session(test_engine) as session:
        topic = Topic(name="Kinematics", subject_id=subject.id)
        session.add(topic)
        session.commit()
        session.refresh(topic)
        return topic


@pytest.fixture
def choice_question(subject):
    """Multiple-choice question whose correct answer is option "A"."""
    with Session(test_engine) as session:
        question = Question(
            question_text="Which option is correct?",
            question_type="multiple_choice",
            options=[
                {"id": "opt-a", "text": "A", "is_correct": True},
                {"id": "opt-b", "text": "B", "is_correct": False},
                {"id": "opt-c", "text": "C", "is_correct": False},
                {"id": "opt-d", "text": "D", "is_correct": False},
            ],
            correct_answer="A",
            difficulty="easy",
            subject_id=subject.id,
        )
        session.add(question)
        session.commit()
        session.refresh(question)
        return question


@pytest.fixture
def true_false_question(subject):
    """True/false question whose correct answer is "True"."""
    with Session(test_engine) as session:
        question = Question(
            question_text="The acceleration due to gravity is constant near the surface.",
            question_type="true_false",
            options=[
                {"id": "tf-true", "text": "True", "is_correct": True},
                {"id": "tf-false", "text": "False", "is_correct": False},
            ],
            correct_answer="True",
            difficulty="medium",
            subject_id=subject.id,
        )
        session.add(question)
        session.commit()
        session.refresh(question)
        return question


@pytest.fixture
def short_answer_question(subject):
    with Session(test_engine) as session:
        question = Question(
            question_text="SI unit of force?",
            question_type="short_answer",
            options=[],
            correct_answer="Newton",
            difficulty="easy",
            subject_id=subject.id,
        )
        session.add(question)
        session.commit()
        session.refresh(question)
        return question


@pytest.fixture
def exam(choice_question, true_false_question):
    """Published 60-minute exam: the choice question for 5 marks, true/false for 10."""
    with Session(test_engine) as session:
        exam = Exam(
            title="Physics Model Set 1",
            duration_minutes=60,
            total_marks=15,
            passing_marks=5,
            exam_type="full_model",
            set_number=1,
            is_published=True,
        )
        session.add(exam)
        session.commit()
        session.refresh(exam)

        session.add(ExamQuestion(exam_id=exam.id, question_id=choice_question.id, marks=5, position=0))
        session.add(ExamQuestion(exam_id=exam.id, question_id=true_false_question.id, marks=10, position=1))
        session.commit()
        session.refresh(exam)
        return exam


@pytest.fixture
def draft_exam():
    with Session(test_engine) as session:
        exam = Exam(title="Draft Exam", duration_minutes=30, total_marks=10, passing_marks=4)
        session.add(exam)
        session.commit()
        session.refresh(exam)
        return exam
