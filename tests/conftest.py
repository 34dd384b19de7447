import sys
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

from fastapi.testclient import TestClient

from assignment_engine.database import get_session
from assignment_engine.identity import LEARNER, Identity, issue_identity_token
from assignment_engine.main import app
from assignment_engine.models import LearnerScore, Submission
from assignment_engine.services.assignment_service import build_question, create_assignment
from assignment_engine.transactors import AuthoritativeTransactor, DirectTransactor

# Use sqlite:///:memory: with poolclass=StaticPool to share the same in-memory DB across threads
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="session")
def engine():
    """Provide test engine as a fixture."""
    return test_engine


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

    # Clean up in FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM proctoringevent"))
        session.exec(text("DELETE FROM submission"))
        session.exec(text("DELETE FROM learnerscore"))
        session.exec(text("DELETE FROM assignment"))
        session.commit()


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================


def override_get_session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def client():
    """TestClient bound to the in-memory database.

    Not entered as a context manager, so the startup hook never touches the
    configured database.
    """
    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


def token(uid: str, role: str = LEARNER) -> str:
    return issue_identity_token(uid, role)


def auth(uid: str, role: str = LEARNER) -> dict:
    return {"Authorization": f"Bearer {token(uid, role)}"}


@pytest.fixture(params=["authoritative", "direct"])
def make_transactor(request, client):
    """Build a transactor for a caller on either channel.

    Tests using this fixture run once per channel; both must behave the same.
    """

    def factory(uid: str, role: str = LEARNER):
        if request.param == "authoritative":
            return AuthoritativeTransactor(client, token(uid, role))
        return DirectTransactor(lambda: Session(test_engine), Identity(uid=uid, role=role))

    factory.channel = request.param
    return factory


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _mcq(prompt, options, correct):
    return build_question(prompt, "mcq", options, correct)


def _create(**kwargs) -> int:
    with Session(test_engine) as session:
        return create_assignment(session, created_by="reviewer-1", **kwargs).id


@pytest.fixture
def mcq_quiz_id():
    """All-MCQ auto-graded quiz worth 100 points: Q0 correct {1}, Q1 correct {0, 2}."""
    return _create(
        title="Capitals",
        kind="quiz",
        total_points=100,
        auto_grading=True,
        questions=[
            _mcq("Capital of France?", ["Berlin", "Paris", "Rome"], [1]),
            _mcq("Pick the primes", ["2", "4", "5"], [0, 2]),
        ],
    )


@pytest.fixture
def three_mcq_quiz_id():
    """All-MCQ auto-graded quiz worth 10 points, each question's answer is option 0."""
    return _create(
        title="Three in a row",
        kind="quiz",
        total_points=10,
        auto_grading=True,
        questions=[_mcq(f"Question {n}", ["yes", "no"], [0]) for n in range(1, 4)],
    )


@pytest.fixture
def mixed_quiz_id():
    """Auto-graded quiz with one MCQ and one free-text question, worth 20 points."""
    return _create(
        title="Mixed",
        kind="quiz",
        total_points=20,
        auto_grading=True,
        questions=[
            _mcq("2 + 2?", ["3", "4"], [1]),
            build_question("Explain your reasoning", "text"),
        ],
    )


@pytest.fixture
def manual_quiz_id():
    """All-MCQ quiz with auto grading switched off."""
    return _create(
        title="Manual",
        kind="quiz",
        total_points=10,
        auto_grading=False,
        questions=[_mcq("Sky colour?", ["blue", "green"], [0])],
    )


@pytest.fixture
def task_id():
    return _create(title="Write an essay", kind="task", total_points=10)


def stored_score(learner_id: str) -> int:
    with Session(test_engine) as session:
        score = session.get(LearnerScore, learner_id)
        return score.total_score if score else 0


def stored_submissions(assignment_id: int, learner_id: str):
    from sqlmodel import select

    with Session(test_engine) as session:
        return session.exec(
            select(Submission).where(
                Submission.assignment_id == assignment_id,
                Submission.learner_id == learner_id,
            )
        ).all()
