"""Pytest configuration and shared fixtures."""

from collections.abc import Generator

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from flcore.core.database import Base, create_engine_from_settings
from flcore.core.permissions import GrantTableChecker, PermissionRegistry, enable_access_control, set_registry
from flcore.modules import register_module_permissions

# Import all models to ensure they're registered with Base.metadata
from flcore.modules.actors import ActorGroup, ActorGroupMember  # noqa: F401
from flcore.modules.comments import Comment  # noqa: F401
from flcore.modules.lists import List, ListItem  # noqa: F401
from tests.factories.samples import SampleActorFactory, SampleDocumentFactory, SamplePageFactory
from tests.models import SampleActor, SampleBook, SampleDocument, SampleFolder, SamplePage, SampleTask


@pytest.fixture(autouse=True)
def registry() -> Generator[PermissionRegistry, None, None]:
    """Install an isolated permission registry for each test.

    Yields:
        A registry holding the standard and module permissions
    """
    reg = register_module_permissions(PermissionRegistry())
    set_registry(reg)
    yield reg
    set_registry(None)


@pytest.fixture(autouse=True)
def checkers(registry: PermissionRegistry) -> dict[type, GrantTableChecker]:
    """Attach fresh grant table checkers to the access controlled sample models.

    Returns:
        The checker for each model class
    """
    rv = {}
    for cls in (SampleDocument, SampleTask, SampleFolder):
        rv[cls] = GrantTableChecker(registry)
        enable_access_control(cls, rv[cls])
    return rv


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Create an in-memory SQLite engine with all tables."""
    engine = create_engine_from_settings("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    """Provide a database session; changes are rolled back after the test."""
    with Session(engine, expire_on_commit=False, autoflush=False) as session:
        yield session
        session.rollback()


# ============================================================
# Sample Objects
# ============================================================


@pytest.fixture
def actor(db: Session) -> SampleActor:
    """Create a persisted actor."""
    actor = SampleActorFactory.build()
    db.add(actor)
    db.flush()
    return actor


@pytest.fixture
def other_actor(db: Session) -> SampleActor:
    """Create a second persisted actor."""
    actor = SampleActorFactory.build()
    db.add(actor)
    db.flush()
    return actor


@pytest.fixture
def document(db: Session) -> SampleDocument:
    """Create a persisted, access controlled, commentable document."""
    doc = SampleDocumentFactory.build()
    db.add(doc)
    db.flush()
    return doc


@pytest.fixture
def page(db: Session) -> SamplePage:
    """Create a persisted commentable page without access control."""
    page = SamplePageFactory.build()
    db.add(page)
    db.flush()
    return page


@pytest.fixture
def book(db: Session) -> SampleBook:
    """Create a persisted listable book."""
    book = SampleBook(title="Dune")
    db.add(book)
    db.flush()
    return book


@pytest.fixture
def other_book(db: Session) -> SampleBook:
    """Create a second persisted listable book."""
    book = SampleBook(title="Emma")
    db.add(book)
    db.flush()
    return book
