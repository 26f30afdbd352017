import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from database import get_db, init_db, make_engine


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine(tmp_path):
    # One SQLite file per test. NullPool so no connection outlives the
    # event loop that opened it.
    return make_engine(f"sqlite+aiosqlite:///{tmp_path / 'library.db'}", poolclass=NullPool)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(anyio_backend, engine, session_factory):
    await init_db(engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def client(engine, session_factory):
    from main import app

    asyncio.run(init_db(engine))

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
