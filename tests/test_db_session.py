"""
Civitas — Database Session Tests
=================================
Engine lifecycle and the session factory.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

import civitas.db.session as sess_mod
from civitas.db.models import Base, Category


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    monkeypatch.setenv(
        "CIVITAS_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'session.db'}"
    )
    engine = await sess_mod.init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await sess_mod.close_db()


async def test_factory_bound_to_engine(sqlite_db):
    factory = sess_mod.get_session_factory()

    async with factory() as session:
        async with session.begin():
            session.add(Category(name="Housing"))

    async with factory() as session:
        names = (await session.execute(select(Category.name))).scalars().all()
    assert names == ["Housing"]


async def test_objects_usable_after_commit(sqlite_db):
    async with sess_mod.get_session_factory()() as session:
        async with session.begin():
            category = Category(name="Housing")
            session.add(category)

    assert category.name == "Housing"
    assert category.id is not None


async def test_close_resets_state(sqlite_db):
    assert sess_mod.get_engine() is sqlite_db
    await sess_mod.close_db()

    with pytest.raises(RuntimeError):
        sess_mod.get_engine()
    with pytest.raises(RuntimeError):
        sess_mod.get_session_factory()
