"""Registry store against a temporary SQLite file."""

import pytest

from auraxbot.state import EntityClass, SinkKind
from auraxbot.storage import RegistryStore


@pytest.mark.asyncio
async def test_insert_and_list(store):
    row_id = await store.insert_row(EntityClass.ALERT, "1-123", -100, SinkKind.MESSAGE, message_id=42)
    rows = await store.list_rows(EntityClass.ALERT, "1-123")
    assert len(rows) == 1
    row = rows[0]
    assert row.row_id == row_id
    assert row.chat_id == -100
    assert row.message_id == 42
    assert row.sink_kind == SinkKind.MESSAGE
    assert row.error is False


@pytest.mark.asyncio
async def test_entities_are_keyed_by_class(store):
    await store.insert_row(EntityClass.POPULATION_TRACKER, "connery", -1, SinkKind.CHANNEL)
    await store.insert_row(EntityClass.TERRITORY_TRACKER, "connery", -2, SinkKind.CHANNEL)
    await store.insert_row(EntityClass.POPULATION_TRACKER, "connery", -3, SinkKind.CHANNEL)

    assert await store.list_distinct_entities(EntityClass.POPULATION_TRACKER) == ["connery"]
    assert len(await store.list_rows(EntityClass.POPULATION_TRACKER, "connery")) == 2

    await store.delete_rows(EntityClass.POPULATION_TRACKER, "connery")
    assert await store.list_distinct_entities(EntityClass.POPULATION_TRACKER) == []
    assert len(await store.list_rows(EntityClass.TERRITORY_TRACKER, "connery")) == 1


@pytest.mark.asyncio
async def test_error_flag_applies_to_all_rows(store):
    await store.insert_row(EntityClass.SERVER_DASHBOARD, "miller", -1, SinkKind.MESSAGE, message_id=1)
    await store.insert_row(EntityClass.SERVER_DASHBOARD, "miller", -2, SinkKind.MESSAGE, message_id=2)

    await store.set_error_flag(EntityClass.SERVER_DASHBOARD, "miller", True)
    assert all(row.error for row in await store.list_rows(EntityClass.SERVER_DASHBOARD, "miller"))

    await store.set_error_flag(EntityClass.SERVER_DASHBOARD, "miller", False)
    assert not any(row.error for row in await store.list_rows(EntityClass.SERVER_DASHBOARD, "miller"))


@pytest.mark.asyncio
async def test_delete_single_row(store):
    first = await store.insert_row(EntityClass.ALERT, "1-5", -1, SinkKind.MESSAGE, message_id=1)
    await store.insert_row(EntityClass.ALERT, "1-5", -2, SinkKind.MESSAGE, message_id=2)
    assert await store.delete_row(first) == 1
    rows = await store.list_rows(EntityClass.ALERT, "1-5")
    assert [row.chat_id for row in rows] == [-2]


@pytest.mark.asyncio
async def test_chat_rows(store):
    await store.insert_row(EntityClass.OUTFIT_TRACKER, "ps2:v2|37", -7, SinkKind.CHANNEL, variant="plain")
    await store.insert_row(EntityClass.ALERT, "1-9", -7, SinkKind.MESSAGE, message_id=3)
    await store.insert_row(EntityClass.ALERT, "1-9", -8, SinkKind.MESSAGE, message_id=4)

    rows = await store.list_chat_rows(-7)
    assert [row.entity_class for row in rows] == [EntityClass.OUTFIT_TRACKER, EntityClass.ALERT]
    assert rows[0].variant == "plain"

    assert await store.delete_chat_rows(-7) == 2
    assert await store.list_chat_rows(-7) == []
    assert len(await store.list_rows(EntityClass.ALERT, "1-9")) == 1


@pytest.mark.asyncio
async def test_rows_survive_reopen(tmp_path):
    path = str(tmp_path / "registry.db")
    first = RegistryStore(path).open()
    await first.insert_row(EntityClass.POPULATION_TRACKER, "emerald", -1, SinkKind.CHANNEL)
    await first.set_error_flag(EntityClass.POPULATION_TRACKER, "emerald", True)
    first.close()

    second = RegistryStore(path).open()
    try:
        rows = await second.list_rows(EntityClass.POPULATION_TRACKER, "emerald")
        assert len(rows) == 1 and rows[0].error is True
    finally:
        second.close()


@pytest.mark.asyncio
async def test_closed_store_raises():
    closed = RegistryStore(":memory:")
    with pytest.raises(RuntimeError):
        await closed.list_chat_rows(1)
