"""End-to-end tests against a real Redis (skipped when none is reachable)."""

from datetime import UTC, datetime
from typing import Any

import pytest

from rigiddb import RigidDB

pytestmark = pytest.mark.requires_redis

PAIR_SCHEMA = {
    "car": {
        "definition": {"color": "string", "mileage": "int"},
        "indices": {"u": {"unique": True, "fields": ["color", "mileage"]}},
    }
}

LOOKS_KEY = "t:car:i:color:convertible:mileage"


def _car(**overrides: Any) -> dict[str, Any]:
    attrs = {"color": "Blue", "mileage": 5, "convertible": True, "purchaseDate": None}
    attrs.update(overrides)
    return attrs


@pytest.fixture
async def pair_store(redis_client, script_cache) -> RigidDB:
    store = RigidDB("t", redis_client=redis_client, script_cache=script_cache)
    assert (await store.set_schema(1, PAIR_SCHEMA)).ok
    return store


@pytest.fixture
async def car_store(redis_client, script_cache, car_schema) -> RigidDB:
    store = RigidDB("t", redis_client=redis_client, script_cache=script_cache)
    assert (await store.set_schema(1, car_schema)).ok
    return store


class TestUniqueScenario:
    async def test_create_conflict_update_get(self, pair_store: RigidDB) -> None:
        created = await pair_store.create("car", {"color": "blue", "mileage": 5})
        assert created.to_dict() == {"val": 1}

        duplicate = await pair_store.create("car", {"color": "blue", "mileage": 5})
        assert duplicate.to_dict() == {
            "val": False,
            "err": "notUnique",
            "method": "create",
            "indices": ["u"],
        }

        assert (await pair_store.update("car", 1, {"color": "red"})).val is True
        assert (await pair_store.get("car", 1)).val == {"color": "red", "mileage": 5}

    async def test_failed_create_leaves_id_gap(self, pair_store: RigidDB) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        assert (await pair_store.current_id("car")).val == 2
        assert (await pair_store.create("car", {"color": "blue", "mileage": 6})).val == 3
        assert (await pair_store.list("car")).val == [1, 3]

    async def test_update_into_taken_slot(self, pair_store: RigidDB) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        await pair_store.create("car", {"color": "red", "mileage": 5})
        conflict = await pair_store.update("car", 2, {"color": "blue"})
        assert conflict.err == "notUnique"
        assert conflict.indices == ["u"]
        # Rewriting a record's own slot is not a conflict.
        assert (await pair_store.update("car", 1, {"color": "blue"})).ok
        assert (await pair_store.get("car", 2)).val["color"] == "red"

    async def test_freed_slot_reusable(self, pair_store: RigidDB) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        await pair_store.update("car", 1, {"mileage": 6})
        assert (await pair_store.create("car", {"color": "blue", "mileage": 5})).val == 2


class TestLifecycle:
    async def test_delete_missing(self, pair_store: RigidDB) -> None:
        result = await pair_store.delete("car", 42)
        assert result.to_dict() == {"val": False, "err": "notFound", "method": "delete"}

    async def test_delete_removes_everything_but_counter(self, pair_store: RigidDB, redis_client) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        assert (await pair_store.exists("car", 1)).val is True

        assert (await pair_store.delete("car", 1)).ok

        assert (await pair_store.exists("car", 1)).val is False
        assert (await pair_store.size("car")).val == 0
        assert (await pair_store.list("car")).val == []
        assert (await pair_store.get("car", 1)).err == "notFound"
        assert sorted(await redis_client.keys("t:car:*")) == ["t:car:nextid"]

    async def test_sentinel_text_round_trips(self, pair_store: RigidDB) -> None:
        await pair_store.create("car", {"color": "~", "mileage": 1})
        assert (await pair_store.get("car", 1)).val == {"color": "~", "mileage": 1}
        assert (await pair_store.find("car", {"color": "~", "mileage": 1})).val == [1]


class TestHybridIndex:
    async def test_promotion_and_demotion(self, car_store: RigidDB, redis_client) -> None:
        await car_store.create("car", _car())
        assert await redis_client.hget(LOOKS_KEY, "blue:true:5") == "1"

        await car_store.create("car", _car(color="BLUE"))
        assert await redis_client.hget(LOOKS_KEY, "blue:true:5") is None
        assert await redis_client.smembers(f"{LOOKS_KEY}:blue:true:5") == {"1", "2"}
        assert (await car_store.find("car", {"color": "blue", "mileage": 5, "convertible": True})).val == [1, 2]

        await car_store.delete("car", 1)
        assert await redis_client.exists(f"{LOOKS_KEY}:blue:true:5") == 0
        assert await redis_client.hget(LOOKS_KEY, "blue:true:5") == "2"
        assert (await car_store.find("car", {"color": "Blue", "mileage": 5, "convertible": True})).val == [2]

    async def test_update_moves_entry(self, car_store: RigidDB) -> None:
        await car_store.create("car", _car())
        await car_store.create("car", _car())
        await car_store.update("car", 2, {"mileage": 9})

        query = {"color": "blue", "convertible": True}
        assert (await car_store.find("car", {**query, "mileage": 5})).val == [1]
        assert (await car_store.find("car", {**query, "mileage": 9})).val == [2]
        assert (await car_store.find("car", {**query, "mileage": 7})).val == []

    async def test_unknown_index(self, car_store: RigidDB) -> None:
        assert (await car_store.find("car", {"color": "blue"})).err == "unknownIndex"


class TestNullUnique:
    async def test_null_values_skip_uniqueness(self, car_store: RigidDB, redis_client) -> None:
        assert (await car_store.create("car", _car())).ok
        assert (await car_store.create("car", _car(mileage=6))).ok
        assert await redis_client.hlen("t:car:i:purchaseDate") == 0

    async def test_non_null_values_checked(self, car_store: RigidDB) -> None:
        bought = datetime(2015, 11, 1, 16, 41, 24, tzinfo=UTC)
        await car_store.create("car", _car(purchaseDate=bought))
        duplicate = await car_store.create("car", _car(mileage=6, purchaseDate=bought))
        assert duplicate.indices == ["purchase"]
        assert (await car_store.find("car", {"purchaseDate": bought})).val == [1]
        assert (await car_store.get("car", 1)).val["purchaseDate"] == bought


class TestMulti:
    async def test_last_reply_wins(self, pair_store: RigidDB) -> None:
        def build(batch) -> None:
            batch.create("car", {"color": "blue", "mileage": 5})
            batch.create("car", {"color": "red", "mileage": 5})
            batch.get("car", 2)

        result = await pair_store.multi(build)
        assert result.val == {"color": "red", "mileage": 5}
        assert (await pair_store.size("car")).val == 2

    async def test_failure_undoes_earlier_writes(self, pair_store: RigidDB, redis_client) -> None:
        def build(batch) -> None:
            batch.create("car", {"color": "blue", "mileage": 5})
            batch.update("car", 99, {"color": "red"})

        result = await pair_store.multi(build)

        assert result.err == "notFound"
        assert result.method == "update"
        assert (await pair_store.list("car")).val == []
        assert sorted(await redis_client.keys("t:car:*")) == ["t:car:nextid"]
        assert (await pair_store.create("car", {"color": "blue", "mileage": 5})).val == 2

    async def test_failure_restores_previous_values(self, pair_store: RigidDB) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        await pair_store.create("car", {"color": "red", "mileage": 5})

        def build(batch) -> None:
            batch.update("car", 1, {"mileage": 7})
            batch.update("car", 2, {"color": "blue", "mileage": 7})

        result = await pair_store.multi(build)

        assert result.err == "notUnique"
        assert (await pair_store.get("car", 1)).val == {"color": "blue", "mileage": 5}
        assert (await pair_store.find("car", {"color": "blue", "mileage": 5})).val == [1]
        assert (await pair_store.find("car", {"color": "blue", "mileage": 7})).val == []


class TestSchemaLifecycle:
    async def test_set_schema_is_first_write_wins(self, pair_store: RigidDB, car_schema) -> None:
        again = await pair_store.set_schema(1, PAIR_SCHEMA)
        assert again.ok
        assert again.val == (await pair_store.get_schema_hash()).val
        assert (await pair_store.set_schema(2, PAIR_SCHEMA)).err == "schemaExists"
        assert (await pair_store.set_schema(1, car_schema)).err == "schemaExists"

    async def test_second_instance_loads_schema(self, pair_store: RigidDB, redis_client, script_cache) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})

        other = RigidDB("t", redis_client=redis_client, script_cache=script_cache)

        schema = (await other.get_schema()).val
        assert schema["revision"] == 1
        assert list(schema["schema"]["car"]["definition"]) == ["color", "mileage"]
        assert (await other.get("car", 1)).val == {"color": "blue", "mileage": 5}
        assert (await other.get_schema_hash()).val == (await pair_store.get_schema_hash()).val

    async def test_corrupt_schema_reported_then_replaceable(self, redis_client, script_cache) -> None:
        await redis_client.mset({"t:_schema": "{broken", "t:_schemaRevision": "1"})
        store = RigidDB("t", redis_client=redis_client, script_cache=script_cache)

        assert (await store.size("car")).err == "badSavedSchema"
        assert (await store.set_schema(1, PAIR_SCHEMA)).ok
        assert (await store.size("car")).val == 0

    async def test_scripts_survive_flush(self, pair_store: RigidDB, redis_client) -> None:
        await pair_store.create("car", {"color": "blue", "mileage": 5})
        await redis_client.script_flush()
        assert (await pair_store.create("car", {"color": "blue", "mileage": 6})).val == 2
