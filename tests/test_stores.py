"""Tests for the document stores, run against each backend."""

import asyncio
from datetime import UTC, datetime

import pytest
import pytest_asyncio

from routeforge.errors import ValidationError
from routeforge.persistence import DatabaseConfig, DocumentStore, MemoryStore, create_store
from routeforge.persistence.sql import QueryCompiler, SQLStore, dumps, loads
from routeforge.query import QuerySpec


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def doc_store(request, registry, tmp_path):
    if request.param == "memory":
        store = MemoryStore(registry)
    else:
        store = SQLStore(f"sqlite:///{tmp_path / 'docs.db'}", registry)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def user_type(registry):
    return registry.require("User")


@pytest.fixture
def post_type(registry):
    return registry.require("Post")


# =============================================================================
# Protocol and factory
# =============================================================================


class TestFactory:
    def test_memory_is_default(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("ROUTEFORGE_DB_PATH", raising=False)
        assert isinstance(create_store(DatabaseConfig.from_env()), MemoryStore)

    def test_sqlite_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp/x.db")
        assert isinstance(create_store(DatabaseConfig.from_env()), SQLStore)

    def test_db_path_becomes_sqlite_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("ROUTEFORGE_DB_PATH", "/tmp/rf.db")
        assert DatabaseConfig.from_env().url == "sqlite:////tmp/rf.db"

    def test_postgresql_uses_psycopg_driver(self):
        config = DatabaseConfig("postgresql://u:p@localhost/db")
        assert config.sqlalchemy_url == "postgresql+psycopg://u:p@localhost/db"

    def test_mongodb_url(self):
        from routeforge.persistence.mongo import MongoStore

        assert isinstance(create_store(DatabaseConfig("mongodb://localhost/rf")), MongoStore)

    def test_unsupported_scheme(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_store(DatabaseConfig("redis://localhost"))

    def test_stores_satisfy_protocol(self, registry):
        assert isinstance(MemoryStore(registry), DocumentStore)
        assert isinstance(SQLStore("sqlite://", registry), DocumentStore)


class TestJsonEncoding:
    def test_dates_round_trip_tagged(self):
        when = datetime(2014, 1, 1, tzinfo=UTC)
        body = dumps({"createdAt": when})
        assert '"$date"' in body
        assert loads(body) == {"createdAt": when}


# =============================================================================
# Store behaviour
# =============================================================================


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_version(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "dave@example.com"})
        assert len(user["_id"]) == 32
        assert user["__v"] == 0
        assert user["posts"] == []
        assert await doc_store.get(user_type, user["_id"]) == user

    @pytest.mark.asyncio
    async def test_insert_validates(self, doc_store, user_type):
        with pytest.raises(ValidationError):
            await doc_store.insert(user_type, {"name": "Dave"})
        assert await doc_store.count(user_type, {}) == 0

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, doc_store, user_type):
        data = {"_id": "u1", "name": "Dave", "email": "d@x.io"}
        await doc_store.insert(user_type, data)
        with pytest.raises(ValidationError) as exc_info:
            await doc_store.insert(user_type, data)
        assert exc_info.value.name == "DuplicateKey"

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        updated = await doc_store.update(user_type, user["_id"], {"name": "David"})
        assert updated["__v"] == 1
        assert (await doc_store.get(user_type, user["_id"]))["name"] == "David"

    @pytest.mark.asyncio
    async def test_update_removes_fields(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io", "mood": "ok"})
        updated = await doc_store.update(user_type, user["_id"], {}, removed=["mood"])
        assert "mood" not in updated

    @pytest.mark.asyncio
    async def test_update_validates(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        with pytest.raises(ValidationError):
            await doc_store.update(user_type, user["_id"], {"email": ""})
        assert (await doc_store.get(user_type, user["_id"]))["__v"] == 0

    @pytest.mark.asyncio
    async def test_update_missing(self, doc_store, user_type):
        assert await doc_store.update(user_type, "missing", {"name": "X"}) is None

    @pytest.mark.asyncio
    async def test_update_keeps_fields_written_since_load(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        await doc_store.find_by_id_and_update("User", user["_id"], {"$addToSet": {"posts": "p1"}})
        await doc_store.update(user_type, user["_id"], {"name": "David"})
        stored = await doc_store.get(user_type, user["_id"])
        assert stored["name"] == "David"
        assert stored["posts"] == ["p1"]

    @pytest.mark.asyncio
    async def test_remove_returns_document(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        removed = await doc_store.remove(user_type, user["_id"])
        assert removed["_id"] == user["_id"]
        assert await doc_store.get(user_type, user["_id"]) is None
        assert await doc_store.remove(user_type, user["_id"]) is None

    @pytest.mark.asyncio
    async def test_find_by_id_and_update_bypasses_validation(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        updated = await doc_store.find_by_id_and_update("User", user["_id"], {"$unset": {"name": ""}})
        assert "name" not in updated
        assert await doc_store.find_by_id_and_update("User", "missing", {"$set": {"a": 1}}) is None


class TestQueries:
    @pytest.fixture
    def posts(self):
        return [
            {"title": "Post 2012", "createdAt": "2012-01-01"},
            {"title": "Post 2013", "createdAt": "2013-01-01", "type": "review"},
            {"title": "Post 2014", "createdAt": "2014-01-01"},
        ]

    @pytest.mark.asyncio
    async def test_filter_sort_skip_limit(self, doc_store, post_type, posts):
        for post in posts:
            await doc_store.insert(post_type, post)
        spec = QuerySpec(
            filter={"createdAt": {"$gte": datetime(2013, 1, 1, tzinfo=UTC)}},
            sort=[("createdAt", -1)],
        )
        assert [p["title"] for p in await doc_store.find(post_type, spec)] == [
            "Post 2014",
            "Post 2013",
        ]
        spec = QuerySpec(sort=[("title", 1)], skip=1, limit=1)
        assert [p["title"] for p in await doc_store.find(post_type, spec)] == ["Post 2013"]

    @pytest.mark.asyncio
    async def test_count_and_distinct(self, doc_store, post_type, posts):
        for post in posts:
            await doc_store.insert(post_type, post)
        assert await doc_store.count(post_type, {"type": "article"}) == 2
        assert sorted(await doc_store.distinct(post_type, "type", {})) == ["article", "review"]

    @pytest.mark.asyncio
    async def test_populate(self, doc_store, registry, user_type, post_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        post = await doc_store.insert(post_type, {"title": "X", "author": user["_id"]})
        await doc_store.insert(post_type, {"title": "Orphan", "author": "gone"})

        fetched = await doc_store.get(post_type, post["_id"], ["author"])
        assert fetched["author"]["name"] == "Dave"

        found = await doc_store.find(post_type, QuerySpec(populate=["author"], sort=[("title", 1)]))
        assert found[0]["author"] is None
        assert found[1]["author"]["_id"] == user["_id"]

    @pytest.mark.asyncio
    async def test_populate_array_drops_dangling(self, doc_store, user_type, post_type):
        post = await doc_store.insert(post_type, {"title": "X"})
        user = await doc_store.insert(
            user_type, {"name": "Dave", "email": "d@x.io", "posts": [post["_id"], "gone"]}
        )
        fetched = await doc_store.get(user_type, user["_id"], ["posts", "name", "unknown"])
        assert [p["title"] for p in fetched["posts"]] == ["X"]
        assert fetched["name"] == "Dave"

    @pytest.mark.asyncio
    async def test_near_orders_by_distance(self, doc_store, registry):
        place = registry.require("Place")
        for name, coordinates in [("LA", [-118.24, 34.05]), ("SF", [-122.42, 37.77])]:
            await doc_store.insert(place, {"name": name, "location": coordinates})
        near = {"$nearSphere": {"$geometry": {"type": "Point", "coordinates": [-122.27, 37.80]}}}
        found = await doc_store.find(place, QuerySpec(filter={"location": near}))
        assert [p["name"] for p in found] == ["SF", "LA"]

    @pytest.mark.asyncio
    async def test_mixed_compiled_and_matched_predicates(self, doc_store, post_type, posts):
        for post in posts:
            await doc_store.insert(post_type, post)
        filter = {"title": {"$regex": "201[34]"}, "type": "article"}
        found = await doc_store.find(post_type, QuerySpec(filter=filter, sort=[("title", -1)]))
        assert [p["title"] for p in found] == ["Post 2014"]
        assert await doc_store.count(post_type, filter) == 1

    @pytest.mark.asyncio
    async def test_in_and_identifier_filters(self, doc_store, post_type, posts):
        saved = [await doc_store.insert(post_type, post) for post in posts]
        spec = QuerySpec(filter={"title": {"$in": ["Post 2012", "Post 2014"]}}, sort=[("title", 1)])
        assert [p["title"] for p in await doc_store.find(post_type, spec)] == ["Post 2012", "Post 2014"]
        assert await doc_store.count(post_type, {"_id": saved[1]["_id"]}) == 1


# =============================================================================
# Concurrent writes
# =============================================================================


class TestConcurrentUpdates:
    @pytest.mark.asyncio
    async def test_concurrent_links_are_all_kept(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        ids = [f"p{i}" for i in range(10)]
        await asyncio.gather(*(
            doc_store.find_by_id_and_update("User", user["_id"], {"$addToSet": {"posts": id}})
            for id in ids
        ))
        stored = await doc_store.get(user_type, user["_id"])
        assert sorted(stored["posts"]) == ids

    @pytest.mark.asyncio
    async def test_update_alongside_links(self, doc_store, user_type):
        user = await doc_store.insert(user_type, {"name": "Dave", "email": "d@x.io"})
        ids = [f"p{i}" for i in range(5)]
        await asyncio.gather(
            doc_store.update(user_type, user["_id"], {"name": "David"}),
            *(
                doc_store.find_by_id_and_update("User", user["_id"], {"$addToSet": {"posts": id}})
                for id in ids
            ),
        )
        stored = await doc_store.get(user_type, user["_id"])
        assert stored["name"] == "David"
        assert sorted(stored["posts"]) == ids
        assert stored["__v"] == 1


# =============================================================================
# SQL compilation
# =============================================================================


class TestQueryCompiler:
    def test_scalar_predicates_compile(self, post_type):
        query = QueryCompiler("sqlite").compile(
            post_type,
            {"title": "X", "createdAt": {"$gte": datetime(2013, 1, 1, tzinfo=UTC)}},
            [("createdAt", -1)],
        )
        assert query.exact
        assert len(query.conditions) == 2
        assert "json_extract" in query.conditions[0]
        assert query.params["p3"] == "2013-01-01T00:00:00.000000+00:00"
        assert query.order[-1] == "id ASC"

    @pytest.mark.parametrize(
        "filter",
        [
            {"comments.message": "x"},
            {"title": {"$regex": "x"}},
            {"title": None},
            {"title": {"$ne": "x"}},
            {"createdAt": {"$gte": "2013"}},
            {"mood": "happy"},
            {"$or": [{"title": "x"}]},
        ],
    )
    def test_other_predicates_left_to_matcher(self, post_type, filter):
        query = QueryCompiler("sqlite").compile(post_type, filter)
        assert query.residual == filter
        assert query.conditions == []

    def test_sort_on_array_field_does_not_compile(self, post_type):
        assert QueryCompiler("sqlite").compile(post_type, {}, [("comments", 1)]).order is None

    def test_postgresql_expressions(self, post_type):
        query = QueryCompiler("postgresql").compile(post_type, {"title": {"$gt": "A"}}, [("title", 1)])
        assert 'COLLATE "C"' in query.conditions[0]
        assert "jsonb" in query.conditions[0]
        assert query.order[0].endswith("ASC NULLS FIRST")
