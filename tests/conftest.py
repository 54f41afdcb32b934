"""Shared fixtures: a blog schema (users, posts with comments), a geo-indexed
place type and an excluded type."""

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routeforge.api.builder import RestApi
from routeforge.config import ApiOptions
from routeforge.errors import AbortError, ValidationError
from routeforge.hooks import HookRegistry
from routeforge.persistence import MemoryStore
from routeforge.schema import (
    FieldDefinition,
    FieldValidator,
    RecordType,
    SchemaRegistry,
    ValidationRules,
)

EXAMPLE_DIR = Path(__file__).parent.parent / "example"


def required(name: str, **kwargs) -> FieldDefinition:
    return FieldDefinition(name, validation=ValidationRules(required=True), **kwargs)


def build_blog_registry() -> SchemaRegistry:
    user = RecordType(
        "User",
        fields=[
            required("name"),
            required("email"),
            FieldDefinition("posts", ref="Post", array=True),
        ],
    )

    comment = RecordType("Comment", fields=[required("message")])

    @comment.before_save
    def ensure_long_comment(doc):
        if len(doc.get("message") or "") <= 5:
            raise ValidationError(
                "Comments must be longer than 5 characters.", name="ValidateLength"
            )

    post = RecordType(
        "Post",
        fields=[
            required("title"),
            FieldDefinition("author", ref="User", index=True),
            FieldDefinition("comments", schema=comment, array=True),
            FieldDefinition(
                "type",
                default="article",
                validators=[
                    FieldValidator(lambda v: v in ("article", "review"), "InvalidType")
                ],
            ),
            FieldDefinition("createdAt", type="date", default=lambda: datetime.now(UTC)),
        ],
    )

    @post.method("params")
    def params(record, params, body):
        if not params.get("foo"):
            raise AbortError({"name": "NoFoo", "message": "Foo not found."})
        body["title"] = "Custom"
        body["foo"] = params["foo"]
        return body

    place = RecordType(
        "Place",
        fields=[required("name"), FieldDefinition("location", type="geopoint")],
        indexes=[{"location": "2dsphere"}],
    )

    excluded = RecordType("Excluded", fields=[required("name")])

    return SchemaRegistry([user, post, place, excluded])


@pytest.fixture(autouse=True)
def clear_hook_registry():
    """Clear hook registry before and after each test."""
    HookRegistry.clear()
    yield
    HookRegistry.clear()


@pytest.fixture
def registry():
    return build_blog_registry()


@pytest.fixture
def store(registry):
    return MemoryStore(registry)


@pytest.fixture
def options():
    return ApiOptions(path="/api", pluralize=True, relate=True, exclude=["Excluded"])


@pytest.fixture
def api(registry, store, options):
    return RestApi(registry, store, options)


@pytest.fixture
def app(api):
    app = FastAPI()
    api.mount(app)
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def example_plugins(monkeypatch):
    """Make the example plugin module importable and import it."""
    monkeypatch.syspath_prepend(str(EXAMPLE_DIR))
    if "blog" in sys.modules:
        import importlib

        importlib.reload(sys.modules["blog"])
    else:
        import blog  # noqa: F401
    return EXAMPLE_DIR / "schemas"
