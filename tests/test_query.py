"""Tests for search-parameter translation."""

from datetime import UTC, datetime

import pytest

from routeforge.errors import ClientInputError, ConfigurationError
from routeforge.query import parse_sort, translate_query
from routeforge.schema import introspect


@pytest.fixture
def post(registry):
    return introspect(registry.require("Post"))


@pytest.fixture
def place(registry):
    return introspect(registry.require("Place"))


class TestFilters:
    def test_controls_stripped_from_filter(self, post):
        spec = translate_query({"title": "X", "__limit": "5", "__sort": "-title"}, post)
        assert spec.filter == {"title": "X"}
        assert spec.limit == 5
        assert spec.sort == [("title", -1)]

    def test_json_operator_expression_is_cast(self, post):
        spec = translate_query({"createdAt": '{"$gte": "2013-01-01"}'}, post)
        assert spec.filter == {"createdAt": {"$gte": datetime(2013, 1, 1, tzinfo=UTC)}}

    def test_malformed_json_is_client_error(self, post):
        with pytest.raises(ClientInputError, match="Invalid JSON"):
            translate_query({"createdAt": '{"$gte": }'}, post)

    def test_uncastable_value_is_client_error(self, post):
        with pytest.raises(ClientInputError):
            translate_query({"createdAt": "yesterday-ish"}, post)

    def test_repeated_keys_become_in(self, post):
        spec = translate_query({"type": ["article", "review"]}, post)
        assert spec.filter == {"type": {"$in": ["article", "review"]}}

    def test_unknown_field_passes_through(self, post):
        spec = translate_query({"extra": '{"$exists": true}'}, post)
        assert spec.filter == {"extra": {"$exists": True}}

    def test_dotted_path_into_sub_schema(self, post):
        spec = translate_query({"comments.message": "Hello there"}, post)
        assert spec.filter == {"comments.message": "Hello there"}

    def test_list_operator_requires_array(self, post):
        with pytest.raises(ClientInputError, match="requires an array"):
            translate_query({"type": '{"$in": "article"}'}, post)


class TestControls:
    def test_count_bypasses_paging(self, post):
        spec = translate_query({"__count": "true", "__limit": "5", "__sort": "title"}, post)
        assert spec.count
        assert spec.limit is None
        assert spec.sort == []

    def test_count_presence_is_enough(self, post):
        assert translate_query({"__count": ""}, post).count

    def test_count_false(self, post):
        assert not translate_query({"__count": "false"}, post).count

    def test_negative_skip_rejected(self, post):
        with pytest.raises(ClientInputError, match="__skip"):
            translate_query({"__skip": "-1"}, post)

    def test_non_numeric_limit_rejected(self, post):
        with pytest.raises(ClientInputError, match="__limit"):
            translate_query({"__limit": "ten"}, post)

    def test_populate_and_distinct(self, post):
        spec = translate_query({"__populate": "author, comments", "__distinct": "type"}, post)
        assert spec.populate == ["author", "comments"]
        assert spec.distinct == "type"

    def test_sort_formats(self):
        assert parse_sort("-createdAt title") == [("createdAt", -1), ("title", 1)]
        assert parse_sort("a,-b") == [("a", 1), ("b", -1)]
        assert parse_sort('{"a": -1, "b": "asc"}') == [("a", -1), ("b", 1)]

    def test_invalid_sort_direction(self):
        with pytest.raises(ClientInputError):
            parse_sort('{"a": 2}')


class TestNear:
    def test_two_components(self, place):
        spec = translate_query({"__near": "-122.4,37.7"}, place)
        assert spec.filter == {
            "location": {
                "$nearSphere": {"$geometry": {"type": "Point", "coordinates": [-122.4, 37.7]}}
            }
        }

    def test_third_component_is_max_distance(self, place):
        spec = translate_query({"__near": "-122.4,37.7,500"}, place)
        assert spec.filter["location"]["$nearSphere"]["$maxDistance"] == 500
        assert spec.near.max_distance == 500

    def test_without_geo_index_is_configuration_error(self, post):
        with pytest.raises(ConfigurationError) as exc_info:
            translate_query({"__near": "1,2"}, post)
        assert exc_info.value.error == "Geospatial Index Not Found"

    @pytest.mark.parametrize(
        "value", ["1", "1,2,3,4", "a,b", "nan,nan,10", "inf,0", "1,2,-inf", "1,2,nan"]
    )
    def test_bad_components(self, place, value):
        with pytest.raises(ClientInputError):
            translate_query({"__near": value}, place)

    def test_near_applies_with_count(self, place):
        spec = translate_query({"__near": "1,2", "__count": "1"}, place)
        assert spec.count
        assert "$nearSphere" in spec.filter["location"]
