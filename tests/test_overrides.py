"""
Tests for the overrides service - registration, query predicates and merging.
"""
import json

import pytest
from fastapi.testclient import TestClient
from pytest_httpx import HTTPXMock

from mock_api.config import RouteOverride
from mock_api.errors import ConfigurationError
from mock_api.services.overrides import (
    OverrideDispatcher,
    build_override_handler,
    register_overrides,
)
from tests.conftest import JSONP_CALLBACK, PROD_ROOT_URL, make_options, write_fixture


class TestRegisterOverrides:
    """Tests for register_overrides function."""

    def test_empty_overrides(self, store):
        dispatcher = register_overrides({}, store)

        assert isinstance(dispatcher, OverrideDispatcher)
        assert len(dispatcher) == 0

    def test_registers_each_entry(self, store):
        dispatcher = register_overrides({
            "get": [{"route": "/a", "response": {"a": 1}}, {"route": "/b", "response": {"b": 2}}],
            "post": [{"route": "/c", "response": "ok", "headers": {"Content-Type": "text/plain"}}],
        }, store)

        assert len(dispatcher) == 3

    def test_invalid_method_raises(self, store):
        with pytest.raises(ConfigurationError, match="invalid HTTP method: 'fetch'"):
            register_overrides({"fetch": [{"route": "/a", "response": {}}]}, store)

    def test_uppercase_method_is_invalid(self, store):
        with pytest.raises(ConfigurationError, match="invalid HTTP method"):
            register_overrides({"GET": [{"route": "/a", "response": {}}]}, store)

    def test_missing_route_raises(self, store):
        with pytest.raises(ConfigurationError):
            register_overrides({"get": [{"response": {}}]}, store)

    def test_empty_route_raises(self, store):
        with pytest.raises(ConfigurationError, match="without a specified route"):
            register_overrides({"get": [{"route": "", "response": {}}]}, store)

    def test_route_must_be_absolute(self, store):
        with pytest.raises(ConfigurationError, match="must start with '/'"):
            register_overrides({"get": [{"route": "relative", "response": {}}]}, store)

    def test_missing_response_and_fixture_raises(self, store):
        """Without a response the backing fixture must exist at registration."""
        with pytest.raises(ConfigurationError, match="no response or matching fixture"):
            register_overrides({"get": [{"route": "/nothing_here"}]}, store)

    def test_missing_response_loads_fixture(self, store, fixtures_dir):
        write_fixture(fixtures_dir, "api:backed.json", {"from": "fixture"})

        dispatcher = register_overrides({"get": [{"route": "/api/backed"}]}, store)

        assert json.loads(dispatcher.handlers[0].payload) == {"from": "fixture"}

    def test_merge_params_requires_json_payload(self, store, fixtures_dir):
        write_fixture(fixtures_dir, "not_json.json", "<html></html>")

        with pytest.raises(ConfigurationError, match="mergeParams"):
            register_overrides(
                {"post": [{"route": "/not_json", "mergeParams": lambda response, body: response}]},
                store
            )


class TestBuildOverrideHandler:
    """Tests for build_override_handler function."""

    def test_defaults(self, store):
        handler = build_override_handler("get", {"route": "/r", "response": {"a": 1}}, store)

        assert handler.override.status == 200
        assert handler.override.headers == {"Content-Type": "application/json"}
        assert handler.response_is_json is True
        assert handler.payload == '{"a": 1}'

    def test_text_response_kept_verbatim(self, store):
        handler = build_override_handler(
            "get",
            {"route": "/r", "response": "plain", "headers": {"Content-Type": "text/plain"}},
            store
        )

        assert handler.response_is_json is False
        assert handler.payload == "plain"

    def test_headers_replace_defaults(self, store):
        """Configured headers replace the default mapping rather than extending it."""
        handler = build_override_handler(
            "get",
            {"route": "/r", "response": "x", "headers": {"X-Mock": "1"}},
            store
        )

        assert handler.override.headers == {"X-Mock": "1"}
        assert handler.response_is_json is False

    def test_merge_params_import_string(self, store):
        handler = build_override_handler(
            "post",
            {"route": "/r", "response": {}, "mergeParams": "tests.conftest:merge_into_response"},
            store
        )

        assert handler.override.merge_params({"a": 1}, {"b": 2}) == {"a": 1, "b": 2}

    def test_accepts_route_override_instance(self, store):
        handler = build_override_handler("put", RouteOverride(route="/r", response={"ok": True}), store)

        assert handler.method == "put"

    def test_accepts_query(self, store):
        handler = build_override_handler(
            "get",
            {"route": "/r", "response": {}, "withQueryParams": {"a": "1", "b": "x"}},
            store
        )

        assert handler.accepts_query({"a": "1", "b": "x", "extra": "y"}) is True
        assert handler.accepts_query({"a": "1"}) is False
        assert handler.accepts_query({"a": "2", "b": "x"}) is False

    def test_no_predicate_accepts_everything(self, store):
        handler = build_override_handler("get", {"route": "/r", "response": {}}, store)

        assert handler.accepts_query({}) is True
        assert handler.accepts_query({"anything": "goes"}) is True


class TestOverrideRouting:
    """End-to-end override behavior through the application."""

    def test_fixed_response_status_and_headers(self, app_factory, fixtures_dir, httpx_mock: HTTPXMock):
        """The override wins and production is never contacted."""
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "get": [{
                "route": "/overridden_route",
                "response": "overridden response",
                "status": 503,
                "headers": {"Content-Type": "text/plain"},
            }]
        })))

        response = client.get("/overridden_route")

        assert response.status_code == 503
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "overridden response"
        assert httpx_mock.get_requests() == []

    def test_override_headers_win_over_jsonp(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "get": [{"route": "/overridden_route", "response": "x", "headers": {"Content-Type": "text/plain"}}]
        })))

        response = client.get(f"/overridden_route?{JSONP_CALLBACK}")

        assert response.headers["content-type"].startswith("text/plain")

    def test_json_response_defaults(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "get": [{"route": "/overridden_route", "response": {"status": "overridden response"}}]
        })))

        response = client.get("/overridden_route")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"status": "overridden response"}

    def test_fixture_backed_override(self, app_factory, fixtures_dir):
        write_fixture(fixtures_dir, "backed.json", {"from": "fixture"})
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "get": [{"route": "/backed", "status": 201}]
        })))

        response = client.get("/backed")

        assert response.status_code == 201
        assert response.json() == {"from": "fixture"}

    def test_merge_params_with_json_body(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{
                "route": "/overridden_route",
                "response": {"status": "overridden response"},
                "mergeParams": lambda response, params: {**response, **params},
            }]
        })))

        response = client.post("/overridden_route", json={"merged": "merged body"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"status": "overridden response", "merged": "merged body"}

    def test_merge_params_with_form_body(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{"route": "/form", "response": {"a": "1"}, "mergeParams": "tests.conftest:merge_into_response"}]
        })))

        response = client.post("/form", data={"b": "2"})

        assert response.json() == {"a": "1", "b": "2"}

    def test_merge_params_with_empty_body(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{"route": "/empty", "response": {"a": 1}, "mergeParams": lambda response, params: {**response, "body": params}}]
        })))

        response = client.post("/empty")

        assert response.json() == {"a": 1, "body": {}}

    def test_malformed_json_body_returns_400(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{"route": "/merge", "response": {}, "mergeParams": lambda response, params: response}]
        })))

        response = client.post("/merge", content=b"{ nope", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    def test_failing_merge_params_returns_500(self, app_factory, fixtures_dir):
        def explode(response, params):
            raise KeyError("missing")

        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{"route": "/merge", "response": {}, "mergeParams": explode}]
        })))

        response = client.post("/merge", json={})

        assert response.status_code == 500
        assert response.content == b""

    def test_merge_params_ignored_for_text_response(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{
                "route": "/text",
                "response": "fixed",
                "headers": {"Content-Type": "text/plain"},
                "mergeParams": lambda response, params: "merged",
            }]
        })))

        response = client.post("/text", json={"a": 1})

        assert response.text == "fixed"

    def test_method_must_match(self, app_factory, fixtures_dir, httpx_mock: HTTPXMock):
        """A POST override doesn't answer GET; the GET falls through to fixtures."""
        write_fixture(fixtures_dir, "only_post.json", {"from": "fixture"})
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "post": [{"route": "/only_post", "response": {"from": "override"}}]
        })))

        assert client.get("/only_post").json() == {"from": "fixture"}
        assert client.post("/only_post").json() == {"from": "override"}

    def test_all_matches_every_method(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "all": [{"route": "/anything", "response": {"any": True}}]
        })))

        for method in ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"):
            assert client.request(method, "/anything").json() == {"any": True}
        assert client.head("/anything").status_code == 200

    def test_parametrized_route(self, app_factory, fixtures_dir):
        client = TestClient(app_factory(make_options(fixtures_dir, overrides={
            "get": [{"route": "/users/{user_id}", "response": {"user": "any"}}]
        })))

        assert client.get("/users/42").json() == {"user": "any"}
        assert client.get("/users/ada").json() == {"user": "any"}


class TestQueryPredicateFallthrough:
    """Overrides with withQueryParams decline requests that don't match."""

    @pytest.fixture
    def predicate_options(self, fixtures_dir):
        return make_options(fixtures_dir, overrides={
            "get": [
                {"route": "/r", "response": {"override": "a1"}, "status": 202, "withQueryParams": {"a": "1"}},
                {"route": "/r", "response": {"override": "a3"}, "withQueryParams": {"a": "3"}},
            ]
        })

    def test_matching_query_served_by_override(self, app_factory, predicate_options):
        client = TestClient(app_factory(predicate_options))

        response = client.get("/r?a=1")

        assert response.status_code == 202
        assert response.json() == {"override": "a1"}

    def test_second_override_gets_its_turn(self, app_factory, predicate_options):
        client = TestClient(app_factory(predicate_options))

        assert client.get("/r?a=3").json() == {"override": "a3"}

    def test_mismatch_falls_through_to_fixture(self, app_factory, predicate_options, fixtures_dir):
        write_fixture(fixtures_dir, "r?a=2.json", {"from": "fixture"})
        client = TestClient(app_factory(predicate_options))

        response = client.get("/r?a=2")

        assert response.status_code == 200
        assert response.json() == {"from": "fixture"}

    def test_mismatch_falls_through_to_production(self, app_factory, predicate_options, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=f"{PROD_ROOT_URL}/r?a=2", json={"from": "production"})
        client = TestClient(app_factory(predicate_options))

        response = client.get("/r?a=2")

        assert response.status_code == 200
        assert response.json() == {"from": "production"}
        assert len(httpx_mock.get_requests()) == 1
