"""Shared fixtures for the generator tests.

Generated modules import their tracing and metrics collaborators by module
name. The `collaborators` fixture registers small in-memory stand-ins under
fake names so generated code can be executed without OpenTelemetry or
prometheus_client installed.
"""

from __future__ import annotations

import copy
import sys
import types
from typing import Any, Callable

import pytest

from jsonapi_generator.config import GeneratorSettings

FAKE_TRACING = "fake_tracing"
FAKE_METRICS = "fake_metrics"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def _ref(name: str) -> dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _json_api(schema: dict[str, Any]) -> dict[str, Any]:
    return {"application/vnd.api+json": {"schema": schema}}


_ARTICLES_SPEC: dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Articles API", "version": "1.2.0"},
    "paths": {
        "/articles": {
            "get": {
                "operationId": "listArticles",
                "summary": "List articles",
                "parameters": [
                    {"name": "page[size]", "in": "query", "schema": {"type": "integer"}},
                    {
                        "name": "filter[tag]",
                        "in": "query",
                        "schema": {"type": "array", "items": {"type": "string"}},
                    },
                ],
                "responses": {
                    "200": {"description": "ok", "content": _json_api(_ref("ArticleCollection"))},
                },
            },
            "post": {
                "operationId": "createArticle",
                "requestBody": {"required": True, "content": _json_api(_ref("NewArticle"))},
                "responses": {
                    "201": {"description": "created", "content": _json_api(_ref("ArticleDocument"))},
                },
            },
        },
        "/articles/{id}": {
            "parameters": [
                {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {
                "operationId": "getArticle",
                "parameters": [
                    {"name": "X-Request-Id", "in": "header", "schema": {"type": "string"}},
                ],
                "responses": {
                    "200": {"description": "ok", "content": _json_api(_ref("ArticleDocument"))},
                    "404": {"description": "missing"},
                },
            },
            "patch": {
                "requestBody": {"content": _json_api(_ref("ArticleDocument"))},
                "responses": {
                    "200": {"description": "ok", "content": _json_api(_ref("ArticleDocument"))},
                },
            },
            "delete": {
                "operationId": "deleteArticle",
                "responses": {"204": {"description": "deleted"}},
            },
        },
        "/health": {
            "get": {
                "operationId": "getHealth",
                "responses": {
                    "200": {
                        "description": "ok",
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {"status": {"type": "string"}},
                                },
                            },
                        },
                    },
                },
            },
        },
    },
    "components": {
        "schemas": {
            "ArticleAttributes": {
                "type": "object",
                "required": ["title"],
                "properties": {
                    "title": {"type": "string"},
                    "body": {"type": "string"},
                    "published": {"type": "string", "format": "date-time"},
                    "rating": {"type": "number"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
            },
            "Article": {
                "type": "object",
                "required": ["type", "attributes"],
                "properties": {
                    "id": {"type": "string"},
                    "type": {"type": "string", "enum": ["articles"]},
                    "attributes": _ref("ArticleAttributes"),
                },
            },
            "ArticleDocument": {
                "type": "object",
                "required": ["data"],
                "properties": {"data": _ref("Article")},
            },
            "ArticleCollection": {
                "type": "object",
                "required": ["data"],
                "properties": {"data": {"type": "array", "items": _ref("Article")}},
            },
            "NewArticle": {
                "type": "object",
                "required": ["data"],
                "properties": {
                    "data": {
                        "type": "object",
                        "required": ["type", "attributes"],
                        "properties": {
                            "type": {"type": "string", "enum": ["articles"]},
                            "attributes": _ref("ArticleAttributes"),
                        },
                    },
                },
            },
        },
    },
}


@pytest.fixture
def articles_spec() -> dict[str, Any]:
    """A small JSON:API document: five conformant operations, one plain JSON one."""
    return copy.deepcopy(_ARTICLES_SPEC)


def envelope_schema(attributes: dict[str, Any] | None = None) -> dict[str, Any]:
    """Inline JSON:API envelope with a single resource object."""
    return {
        "type": "object",
        "properties": {
            "data": {
                "type": "object",
                "properties": {
                    "type": {"type": "string"},
                    "id": {"type": "string"},
                    "attributes": attributes or {
                        "type": "object",
                        "properties": {"name": {"type": "string"}},
                    },
                },
            },
        },
    }


def operation(operation_id: str, schema: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """An operation answering 200 with the given JSON:API schema."""
    return {
        "operationId": operation_id,
        "responses": {"200": {"description": "ok", "content": _json_api(schema)}},
        **extra,
    }


# ---------------------------------------------------------------------------
# Collaborators and requests
# ---------------------------------------------------------------------------

class Recorder:
    """Collects what generated handlers report to tracing and metrics."""

    def __init__(self) -> None:
        self.tracers: list[str] = []
        self.started: list[str] = []
        self.ended: list[str] = []
        self.counters: list[tuple[str, str, tuple[str, ...]]] = []
        self.increments: list[dict[str, str]] = []


class _Span:
    def __init__(self, recorder: Recorder, name: str) -> None:
        self._recorder = recorder
        self.name = name

    def end(self) -> None:
        self._recorder.ended.append(self.name)


class _Tracer:
    def __init__(self, recorder: Recorder) -> None:
        self._recorder = recorder

    def start_span(self, name: str) -> _Span:
        self._recorder.started.append(name)
        return _Span(self._recorder, name)


class _Child:
    def __init__(self, recorder: Recorder, labels: dict[str, str]) -> None:
        self._recorder = recorder
        self._labels = labels

    def inc(self) -> None:
        self._recorder.increments.append(self._labels)


class _Counter:
    def __init__(self, recorder: Recorder, name: str, documentation: str, labelnames: list[str]) -> None:
        self._recorder = recorder
        recorder.counters.append((name, documentation, tuple(labelnames)))

    def labels(self, **labels: str) -> _Child:
        return _Child(self._recorder, labels)


@pytest.fixture
def collaborators(monkeypatch) -> Recorder:
    """Register fake tracing/metrics modules and return what they record."""
    recorder = Recorder()

    tracing = types.ModuleType(FAKE_TRACING)

    def get_tracer(name: str) -> _Tracer:
        recorder.tracers.append(name)
        return _Tracer(recorder)

    tracing.get_tracer = get_tracer
    metrics = types.ModuleType(FAKE_METRICS)
    metrics.Counter = lambda *args: _Counter(recorder, *args)

    monkeypatch.setitem(sys.modules, FAKE_TRACING, tracing)
    monkeypatch.setitem(sys.modules, FAKE_METRICS, metrics)
    return recorder


@pytest.fixture
def settings() -> GeneratorSettings:
    return GeneratorSettings(tracing_module=FAKE_TRACING, metrics_module=FAKE_METRICS)


@pytest.fixture
def load_generated(monkeypatch, collaborators) -> Callable[[str, str], types.ModuleType]:
    """Execute generated source as a module registered in sys.modules."""
    def _load(source: str, name: str = "generated_articles") -> types.ModuleType:
        module = types.ModuleType(name)
        # dataclasses looks the defining module up while processing annotations
        monkeypatch.setitem(sys.modules, name, module)
        exec(compile(source, f"<{name}>", "exec"), module.__dict__)
        return module
    return _load


class QueryParams:
    """Multi-valued query string mapping with Starlette's get/getlist."""

    def __init__(self, items: list[tuple[str, str]] | None = None) -> None:
        self._items = list(items or ())

    def get(self, key: str, default: Any = None) -> Any:
        for name, value in self._items:
            if name == key:
                return value
        return default

    def getlist(self, key: str) -> list[str]:
        return [value for name, value in self._items if name == key]


class FakeRequest:
    def __init__(
        self,
        path_params: dict[str, str] | None = None,
        query: list[tuple[str, str]] | None = None,
        headers: dict[str, str] | None = None,
        body: bytes = b"",
    ) -> None:
        self.path_params = path_params or {}
        self.query_params = QueryParams(query)
        self.headers = headers or {}
        self._body = body

    async def body(self) -> bytes:
        return self._body
