"""Tests for the handler synthesizer."""

import logging

import pytest

from conftest import envelope_schema, operation
from jsonapi_generator.errors import NamingCollisionError
from jsonapi_generator.orchestrator import Generator
from jsonapi_generator.handler_synthesizer import synthesize_handlers
from jsonapi_generator.type_resolver import resolve_types


def _synthesized(spec: dict, generator: Generator | None = None):
    context = (generator or Generator()).new_context(spec, "example.com/articles", "articles")
    resolve_types(context)
    synthesize_handlers(context)
    return context


def _handler_for(params: list, schemas: dict | None = None):
    spec = {
        "paths": {"/things": {"get": operation("getThing", envelope_schema(), parameters=params)}},
        "components": {"schemas": schemas or {}},
    }
    return _synthesized(spec).buffer.handlers["get_thing_handler"]


class TestArticles:
    def test_handler_order(self, articles_spec):
        context = _synthesized(articles_spec)
        assert list(context.buffer.handlers) == [
            "list_articles_handler",
            "create_article_handler",
            "get_article_handler",
            "update_article_handler",
            "delete_article_handler",
        ]

    def test_skip_is_logged(self, articles_spec, caplog):
        with caplog.at_level(logging.DEBUG, logger="jsonapi_generator.handler_synthesizer"):
            _synthesized(articles_spec)
        assert "Skipping GET /health" in caplog.text

    def test_query_parameters(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["list_articles_handler"]
        assert handler.statements == [
            "page_size = _coerce(request.query_params.get('page[size]'), 'int', \"query parameter 'page[size]'\")",
            "filter_tag = _coerce_all(request.query_params.getlist('filter[tag]') or None, 'str', "
            "\"query parameter 'filter[tag]'\")",
        ]
        assert handler.return_annotation == "ArticleCollection"

    def test_path_and_header_parameters(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["get_article_handler"]
        assert handler.statements == [
            "id = _coerce(request.path_params.get('id'), 'str', \"path parameter 'id'\")",
            "_require(id, \"path parameter 'id'\")",
            "x_request_id = _coerce(request.headers.get('X-Request-Id'), 'str', \"header parameter 'X-Request-Id'\")",
        ]
        assert handler.type_names == ("ArticleDocument",)

    def test_required_body(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["create_article_handler"]
        assert handler.body_statements == [
            "payload = await _read_json(request, True)",
            "body = NewArticle.from_dict(payload, 'body')",
        ]

    def test_optional_body(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["update_article_handler"]
        assert handler.operation_id == "updateArticle"
        assert handler.body_statements == [
            "payload = await _read_json(request, False)",
            "body = ArticleDocument.from_dict(payload, 'body') if payload is not None else None",
        ]

    def test_no_response_body(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["delete_article_handler"]
        assert handler.return_annotation == "None"

    def test_collaborator_imports(self, articles_spec):
        context = _synthesized(articles_spec)
        assert context.buffer.imports["collaborators"] == [
            "import opentelemetry.trace as opentracing",
            "import prometheus_client as metrics",
        ]

    def test_collaborator_modules_configurable(self, articles_spec, settings):
        context = _synthesized(articles_spec, Generator(settings))
        assert context.buffer.imports["collaborators"] == [
            "import fake_tracing as opentracing",
            "import fake_metrics as metrics",
        ]

    def test_doc(self, articles_spec):
        handler = _synthesized(articles_spec).buffer.handlers["list_articles_handler"]
        assert handler.doc == "List articles\nGET /articles (operation listArticles)"

    def test_doc_lists_tags(self):
        spec = {"paths": {"/things": {"get": operation("getThing", envelope_schema(), tags=["things", "admin"])}}}
        handler = _synthesized(spec).buffer.handlers["get_thing_handler"]
        assert handler.doc == "GET /things (operation getThing)\nTags: things, admin"


class TestParameters:
    def test_named_object_parameter(self):
        schemas = {"Filter": {"type": "object", "properties": {"q": {"type": "string"}}}}
        handler = _handler_for(
            [{"name": "filter", "in": "query", "required": True, "schema": {"$ref": "#/components/schemas/Filter"}}],
            schemas,
        )
        assert handler.statements == [
            "filter = _decode_param(request.query_params.get('filter'), \"query parameter 'filter'\", Filter.from_dict)",
            "_require(filter, \"query parameter 'filter'\")",
        ]

    def test_header_array(self):
        handler = _handler_for(
            [{"name": "X-Ids", "in": "header", "schema": {"type": "array", "items": {"type": "integer"}}}],
        )
        assert handler.statements == [
            "x_ids = _coerce_all(_split(request.headers.get('X-Ids')), 'int', \"header parameter 'X-Ids'\")",
        ]

    def test_enum_parameter(self):
        handler = _handler_for(
            [{"name": "sort", "in": "query", "schema": {"type": "string", "enum": ["asc", "desc"]}}],
        )
        assert handler.statements == [
            "sort = _coerce(request.query_params.get('sort'), 'str', \"query parameter 'sort'\", ('asc', 'desc'))",
        ]

    def test_reserved_local(self):
        handler = _handler_for([{"name": "body", "in": "query", "schema": {"type": "string"}}])
        assert handler.parameters[0].variable == "body_param"

    def test_keyword_parameter(self):
        handler = _handler_for([{"name": "from", "in": "query", "schema": {"type": "string"}}])
        assert handler.parameters[0].variable == "from_"

    def test_variable_collision(self):
        with pytest.raises(NamingCollisionError):
            _handler_for([
                {"name": "page-size", "in": "query", "schema": {"type": "integer"}},
                {"name": "page_size", "in": "header", "schema": {"type": "integer"}},
            ])


class TestCollisions:
    def test_same_operation_id(self):
        schemas = {"Doc": envelope_schema()}
        ref = {"$ref": "#/components/schemas/Doc"}
        spec = {
            "paths": {
                "/items/{id}": {"get": operation("getItem", ref)},
                "/things/{id}": {"get": operation("getItem", ref)},
            },
            "components": {"schemas": schemas},
        }
        with pytest.raises(NamingCollisionError) as exc_info:
            _synthesized(spec)
        assert exc_info.value.identifier == "get_item_handler"
        assert exc_info.value.first == "GET /items/{id}"

    def test_same_snake_case(self):
        schemas = {"Doc": envelope_schema()}
        ref = {"$ref": "#/components/schemas/Doc"}
        spec = {
            "paths": {
                "/a": {"get": operation("getItem", ref)},
                "/b": {"get": operation("get_item", ref)},
            },
            "components": {"schemas": schemas},
        }
        with pytest.raises(NamingCollisionError):
            _synthesized(spec)
