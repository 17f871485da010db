"""In-memory model of an OpenAPI document.

The raw mapping produced by the loader is converted once into frozen
dataclasses. Schema nodes form a closed set of variants:

- PrimitiveNode: string/integer/number/boolean (date formats included)
- ObjectNode:    ordered fields; no fields means a free-form object
- ArrayNode:     element node
- RefNode:       name of a component schema
- AnyNode:       untyped or multi-typed; any JSON value

Handled on the way in:
- $ref resolution for parameters, request bodies, responses and path items
- allOf merging (properties and required lists are combined)
- oneOf/anyOf collapse to their single non-null member, or AnyNode
- `nullable: true`, a "null" type entry or a null oneOf member set `nullable`
- path-level parameters merged into each operation
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Final, Union

from .config import JSON_MEDIA_TYPES
from .errors import SchemaLoadError
from .loader import get_paths, get_schemas, resolve_ref
from .naming import build_operation_id

logger = logging.getLogger(__name__)

HTTP_METHODS: Final = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_SCHEMA_REF_PREFIX: Final = "#/components/schemas/"


@dataclass(frozen=True)
class PrimitiveNode:
    kind: str
    format: str | None = None
    enum: tuple[Any, ...] = ()
    description: str | None = None
    nullable: bool = False


@dataclass(frozen=True)
class ObjectNode:
    fields: tuple[tuple[str, SchemaNode], ...] = ()
    required: frozenset[str] = frozenset()
    description: str | None = None
    nullable: bool = False

    @property
    def free_form(self) -> bool:
        return not self.fields

    def field(self, name: str) -> SchemaNode | None:
        for field_name, node in self.fields:
            if field_name == name:
                return node
        return None

    def has_fields(self, *names: str) -> bool:
        present = {field_name for field_name, _ in self.fields}
        return all(name in present for name in names)


@dataclass(frozen=True)
class ArrayNode:
    items: SchemaNode
    description: str | None = None
    nullable: bool = False


@dataclass(frozen=True)
class RefNode:
    name: str
    ref: str
    nullable: bool = False


@dataclass(frozen=True)
class AnyNode:
    """Untyped or multi-typed schema; any JSON value is accepted."""

    description: str | None = None
    nullable: bool = False


SchemaNode = Union[PrimitiveNode, ObjectNode, ArrayNode, RefNode, AnyNode]


@dataclass(frozen=True)
class Parameter:
    """An operation parameter (path, query or header)."""

    name: str
    location: str
    schema: SchemaNode
    required: bool = False
    description: str | None = None


@dataclass(frozen=True)
class Body:
    """A request or response body for one media type."""

    media_type: str
    schema: SchemaNode | None
    required: bool = False
    status: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Operation:
    """One HTTP method on a path."""

    operation_id: str
    method: str
    path: str
    parameters: tuple[Parameter, ...] = ()
    request_body: Body | None = None
    responses: tuple[Body, ...] = ()
    summary: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = ()
    deprecated: bool = False


@dataclass(frozen=True)
class PathItem:
    path: str
    operations: tuple[tuple[str, Operation], ...] = ()


@dataclass(frozen=True)
class SchemaDocument:
    """A parsed API description. Immutable once built."""

    schemas: Mapping[str, SchemaNode] = field(default_factory=lambda: MappingProxyType({}))
    paths: tuple[PathItem, ...] = ()
    title: str = ""
    version: str = ""

    def schema(self, name: str) -> SchemaNode | None:
        return self.schemas.get(name)

    def operations(self) -> Iterator[Operation]:
        """Yield every operation in document order."""
        for path_item in self.paths:
            for _, operation in path_item.operations:
                yield operation


def _description(raw: dict[str, Any]) -> str | None:
    text = raw.get("description") or raw.get("title")
    return str(text).strip() if text else None


def _single_type(raw_type: Any) -> str | None:
    """Collapse OpenAPI 3.1 type lists like ["string", "null"]."""
    if isinstance(raw_type, list):
        non_null = [t for t in raw_type if t != "null"]
        return str(non_null[0]) if len(non_null) == 1 else None
    return str(raw_type) if raw_type is not None else None


def _is_null(raw: Any) -> bool:
    return isinstance(raw, dict) and raw.get("type") in ("null", ["null"])


def _is_nullable(raw: dict[str, Any]) -> bool:
    """OpenAPI 3.0 `nullable`, a 3.1 type list with "null", or a null oneOf/anyOf member."""
    if raw.get("nullable") is True:
        return True
    raw_type = raw.get("type")
    if isinstance(raw_type, list) and "null" in raw_type:
        return True
    return any(_is_null(m) for key in ("oneOf", "anyOf") for m in raw.get(key) or ())


class DocumentParser:
    """Converts a raw OpenAPI mapping into a SchemaDocument."""

    def __init__(self, spec: dict[str, Any]) -> None:
        self.spec = spec

    def parse(self) -> SchemaDocument:
        raw_schemas = get_schemas(self.spec)
        schemas = {
            name: self.parse_schema(raw, where=f"{_SCHEMA_REF_PREFIX}{name}")
            for name, raw in raw_schemas.items()
        }

        paths = [
            self._parse_path_item(path, raw_item)
            for path, raw_item in get_paths(self.spec).items()
        ]

        info = self.spec.get("info") or {}
        if not isinstance(info, dict):
            info = {}
        document = SchemaDocument(
            schemas=MappingProxyType(schemas),
            paths=tuple(paths),
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
        )
        logger.debug(
            "Parsed document %r: %d schemas, %d paths",
            document.title, len(schemas), len(paths),
        )
        return document

    def _deref(self, raw: Any, where: str) -> dict[str, Any]:
        if not isinstance(raw, dict):
            raise SchemaLoadError(f"Expected an object at {where}")
        seen: set[str] = set()
        while "$ref" in raw:
            ref = raw["$ref"]
            if ref in seen:
                raise SchemaLoadError(f"Circular reference {ref!r} at {where}")
            seen.add(ref)
            raw = resolve_ref(self.spec, ref)
        return raw

    # Schemas

    def parse_schema(self, raw: Any, where: str) -> SchemaNode:
        """Convert one raw schema object into a SchemaNode."""
        if not isinstance(raw, dict):
            raise SchemaLoadError(f"Schema at {where} must be an object")
        node = self._parse_node(raw, where)
        if _is_nullable(raw) and not node.nullable:
            node = replace(node, nullable=True)
        return node

    def _parse_node(self, raw: dict[str, Any], where: str) -> SchemaNode:
        if "$ref" in raw:
            ref = raw["$ref"]
            name = ref[len(_SCHEMA_REF_PREFIX):] if ref.startswith(_SCHEMA_REF_PREFIX) else ""
            if name and "/" not in name:
                return RefNode(name=name.replace("~1", "/").replace("~0", "~"), ref=ref)
            return self.parse_schema(resolve_ref(self.spec, ref), where=ref)

        if "allOf" in raw:
            return self._parse_all_of(raw, where)

        for key in ("oneOf", "anyOf"):
            if key in raw:
                members = [m for m in raw[key] if not _is_null(m)]
                if len(members) == 1:
                    return self.parse_schema(members[0], where=f"{where}/{key}")
                return AnyNode(description=_description(raw))

        schema_type = _single_type(raw.get("type"))
        if schema_type == "array":
            items = raw.get("items") or {}
            return ArrayNode(
                items=self.parse_schema(items, where=f"{where}/items"),
                description=_description(raw),
            )

        if schema_type == "object" or "properties" in raw or "additionalProperties" in raw:
            return self._parse_object(raw, where)

        if schema_type is None:
            if "enum" not in raw:
                # {} or a multi-type list such as ["string", "integer"]
                return AnyNode(description=_description(raw))
            # untyped enum
            schema_type = "string" if all(isinstance(v, str) for v in raw["enum"]) else "number"

        return PrimitiveNode(
            kind=schema_type,
            format=raw.get("format"),
            enum=tuple(raw.get("enum") or ()),
            description=_description(raw),
        )

    def _parse_object(self, raw: dict[str, Any], where: str) -> ObjectNode:
        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise SchemaLoadError(f"'properties' at {where} must be an object")
        fields = tuple(
            (name, self.parse_schema(prop, where=f"{where}/properties/{name}"))
            for name, prop in properties.items()
        )
        return ObjectNode(
            fields=fields,
            required=frozenset(raw.get("required") or ()),
            description=_description(raw),
        )

    def _parse_all_of(self, raw: dict[str, Any], where: str) -> SchemaNode:
        members = raw["allOf"]
        if len(members) == 1 and "$ref" in members[0] and "properties" not in raw:
            return self.parse_schema(members[0], where=f"{where}/allOf/0")

        merged_props: dict[str, Any] = {}
        merged_required: list[str] = []
        self._collect_all_of(raw, where, merged_props, merged_required)
        merged = {
            "type": "object",
            "properties": merged_props,
            "required": merged_required,
            "description": raw.get("description"),
        }
        return self._parse_object(merged, where)

    def _collect_all_of(
        self,
        raw: dict[str, Any],
        where: str,
        props: dict[str, Any],
        required: list[str],
    ) -> None:
        # members first, so the composing schema's own properties win
        for index, sub in enumerate(raw.get("allOf") or ()):
            sub_where = f"{where}/allOf/{index}"
            self._collect_all_of(self._deref(sub, sub_where), sub_where, props, required)
        props.update(raw.get("properties") or {})
        required.extend(raw.get("required") or ())

    # Paths

    def _parse_path_item(self, path: str, raw_item: Any) -> PathItem:
        where = f"#/paths/{path}"
        item = self._deref(raw_item, where)
        shared = [self._parse_parameter(p, f"{where}/parameters") for p in item.get("parameters") or ()]

        operations = []
        for method, raw_op in item.items():
            if method.lower() not in HTTP_METHODS:
                continue
            operation = self._parse_operation(path, method.lower(), raw_op, shared)
            operations.append((method.lower(), operation))
        return PathItem(path=path, operations=tuple(operations))

    def _parse_operation(
        self,
        path: str,
        method: str,
        raw_op: Any,
        shared: list[Parameter],
    ) -> Operation:
        where = f"#/paths/{path}/{method}"
        if not isinstance(raw_op, dict):
            raise SchemaLoadError(f"Operation at {where} must be an object")

        own = [self._parse_parameter(p, f"{where}/parameters") for p in raw_op.get("parameters") or ()]
        own_keys = {(p.name, p.location) for p in own}
        parameters = [p for p in shared if (p.name, p.location) not in own_keys] + own

        operation_id = raw_op.get("operationId")
        return Operation(
            operation_id=operation_id or build_operation_id(method, path),
            method=method,
            path=path,
            parameters=tuple(parameters),
            request_body=self._parse_request_body(raw_op.get("requestBody"), where),
            responses=self._parse_responses(raw_op.get("responses") or {}, where),
            summary=raw_op.get("summary"),
            description=raw_op.get("description"),
            tags=tuple(raw_op.get("tags") or ()),
            deprecated=bool(raw_op.get("deprecated", False)),
        )

    def _parse_parameter(self, raw: Any, where: str) -> Parameter:
        param = self._deref(raw, where)
        name = param.get("name")
        if not name:
            raise SchemaLoadError(f"Parameter without a name at {where}")

        location = param.get("in", "query")
        if "schema" in param:
            schema = self.parse_schema(param["schema"], where=f"{where}/{name}")
        elif param.get("content"):
            _, media = next(iter(param["content"].items()))
            schema = self.parse_schema(media.get("schema") or {}, where=f"{where}/{name}")
        else:
            schema = PrimitiveNode(kind="string")

        return Parameter(
            name=name,
            location=location,
            schema=schema,
            required=location == "path" or bool(param.get("required", False)),
            description=_description(param),
        )

    def _select_content(self, content: dict[str, Any]) -> tuple[str, dict[str, Any]] | None:
        """Pick the JSON:API media type, then plain JSON, then whatever comes first."""
        by_type = {media_type.split(";")[0].strip().lower(): media for media_type, media in content.items()}
        for media_type in JSON_MEDIA_TYPES:
            if media_type in by_type:
                return media_type, by_type[media_type] or {}
        for media_type, media in by_type.items():
            return media_type, media or {}
        return None

    def _parse_body(self, raw: dict[str, Any], where: str, status: str | None = None) -> Body | None:
        selected = self._select_content(raw.get("content") or {})
        if selected is None:
            return None
        media_type, media = selected
        schema = media.get("schema")
        return Body(
            media_type=media_type,
            schema=self.parse_schema(schema, where=f"{where}/schema") if schema is not None else None,
            required=bool(raw.get("required", False)),
            status=status,
            description=_description(raw),
        )

    def _parse_request_body(self, raw: Any, where: str) -> Body | None:
        if raw is None:
            return None
        body = self._deref(raw, f"{where}/requestBody")
        return self._parse_body(body, f"{where}/requestBody")

    def _parse_responses(self, raw: Any, where: str) -> tuple[Body, ...]:
        if not isinstance(raw, dict):
            raise SchemaLoadError(f"'responses' at {where} must be an object")
        bodies = []
        for status, raw_response in raw.items():
            status = str(status)
            if not status.startswith("2"):
                continue
            response = self._deref(raw_response, f"{where}/responses/{status}")
            body = self._parse_body(response, f"{where}/responses/{status}", status=status)
            if body is not None:
                bodies.append(body)
        return tuple(bodies)


def parse_document(spec: dict[str, Any]) -> SchemaDocument:
    """Build a SchemaDocument from a raw OpenAPI mapping."""
    if not isinstance(spec, dict):
        raise SchemaLoadError("An OpenAPI document must be an object")
    return DocumentParser(spec).parse()
