"""Decide whether an operation follows the JSON:API conventions.

check_operation() returns one of three verdicts:
  - CONFORMANT: types and a handler are generated
  - SKIP:       the operation is left out of the output, silently
  - ERROR:      the document is broken in a way that would produce
                non-compiling code (dangling $ref, unsupported primitive)

A JSON:API envelope is an object whose "data" member is a resource object
(or an array of them) carrying at least "type" and "attributes". "id" and
"relationships" are optional: create requests have no id yet and many
resources have no relationships.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from .document import (
    AnyNode,
    ArrayNode,
    Body,
    ObjectNode,
    Operation,
    Parameter,
    PrimitiveNode,
    RefNode,
    SchemaDocument,
    SchemaNode,
)
from .errors import GeneratorError, UnresolvedReferenceError, UnsupportedPrimitiveError

SCALAR_KINDS: Final = frozenset({"string", "integer", "number", "boolean"})
PARAMETER_LOCATIONS: Final = frozenset({"path", "query", "header"})
RESOURCE_MEMBERS: Final = ("type", "attributes")


class Verdict(enum.Enum):
    CONFORMANT = "conformant"
    SKIP = "skip"
    ERROR = "error"


@dataclass(frozen=True)
class Conformance:
    verdict: Verdict
    reason: str = ""
    error: GeneratorError | None = None

    @classmethod
    def ok(cls) -> Conformance:
        return cls(Verdict.CONFORMANT)

    @classmethod
    def skip(cls, reason: str) -> Conformance:
        return cls(Verdict.SKIP, reason=reason)

    @classmethod
    def fail(cls, error: GeneratorError) -> Conformance:
        return cls(Verdict.ERROR, reason=str(error), error=error)

    @property
    def conformant(self) -> bool:
        return self.verdict is Verdict.CONFORMANT

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def deref(document: SchemaDocument, node: SchemaNode, where: str = "") -> SchemaNode:
    """Follow references until a non-reference node is reached."""
    seen: set[str] = set()
    while isinstance(node, RefNode):
        if node.name in seen:
            # a chain of pure aliases that never reaches a definition
            raise UnresolvedReferenceError(node.ref, where)
        seen.add(node.name)
        target = document.schema(node.name)
        if target is None:
            raise UnresolvedReferenceError(node.ref, where)
        node = target
    return node


def check_primitive(node: PrimitiveNode, where: str = "") -> None:
    if node.kind not in SCALAR_KINDS:
        raise UnsupportedPrimitiveError(node.kind, where)


def iter_reachable(document: SchemaDocument, roots: Iterable[SchemaNode]) -> Iterable[SchemaNode]:
    """Yield every node reachable from roots, visiting each named schema once."""
    visited: set[str] = set()
    stack = list(roots)
    while stack:
        node = stack.pop()
        yield node
        match node:
            case RefNode(name=name):
                if name in visited:
                    continue
                visited.add(name)
                target = document.schema(name)
                if target is None:
                    raise UnresolvedReferenceError(node.ref)
                stack.append(target)
            case ObjectNode(fields=fields):
                stack.extend(child for _, child in reversed(fields))
            case ArrayNode(items=items):
                stack.append(items)
            case PrimitiveNode() | AnyNode():
                pass


def check_envelope(document: SchemaDocument, node: SchemaNode, where: str = "") -> Conformance:
    """Check that a body schema is a JSON:API resource envelope."""
    envelope = deref(document, node, where)
    if not isinstance(envelope, ObjectNode) or envelope.field("data") is None:
        return Conformance.skip(f"{where}: no top-level 'data' member")

    data = deref(document, envelope.field("data"), f"{where}/data")
    if isinstance(data, ArrayNode):
        data = deref(document, data.items, f"{where}/data/items")

    if not isinstance(data, ObjectNode):
        return Conformance.skip(f"{where}: 'data' is not a resource object")
    if not data.has_fields(*RESOURCE_MEMBERS):
        return Conformance.skip(f"{where}: resource object lacks 'type' or 'attributes'")
    return Conformance.ok()


def check_parameter(document: SchemaDocument, param: Parameter, where: str = "") -> Conformance:
    if param.location not in PARAMETER_LOCATIONS:
        return Conformance.skip(f"{where}: {param.location} parameter {param.name!r}")

    match param.schema:
        case PrimitiveNode() | RefNode():
            return Conformance.ok()
        case ArrayNode(items=items) if isinstance(deref(document, items, where), PrimitiveNode):
            return Conformance.ok()
        case _:
            return Conformance.skip(f"{where}: parameter {param.name!r} is not a scalar or named type")


def check_body(
    document: SchemaDocument,
    body: Body,
    media_types: Iterable[str],
    where: str = "",
) -> Conformance:
    if body.media_type not in tuple(media_types):
        return Conformance.skip(f"{where}: media type {body.media_type!r} is not JSON")
    if body.schema is None:
        return Conformance.skip(f"{where}: body has no schema")
    return check_envelope(document, body.schema, where)


def check_operation(
    document: SchemaDocument,
    operation: Operation,
    media_types: Iterable[str],
) -> Conformance:
    """Classify one operation as conformant, skipped or broken."""
    media_types = tuple(media_types)
    where = f"{operation.method.upper()} {operation.path}"
    try:
        checks = [check_parameter(document, p, where) for p in operation.parameters]
        if operation.request_body is not None:
            checks.append(check_body(document, operation.request_body, media_types, f"{where} request"))
        for response in operation.responses:
            checks.append(check_body(document, response, media_types, f"{where} {response.status}"))

        for check in checks:
            if not check.conformant:
                return check

        roots = [p.schema for p in operation.parameters]
        roots.extend(b.schema for b in _bodies(operation) if b.schema is not None)
        for node in iter_reachable(document, roots):
            if isinstance(node, PrimitiveNode):
                check_primitive(node, where)
    except GeneratorError as err:
        return Conformance.fail(err)
    return Conformance.ok()


def _bodies(operation: Operation) -> list[Body]:
    bodies = [operation.request_body] if operation.request_body is not None else []
    bodies.extend(operation.responses)
    return bodies
