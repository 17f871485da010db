"""Map schema nodes to generated Python types.

Handles:
- primitives -> str/int/float/bool, date formats -> datetime.date/datetime
- named and inline objects -> one dataclass per distinct name
- arrays of objects -> the element dataclass plus one <Element>List wrapper
- arrays of primitives -> list[...] inline
- free-form objects -> dict[str, Any]
- untyped or multi-typed schemas -> Any, passed through unchecked
- nullable members -> Optional[...] that may be present as null
- inline names that hit a component name -> a numeric suffix (ArticleData2)
- cycles (A -> B -> A) -> a reference to the already declared name
- enum values checked on decode
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Final

from .context import BuildContext, OperationTypes
from .document import AnyNode, ArrayNode, ObjectNode, Operation, PrimitiveNode, RefNode, SchemaNode
from .errors import NamingCollisionError, UnresolvedReferenceError, UnsupportedPrimitiveError
from .naming import field_name, pascal_case, type_name

logger = logging.getLogger(__name__)

# (OpenAPI type, format) -> (scalar kind used by the generated helpers, annotation)
_SCALAR_TYPES: Final = {
    ("string", None): ("str", "str"),
    ("string", "date"): ("date", "datetime.date"),
    ("string", "date-time"): ("datetime", "datetime.datetime"),
    ("string", "byte"): ("bytes", "bytes"),
    ("string", "binary"): ("bytes", "bytes"),
    ("integer", None): ("int", "int"),
    ("number", None): ("float", "float"),
    ("boolean", None): ("bool", "bool"),
}

# Names the generated classes already use for their own members
_RESERVED_FIELDS: Final = frozenset({"self", "from_dict", "to_dict", "from_list", "to_list"})

_SCHEMA_SOURCE_PREFIX: Final = "#/components/schemas/"


@dataclass(frozen=True)
class PyType:
    """A resolved Python type and how to decode a JSON value into it."""

    kind: str  # scalar | free | any | object | wrapper | list
    annotation: str
    scalar: str | None = None
    enum: tuple = ()
    item: PyType | None = None
    name: str | None = None

    def decode(self, value: str, path: str) -> str:
        """Return a Python expression decoding `value`, reporting errors at `path`."""
        if self.kind == "scalar":
            choices = f", {self.enum!r}" if self.enum else ""
            return f"_scalar({value}, {self.scalar!r}, {path}{choices})"
        if self.kind == "free":
            return f"_expect({value}, dict, {path})"
        if self.kind == "any":
            return value
        if self.kind == "object":
            return f"{self.name}.from_dict({value}, {path})"
        if self.kind == "wrapper":
            return f"{self.name}.from_list({value}, {path})"
        assert self.item is not None
        inner = self.item.decode("item", f"_at({path}, index)")
        return f"[{inner} for index, item in enumerate(_expect({value}, list, {path}))]"

    @property
    def decoder(self) -> str | None:
        """A callable taking (value, path), for values arriving as JSON text."""
        if self.kind == "object":
            return f"{self.name}.from_dict"
        if self.kind == "wrapper":
            return f"{self.name}.from_list"
        return None

    def referenced_types(self) -> tuple[str, ...]:
        if self.name is not None:
            return (self.name,)
        if self.item is not None:
            return self.item.referenced_types()
        return ()


FREE_FORM: Final = PyType(kind="free", annotation="dict[str, Any]")
ANY: Final = PyType(kind="any", annotation="Any")


@dataclass
class TypeField:
    name: str
    wire_name: str
    type: PyType
    required: bool
    description: str | None = None
    nullable: bool = False

    @property
    def declaration(self) -> str:
        if self.required and self.nullable:
            return f"{self.name}: Optional[{self.type.annotation}]"
        if self.required:
            return f"{self.name}: {self.type.annotation}"
        return f"{self.name}: Optional[{self.type.annotation}] = None"

    @property
    def decode_expr(self) -> str:
        wire = repr(self.wire_name)
        expr = self.type.decode(f"data[{wire}]", f"_at(path, {wire})")
        if self.required and not self.nullable:
            return expr
        return f"{expr} if data.get({wire}) is not None else None"


@dataclass
class GeneratedType:
    """One emitted class: a dataclass (object) or a list subclass (array)."""

    name: str
    source: str
    kind: str = "object"
    fields: list[TypeField] = field(default_factory=list)
    element: str | None = None
    description: str | None = None

    @property
    def required_wire_names(self) -> tuple[str, ...]:
        return tuple(f.wire_name for f in self.fields if f.required)

    @property
    def nullable_wire_names(self) -> tuple[str, ...]:
        """Required members that may be null but must still be present."""
        return tuple(f.wire_name for f in self.fields if f.required and f.nullable)

    @property
    def doc(self) -> str:
        if self.description:
            return self.description
        if self.kind == "array":
            return f"List of {self.element}."
        return f"Generated from {self.source}."

    def identifiers(self) -> list[str]:
        return [self.name, *(f.name for f in self.fields)]


def scalar_type(node: PrimitiveNode, where: str = "") -> PyType:
    """Map a primitive node to its Python scalar."""
    mapping = _SCALAR_TYPES.get((node.kind, node.format)) or _SCALAR_TYPES.get((node.kind, None))
    if mapping is None:
        raise UnsupportedPrimitiveError(node.kind, where)
    scalar, annotation = mapping
    return PyType(kind="scalar", annotation=annotation, scalar=scalar, enum=node.enum)


class TypeResolver:
    """Resolves the schema nodes of one build run into GeneratedTypes."""

    def __init__(self, context: BuildContext) -> None:
        self.context = context
        self.document = context.document
        self.in_progress: set[str] = set()
        # derived names step around these
        self.reserved = {type_name(name) for name in self.document.schemas}

    # Entry points

    def resolve_operation(self, operation: Operation) -> OperationTypes:
        """Resolve parameters, then the request body, then response bodies."""
        prefix = type_name(operation.operation_id)
        where = f"{operation.method.upper()} {operation.path}"

        parameters = tuple(
            self.resolve(p.schema, hint=f"{prefix}{pascal_case(p.name)}Param", where=f"{where} {p.name}")
            for p in operation.parameters
        )

        request = None
        if operation.request_body is not None and operation.request_body.schema is not None:
            request = self.resolve(operation.request_body.schema, hint=f"{prefix}Request", where=f"{where} request")

        several = len(operation.responses) > 1
        responses = tuple(
            self.resolve(
                body.schema,
                hint=f"{prefix}Response{body.status if several else ''}",
                where=f"{where} {body.status}",
            )
            for body in operation.responses
            if body.schema is not None
        )
        return OperationTypes(parameters=parameters, request=request, responses=responses)

    def resolve(self, node: SchemaNode, hint: str, where: str) -> PyType:
        """Resolve one node; `hint` names inline objects, `where` is the source key."""
        match node:
            case PrimitiveNode():
                return scalar_type(node, where)
            case RefNode(name=name):
                return self.resolve_named(name, node.ref, where)
            case ObjectNode() if node.free_form:
                return FREE_FORM
            case ObjectNode():
                return self.declare_object(self.derived_name(type_name(hint)), where, node)
            case AnyNode():
                return ANY
            case ArrayNode(items=items):
                item = self.resolve(items, hint=f"{hint}Item", where=f"{where}/items")
                if item.kind == "object":
                    return self.declare_array(item)
                return PyType(kind="list", annotation=f"list[{item.annotation}]", item=item)
        raise TypeError(f"Unknown schema node {node!r}")

    def resolve_named(self, name: str, ref: str, where: str) -> PyType:
        seen: set[str] = set()
        target = self.document.schema(name)
        # follow pure aliases (A: {$ref: B}) to the definition
        while isinstance(target, RefNode) and target.name not in seen:
            seen.add(name)
            name, ref = target.name, target.ref
            target = self.document.schema(name)
        if target is None or isinstance(target, RefNode):
            raise UnresolvedReferenceError(ref, where)

        source = f"{_SCHEMA_SOURCE_PREFIX}{name}"
        if isinstance(target, ObjectNode) and not target.free_form:
            return self.declare_object(type_name(name), source, target)
        return self.resolve(target, hint=name, where=source)

    # Declarations

    def derived_name(self, base: str) -> str:
        """Name an inline object or wrapper, suffixing it when a component owns `base`."""
        candidate, index = base, 1
        while candidate in self.reserved:
            index += 1
            candidate = f"{base}{index}"
        return candidate

    def is_nullable(self, node: SchemaNode) -> bool:
        if isinstance(node, RefNode):
            target = self.document.schema(node.name)
            return node.nullable or (target is not None and target.nullable)
        return node.nullable

    def _claim(self, name: str, source: str) -> bool:
        """Reserve an identifier; False when this source already owns it."""
        owner = self.context.generated_types.get(name)
        if owner is None:
            self.context.generated_types[name] = source
            return True
        if owner != source:
            raise NamingCollisionError(name, owner, source)
        return False

    def declare_object(self, name: str, source: str, node: ObjectNode) -> PyType:
        ref = PyType(kind="object", annotation=name, name=name)
        if not self._claim(name, source):
            if name in self.in_progress:
                logger.debug("Cycle through %s, emitting a reference", name)
            return ref

        generated = GeneratedType(name=name, source=source, description=node.description)
        # reserve the slot before the fields so output follows discovery order
        self.context.buffer.add_type(generated)
        self.in_progress.add(name)
        try:
            fields = [
                self._make_field(generated, wire_name, child, wire_name in node.required)
                for wire_name, child in node.fields
            ]
        finally:
            self.in_progress.discard(name)

        # dataclass fields without defaults have to come first
        generated.fields = [f for f in fields if f.required] + [f for f in fields if not f.required]
        logger.debug("Emitted type %s (%d fields) from %s", name, len(fields), source)
        return ref

    def _make_field(self, owner: GeneratedType, wire_name: str, node: SchemaNode, required: bool) -> TypeField:
        attr = field_name(wire_name)
        if attr in _RESERVED_FIELDS:
            attr = f"{attr}_"
        taken = {f.name for f in owner.fields}
        if attr in taken:
            raise NamingCollisionError(f"{owner.name}.{attr}", f"{owner.source}/{attr}", f"{owner.source}/{wire_name}")

        field_type = self.resolve(
            node,
            hint=f"{owner.name}{pascal_case(wire_name)}",
            where=f"{owner.source}/{wire_name}",
        )
        result = TypeField(
            name=attr,
            wire_name=wire_name,
            type=field_type,
            required=required,
            description=getattr(node, "description", None),
            nullable=self.is_nullable(node),
        )
        # track names while resolving so later siblings see them
        owner.fields.append(result)
        return result

    def declare_array(self, item: PyType) -> PyType:
        assert item.name is not None
        name = self.derived_name(f"{item.name}List")
        ref = PyType(kind="wrapper", annotation=name, name=name, item=item)
        if item.name in self.context.generated_array_types:
            return ref

        self._claim(name, f"array:{item.name}")
        self.context.generated_array_types.add(item.name)
        self.context.buffer.add_type(
            GeneratedType(name=name, source=f"array:{item.name}", kind="array", element=item.name)
        )
        logger.debug("Emitted array wrapper %s", name)
        return ref


def resolve_types(context: BuildContext) -> None:
    """Pipeline stage: resolve the types of every conformant operation."""
    resolver = TypeResolver(context)
    for operation in context.document.operations():
        result = context.check(operation)
        result.raise_for_error()
        if not result.conformant:
            continue
        context.operation_types[context.key(operation)] = resolver.resolve_operation(operation)
