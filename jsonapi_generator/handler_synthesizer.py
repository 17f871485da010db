"""Build handler declarations from conformant operations.

Each handler extracts its parameters from the request (path, query or
header), checks that required ones are present, decodes the request body
through the generated types and wraps everything in a tracing span plus an
invocation counter. The service logic itself is left to the author.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Final

from .config import METRICS_ALIAS, TRACING_ALIAS
from .context import BuildContext, OperationTypes
from .document import Operation, Parameter
from .errors import NamingCollisionError
from .naming import field_name, handler_name
from .type_resolver import PyType

logger = logging.getLogger(__name__)

# Where each parameter location is read from on the request object
_SOURCES: Final = {
    "path": "request.path_params",
    "query": "request.query_params",
    "header": "request.headers",
}

# Locals every handler defines itself
_RESERVED_LOCALS: Final = frozenset({"request", "span", "body", "payload"})


@dataclass
class ParameterExtraction:
    name: str
    variable: str
    location: str
    required: bool
    statements: list[str] = field(default_factory=list)

    @property
    def where(self) -> str:
        return f"{self.location} parameter {self.name!r}"


@dataclass
class GeneratedHandler:
    """One handler function for one operation."""

    name: str
    operation_id: str
    method: str
    path: str
    parameters: list[ParameterExtraction] = field(default_factory=list)
    body_statements: list[str] = field(default_factory=list)
    return_annotation: str = "None"
    type_names: tuple[str, ...] = ()
    summary: str | None = None
    description: str | None = None
    deprecated: bool = False
    tags: tuple[str, ...] = ()

    @property
    def statements(self) -> list[str]:
        lines = [stmt for param in self.parameters for stmt in param.statements]
        return lines + self.body_statements

    @property
    def doc(self) -> str:
        lines = []
        if self.summary:
            lines.append(self.summary.strip().rstrip("."))
        lines.append(f"{self.method.upper()} {self.path} (operation {self.operation_id})")
        if self.tags:
            lines.append(f"Tags: {', '.join(self.tags)}")
        if self.description and self.description != self.summary:
            lines.extend(["", self.description.strip()])
        if self.deprecated:
            lines.extend(["", "Deprecated."])
        return "\n".join(lines) if len(lines) > 1 else lines[0]

    def identifiers(self) -> list[str]:
        return [self.name, *(p.variable for p in self.parameters)]


def _extract_expression(param: Parameter, param_type: PyType) -> str:
    """Build the expression reading the raw value(s) of a parameter."""
    source = _SOURCES[param.location]
    wire = repr(param.name)
    if param_type.kind == "list":
        if param.location == "query":
            return f"{source}.getlist({wire}) or None"
        return f"_split({source}.get({wire}))"
    return f"{source}.get({wire})"


def build_extraction(param: Parameter, param_type: PyType, variable: str) -> ParameterExtraction:
    """Build the statements extracting and validating one parameter."""
    extraction = ParameterExtraction(
        name=param.name,
        variable=variable,
        location=param.location,
        required=param.required,
    )
    where = repr(extraction.where)
    raw = _extract_expression(param, param_type)

    if param_type.kind == "scalar":
        choices = f", {param_type.enum!r}" if param_type.enum else ""
        value = f"_coerce({raw}, {param_type.scalar!r}, {where}{choices})"
    elif param_type.kind == "list" and param_type.item is not None and param_type.item.kind == "scalar":
        item = param_type.item
        choices = f", {item.enum!r}" if item.enum else ""
        value = f"_coerce_all({raw}, {item.scalar!r}, {where}{choices})"
    else:
        # named objects and everything else arrive as JSON text
        decoder = param_type.decoder or "None"
        value = f"_decode_param({raw}, {where}, {decoder})"

    extraction.statements.append(f"{variable} = {value}")
    if param.required:
        extraction.statements.append(f"_require({variable}, {where})")
    return extraction


def build_body_statements(operation: Operation, request: PyType | None) -> list[str]:
    if request is None or operation.request_body is None:
        return []
    required = operation.request_body.required
    lines = [f"payload = await _read_json(request, {required!r})"]
    decoded = request.decode("payload", "'body'")
    if required:
        lines.append(f"body = {decoded}")
    else:
        lines.append(f"body = {decoded} if payload is not None else None")
    return lines


def _return_annotation(types: OperationTypes) -> str:
    annotations: list[str] = []
    for response in types.responses:
        if response.annotation not in annotations:
            annotations.append(response.annotation)
    return " | ".join(annotations) if annotations else "None"


def build_handler(operation: Operation, types: OperationTypes) -> GeneratedHandler:
    """Build the handler for one conformant operation."""
    handler = GeneratedHandler(
        name=handler_name(operation.operation_id),
        operation_id=operation.operation_id,
        method=operation.method,
        path=operation.path,
        summary=operation.summary,
        description=operation.description,
        deprecated=operation.deprecated,
        tags=operation.tags,
        return_annotation=_return_annotation(types),
    )

    variables: dict[str, str] = {}
    for param, param_type in zip(operation.parameters, types.parameters):
        variable = field_name(param.name)
        if variable in _RESERVED_LOCALS:
            variable = f"{variable}_param"
        source = f"{param.location}:{param.name}"
        if variable in variables:
            raise NamingCollisionError(
                f"{handler.name}.{variable}", variables[variable], source,
            )
        variables[variable] = source
        handler.parameters.append(build_extraction(param, param_type, variable))

    handler.body_statements = build_body_statements(operation, types.request)

    referenced: list[str] = []
    all_types = [*types.parameters, *types.responses]
    if types.request is not None:
        all_types.append(types.request)
    for py_type in all_types:
        for name in py_type.referenced_types():
            if name not in referenced:
                referenced.append(name)
    handler.type_names = tuple(referenced)
    return handler


def synthesize_handlers(context: BuildContext) -> None:
    """Pipeline stage: emit one handler per conformant operation."""
    owners: dict[str, str] = {}
    settings = context.settings

    for operation in context.document.operations():
        label = f"{operation.method.upper()} {operation.path}"
        result = context.check(operation)
        result.raise_for_error()
        if not result.conformant:
            logger.debug("Skipping %s: %s", label, result.reason)
            continue

        handler = build_handler(operation, context.operation_types[context.key(operation)])
        if handler.name in owners:
            raise NamingCollisionError(handler.name, owners[handler.name], label)
        owners[handler.name] = label

        context.buffer.add_import("collaborators", f"import {settings.tracing_module} as {TRACING_ALIAS}")
        context.buffer.add_import("collaborators", f"import {settings.metrics_module} as {METRICS_ALIAS}")
        context.buffer.add_handler(handler)
        logger.debug("Emitted handler %s for %s", handler.name, label)
