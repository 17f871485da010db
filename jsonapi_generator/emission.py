"""Collect declarations and render them into one Python module.

Types always precede handlers, and each category keeps the order in which
it was filled. Rendering goes through templates/module.py.j2; the result is
compiled before it is handed back so a broken module is never returned.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import jinja2

from .config import METRICS_ALIAS, TRACING_ALIAS, GeneratorSettings
from .errors import NamingCollisionError, SerializationError
from .naming import is_valid_identifier, snake_case

if TYPE_CHECKING:
    from .context import BuildContext
    from .handler_synthesizer import GeneratedHandler
    from .type_resolver import GeneratedType

logger = logging.getLogger(__name__)

TEMPLATE_DIR: Final = Path(__file__).parent / "templates"
MODULE_TEMPLATE: Final = "module.py.j2"

IMPORT_GROUPS: Final = ("future", "stdlib", "collaborators")

# Imports the validation helpers and type declarations rely on
_BASE_IMPORTS: Final = (
    ("future", "from __future__ import annotations"),
    ("stdlib", "import base64"),
    ("stdlib", "import datetime"),
    ("stdlib", "import json"),
    ("stdlib", "from dataclasses import dataclass"),
    ("stdlib", "from typing import Any, Optional"),
)


def pyrepr(value: Any) -> str:
    """Render a value as a Python literal."""
    return repr(value)


def pydoc(text: str | None, indent: int = 0) -> str:
    """Make text safe inside a triple-quoted docstring, indenting continuation lines."""
    if not text:
        return ""
    text = text.strip().replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if text.endswith('"'):
        text = text[:-1] + '\\"'
    pad = " " * indent
    lines = [line.rstrip() for line in text.splitlines()]
    return "\n".join([lines[0], *((pad + line) if line else "" for line in lines[1:])])


def pycomment(text: str | None) -> str:
    """Render the first line of text as a trailing comment, or nothing."""
    first = (text or "").strip().splitlines()[:1]
    return f"  # {first[0].strip()}" if first else ""


def _environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=jinja2.StrictUndefined,
    )
    env.filters["pyrepr"] = pyrepr
    env.filters["pydoc"] = pydoc
    env.filters["pycomment"] = pycomment
    return env


class EmissionBuffer:
    """Ordered, append-only accumulator of one run's declarations."""

    def __init__(
        self,
        package_path: str,
        package_name: str,
        settings: GeneratorSettings | None = None,
    ) -> None:
        self.package_path = package_path
        self.package_name = package_name
        self.settings = settings or GeneratorSettings()
        self.imports: dict[str, list[str]] = {group: [] for group in IMPORT_GROUPS}
        self.types: dict[str, GeneratedType] = {}
        self.handlers: dict[str, GeneratedHandler] = {}
        for group, line in _BASE_IMPORTS:
            self.add_import(group, line)

    def add_import(self, group: str, line: str) -> None:
        if group not in self.imports:
            raise ValueError(f"Unknown import group {group!r}")
        if line not in self.imports[group]:
            self.imports[group].append(line)

    def add_type(self, generated: GeneratedType) -> None:
        existing = self.types.get(generated.name)
        if existing is not None:
            if existing.source != generated.source:
                raise NamingCollisionError(generated.name, existing.source, generated.source)
            return
        self.types[generated.name] = generated

    def add_handler(self, handler: GeneratedHandler) -> None:
        existing = self.handlers.get(handler.name)
        if existing is not None:
            raise NamingCollisionError(
                handler.name,
                f"{existing.method.upper()} {existing.path}",
                f"{handler.method.upper()} {handler.path}",
            )
        self.handlers[handler.name] = handler

    def _check_identifiers(self) -> None:
        if not is_valid_identifier(self.package_name):
            raise SerializationError(f"Package name {self.package_name!r} is not a valid identifier")
        for generated in self.types.values():
            for identifier in generated.identifiers():
                if not is_valid_identifier(identifier):
                    raise SerializationError(f"Cannot render identifier {identifier!r} of type {generated.source}")
        for handler in self.handlers.values():
            for identifier in handler.identifiers():
                if not is_valid_identifier(identifier):
                    raise SerializationError(f"Cannot render identifier {identifier!r} of handler {handler.operation_id}")

    def render(self, title: str = "", version: str = "") -> str:
        """Render the module text without checking that it compiles."""
        self._check_identifiers()
        context = {
            "package_path": self.package_path,
            "package_name": self.package_name,
            "metric_name": f"{snake_case(self.package_name)}_handler_invocations_total",
            "title": title,
            "version": version,
            "import_groups": [self.imports[group] for group in IMPORT_GROUPS if self.imports[group]],
            "types": list(self.types.values()),
            "handlers": list(self.handlers.values()),
            "generator_name": self.settings.generator_name,
            "tracing_alias": TRACING_ALIAS,
            "metrics_alias": METRICS_ALIAS,
        }
        try:
            template = _environment().get_template(MODULE_TEMPLATE)
            return template.render(**context)
        except jinja2.TemplateError as err:
            raise SerializationError(f"Failed to render {self.package_name}: {err}") from err

    def serialize(self, title: str = "", version: str = "") -> str:
        """Render and compile the module; raises SerializationError on any failure."""
        source = self.render(title=title, version=version)
        try:
            compile(source, f"<{self.package_name}>", "exec")
        except (SyntaxError, ValueError) as err:
            raise SerializationError(f"Generated source for {self.package_name} does not compile: {err}") from err
        logger.debug(
            "Serialized %s: %d types, %d handlers, %d bytes",
            self.package_name, len(self.types), len(self.handlers), len(source),
        )
        return source


def serialize(context: BuildContext) -> None:
    """Pipeline stage: render the buffer into the context output."""
    document = context.document
    context.output = context.buffer.serialize(title=document.title, version=document.version)
