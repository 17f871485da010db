"""Errors raised while generating source from an OpenAPI document.

Every fatal condition derives from GeneratorError so callers can catch the
whole family at the entry points. Operations that do not follow the JSON:API
conventions are not errors; they are skipped (see conformance.py).
"""

from __future__ import annotations


class GeneratorError(Exception):
    """Base class for all generation failures."""


class SchemaLoadError(GeneratorError):
    """The source could not be read or is not a usable OpenAPI document."""


class UnresolvedReferenceError(SchemaLoadError):
    """A $ref points at something the document does not define."""

    def __init__(self, ref: str, where: str = "") -> None:
        self.ref = ref
        self.where = where
        suffix = f" (referenced from {where})" if where else ""
        super().__init__(f"Unresolved reference {ref!r}{suffix}")


class UnsupportedPrimitiveError(GeneratorError):
    """A schema node declares a primitive kind with no Python scalar."""

    def __init__(self, kind: str, where: str = "") -> None:
        self.kind = kind
        self.where = where
        suffix = f" at {where}" if where else ""
        super().__init__(f"Unsupported primitive type {kind!r}{suffix}")


class NamingCollisionError(GeneratorError):
    """Two distinct sources resolve to the same emitted identifier."""

    def __init__(self, identifier: str, first: str, second: str) -> None:
        self.identifier = identifier
        self.first = first
        self.second = second
        super().__init__(
            f"Identifier {identifier!r} is produced by both {first!r} and {second!r}"
        )


class SerializationError(GeneratorError):
    """The accumulated declarations cannot be rendered to valid source."""
