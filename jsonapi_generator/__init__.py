"""Generate JSON:API types and request handlers from OpenAPI documents."""

from .config import GeneratorSettings
from .errors import (
    GeneratorError,
    NamingCollisionError,
    SchemaLoadError,
    SerializationError,
    UnresolvedReferenceError,
    UnsupportedPrimitiveError,
)
from .orchestrator import Generator, Stage, build_schema, build_source

__all__ = [
    "Generator",
    "GeneratorError",
    "GeneratorSettings",
    "NamingCollisionError",
    "SchemaLoadError",
    "SerializationError",
    "Stage",
    "UnresolvedReferenceError",
    "UnsupportedPrimitiveError",
    "build_schema",
    "build_source",
]
