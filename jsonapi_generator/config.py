"""Generator settings.

Defaults live in module constants; GeneratorSettings.from_env() lets a
build tool override the collaborator modules without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

GENERATOR_NAME = "jsonapi-generator"

# Collaborators the generated handlers call into. They are always imported
# under these aliases so handler bodies stay identical across configurations.
DEFAULT_TRACING_MODULE = "opentelemetry.trace"
DEFAULT_METRICS_MODULE = "prometheus_client"
TRACING_ALIAS = "opentracing"
METRICS_ALIAS = "metrics"

# JSON:API media type first, plain JSON accepted as a fallback
JSON_MEDIA_TYPES: tuple[str, ...] = ("application/vnd.api+json", "application/json")

DEFAULT_HTTP_TIMEOUT = 30.0

_ENV_PREFIX = "JSONAPI_GENERATOR_"


@dataclass(frozen=True)
class GeneratorSettings:
    """Knobs for one generation run."""

    tracing_module: str = DEFAULT_TRACING_MODULE
    metrics_module: str = DEFAULT_METRICS_MODULE
    generator_name: str = GENERATOR_NAME
    media_types: tuple[str, ...] = JSON_MEDIA_TYPES
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> GeneratorSettings:
        """Build settings from JSONAPI_GENERATOR_* environment variables."""
        env = os.environ if environ is None else environ
        timeout = env.get(f"{_ENV_PREFIX}HTTP_TIMEOUT")
        return cls(
            tracing_module=env.get(f"{_ENV_PREFIX}TRACING_MODULE", DEFAULT_TRACING_MODULE),
            metrics_module=env.get(f"{_ENV_PREFIX}METRICS_MODULE", DEFAULT_METRICS_MODULE),
            http_timeout=float(timeout) if timeout else DEFAULT_HTTP_TIMEOUT,
        )
