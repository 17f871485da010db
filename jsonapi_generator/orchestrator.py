"""Run the generation stages in order over one build context.

    LOADED -> TYPES_RESOLVED -> HANDLERS_SYNTHESIZED -> SERIALIZED

Each stage is a plain function taking the BuildContext. The first failure
stops the run; nothing is returned for a failed run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from .config import GeneratorSettings
from .context import BuildContext, BuildState
from .document import SchemaDocument, parse_document
from .emission import EmissionBuffer, serialize
from .errors import GeneratorError
from .handler_synthesizer import synthesize_handlers
from .loader import load_spec
from .type_resolver import resolve_types

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    name: str
    run: Callable[[BuildContext], None]
    # state reached when the stage completes; None leaves it unchanged
    produces: BuildState | None = None


DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage("types", resolve_types, BuildState.TYPES_RESOLVED),
    Stage("handlers", synthesize_handlers, BuildState.HANDLERS_SYNTHESIZED),
    Stage("serialize", serialize, BuildState.SERIALIZED),
)


class Generator:
    """Builds Python source from API descriptions.

    One instance can serve any number of runs; all per-run state lives in the
    BuildContext created by each call.
    """

    def __init__(
        self,
        settings: GeneratorSettings | None = None,
        stages: Sequence[Stage] = DEFAULT_STAGES,
    ) -> None:
        self.settings = settings or GeneratorSettings()
        self.stages = tuple(stages)

    def new_context(
        self,
        document: SchemaDocument | Mapping[str, Any],
        package_path: str,
        package_name: str,
    ) -> BuildContext:
        if not isinstance(document, SchemaDocument):
            document = parse_document(dict(document))
        return BuildContext(
            document=document,
            package_path=package_path,
            package_name=package_name,
            settings=self.settings,
            buffer=EmissionBuffer(package_path, package_name, self.settings),
        )

    def run(self, context: BuildContext) -> BuildContext:
        """Run every stage over the context, stopping at the first error."""
        for stage in self.stages:
            logger.debug("Stage %s (state %s)", stage.name, context.state.value)
            try:
                stage.run(context)
            except GeneratorError:
                logger.debug("Stage %s failed for %s", stage.name, context.package_name)
                raise
            if stage.produces is not None:
                context.state = stage.produces
        return context

    def build_context(
        self,
        document: SchemaDocument | Mapping[str, Any],
        package_path: str,
        package_name: str,
    ) -> BuildContext:
        context = self.run(self.new_context(document, package_path, package_name))
        if context.output is None:
            raise GeneratorError(f"No stage produced output for {package_name}")
        logger.info(
            "Generated %s: %d types, %d handlers, %d operations skipped",
            package_name,
            len(context.buffer.types),
            len(context.buffer.handlers),
            skipped_count(context),
        )
        return context

    def build_schema(
        self,
        document: SchemaDocument | Mapping[str, Any],
        package_path: str,
        package_name: str,
    ) -> str:
        """Generate source for an already loaded document."""
        context = self.build_context(document, package_path, package_name)
        assert context.output is not None
        return context.output

    def load(self, source: str | Path, client: httpx.Client | None = None) -> SchemaDocument:
        """Load and parse a document from a URL or a file path."""
        spec = load_spec(source, timeout=self.settings.http_timeout, client=client)
        return parse_document(spec)

    def build_source(
        self,
        source: str | Path,
        package_path: str,
        package_name: str,
        client: httpx.Client | None = None,
    ) -> str:
        """Load a document from a URL or a file path and generate source for it."""
        return self.build_schema(self.load(source, client=client), package_path, package_name)


def skipped_count(context: BuildContext) -> int:
    return sum(1 for result in context.conformance.values() if not result.conformant)


def build_schema(
    document: SchemaDocument | Mapping[str, Any],
    package_path: str,
    package_name: str,
    settings: GeneratorSettings | None = None,
) -> str:
    return Generator(settings).build_schema(document, package_path, package_name)


def build_source(
    source: str | Path,
    package_path: str,
    package_name: str,
    settings: GeneratorSettings | None = None,
) -> str:
    return Generator(settings).build_source(source, package_path, package_name)
