"""State shared by the pipeline stages of one generation run.

A BuildContext is created per build_schema() call and never shared. Both
deduplication sets live here rather than at module level so concurrent runs
stay isolated.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .config import GeneratorSettings
from .conformance import Conformance, check_operation
from .document import Operation, SchemaDocument

if TYPE_CHECKING:
    from .emission import EmissionBuffer
    from .type_resolver import PyType


class BuildState(enum.Enum):
    LOADED = "loaded"
    TYPES_RESOLVED = "types_resolved"
    HANDLERS_SYNTHESIZED = "handlers_synthesized"
    SERIALIZED = "serialized"


@dataclass(frozen=True)
class OperationTypes:
    """Resolved types of one operation, aligned with its parameters and bodies."""

    parameters: tuple[PyType, ...] = ()
    request: PyType | None = None
    responses: tuple[PyType, ...] = ()


@dataclass
class BuildContext:
    document: SchemaDocument
    package_path: str
    package_name: str
    settings: GeneratorSettings
    buffer: EmissionBuffer
    state: BuildState = BuildState.LOADED
    # emitted identifier -> source key that owns it
    generated_types: dict[str, str] = field(default_factory=dict)
    # element type names that already have a <Name>List wrapper
    generated_array_types: set[str] = field(default_factory=set)
    conformance: dict[tuple[str, str], Conformance] = field(default_factory=dict)
    operation_types: dict[tuple[str, str], OperationTypes] = field(default_factory=dict)
    output: str | None = None

    @staticmethod
    def key(operation: Operation) -> tuple[str, str]:
        return operation.method, operation.path

    def check(self, operation: Operation) -> Conformance:
        """Conformance of an operation, computed once per run."""
        key = self.key(operation)
        if key not in self.conformance:
            self.conformance[key] = check_operation(self.document, operation, self.settings.media_types)
        return self.conformance[key]
