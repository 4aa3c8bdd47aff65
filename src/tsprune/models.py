from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NodeKind(str, Enum):
    VARIABLE_DECLARATOR = "variable_declarator"
    VARIABLE_DECLARATION = "variable_declaration"
    BINDING_IDENTIFIER = "binding_identifier"
    REST_ELEMENT = "rest_element"
    FORMAL_PARAMETER = "formal_parameter"
    IMPORT_SPECIFIER = "import_specifier"
    IMPORT_DEFAULT_SPECIFIER = "import_default_specifier"
    IMPORT_NAMESPACE_SPECIFIER = "import_namespace_specifier"
    IMPORT_DECLARATION = "import_declaration"
    EXPORT_NAMED_DECLARATION = "export_named_declaration"
    EXPORT_DEFAULT_DECLARATION = "export_default_declaration"
    EXPORT_ALL_DECLARATION = "export_all_declaration"
    PINNED_BINDING = "pinned_binding"  # bound where removal cannot leave valid syntax
    OTHER = "other"


EXPORT_KINDS = frozenset(
    {
        NodeKind.EXPORT_NAMED_DECLARATION,
        NodeKind.EXPORT_DEFAULT_DECLARATION,
        NodeKind.EXPORT_ALL_DECLARATION,
    }
)
IMPORT_SPECIFIER_KINDS = frozenset(
    {
        NodeKind.IMPORT_SPECIFIER,
        NodeKind.IMPORT_DEFAULT_SPECIFIER,
        NodeKind.IMPORT_NAMESPACE_SPECIFIER,
    }
)


@dataclass(frozen=True)
class Node:
    id: int
    kind: NodeKind
    start: int
    end: int
    parent: int | None
    type_name: str  # grammar node type, for messages


@dataclass
class Symbol:
    id: int
    name: str
    declaration: int
    references: list[tuple[int, int]] = field(default_factory=list)
    redeclarations: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class IdentifierPattern:
    symbol: int


@dataclass(frozen=True)
class ObjectPattern:
    properties: tuple[Pattern, ...]


@dataclass(frozen=True)
class ArrayPattern:
    elements: tuple[Pattern | None, ...]  # None is an elided slot


@dataclass(frozen=True)
class OpaquePattern:
    type_name: str


Pattern = IdentifierPattern | ObjectPattern | ArrayPattern | OpaquePattern


@dataclass(frozen=True, order=True)
class RemovalSpan:
    start: int
    end: int
    nodes: tuple[int, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class Diagnostic:
    line: int
    column: int
    message: str

    def __str__(self) -> str:
        return f"{self.line}:{self.column}: {self.message}"


@dataclass(frozen=True)
class FileOutcome:
    path: str
    status: str  # "updated", "would_update", "unchanged", "parse_error" or "failed"
    removed: int = 0
    detail: str = ""
    diff: str = ""
