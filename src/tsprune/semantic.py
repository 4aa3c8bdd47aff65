"""Tree-sitter front end: node arena, scopes and resolved references.

``parse_source`` turns TypeScript/JavaScript text into a ``SemanticModel``:
a flat arena of ``Node`` records linked by parent ids, and a symbol table
whose entries carry their declaration node and every resolved reference.
Only the nodes that some declaration needs (the declaration itself and its
ancestors) are copied into the arena.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path

import tree_sitter_typescript
from tree_sitter import Language, Parser
from tree_sitter import Node as TSNode

from tsprune.models import (
    ArrayPattern,
    Diagnostic,
    IdentifierPattern,
    Node,
    NodeKind,
    ObjectPattern,
    OpaquePattern,
    Pattern,
    Symbol,
)

logger = logging.getLogger(__name__)

TYPESCRIPT_EXTENSIONS = {".ts", ".mts", ".cts"}

FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
}
REFERENCE_TYPES = {
    "identifier",
    "type_identifier",
    "shorthand_property_identifier",
    "shorthand_property_identifier_pattern",
}
LEAF_PATTERNS = {"identifier", "shorthand_property_identifier_pattern", "this"}
PINNING_PARENTS = {"for_statement", "ambient_declaration"}
OVERLOAD_PARENTS = {"program", "statement_block"}
PARAMETER_PROPERTY_MARKERS = {"accessibility_modifier", "override_modifier", "readonly"}


class ParseError(Exception):
    def __init__(self, path: Path, diagnostics: list[Diagnostic]) -> None:
        super().__init__(f"{path}: {len(diagnostics)} parse error(s)")
        self.path = path
        self.diagnostics = diagnostics


@dataclass
class SemanticModel:
    nodes: list[Node] = field(default_factory=list)
    symbols: list[Symbol] = field(default_factory=list)
    # variable declaration statement id -> its declarator ids
    declarators: dict[int, list[int]] = field(default_factory=dict)
    # declarator id -> binding pattern
    patterns: dict[int, Pattern] = field(default_factory=dict)
    # import statement id -> symbols bound by its specifiers
    specifiers: dict[int, list[int]] = field(default_factory=dict)
    # positional binding node id -> (container id, index)
    slots: dict[int, tuple[int, int]] = field(default_factory=dict)
    # parameter list / array pattern id -> pattern per position
    containers: dict[int, list[Pattern | None]] = field(default_factory=dict)

    def symbol_ids(self) -> range:
        return range(len(self.symbols))

    def symbol_name(self, symbol_id: int) -> str:
        return self.symbols[symbol_id].name

    def declaration(self, symbol_id: int) -> int:
        return self.symbols[symbol_id].declaration

    def resolved_references(self, symbol_id: int) -> Iterator[tuple[int, int]]:
        return iter(self.symbols[symbol_id].references)

    def node(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def parent(self, node_id: int) -> int | None:
        return self.nodes[node_id].parent

    def ancestors(self, node_id: int) -> Iterator[int]:
        """Yield ``node_id`` and then every parent up to the root."""
        current: int | None = node_id
        while current is not None:
            yield current
            current = self.nodes[current].parent

    def declarators_of(self, statement_id: int) -> list[int] | None:
        return self.declarators.get(statement_id)

    def pattern_of(self, declarator_id: int) -> Pattern:
        return self.patterns.get(declarator_id, OpaquePattern("missing"))

    def specifier_symbols(self, import_id: int) -> list[int] | None:
        return self.specifiers.get(import_id)

    def position_of(self, node_id: int) -> tuple[int, int] | None:
        return self.slots.get(node_id)

    def positions(self, container_id: int) -> list[Pattern | None]:
        return self.containers.get(container_id, [])


def grammar_for(path: Path) -> str:
    if path.suffix.lower() in TYPESCRIPT_EXTENSIONS:
        return "typescript"
    return "tsx"


@lru_cache(maxsize=None)
def _language(grammar: str) -> Language:
    if grammar == "typescript":
        return Language(tree_sitter_typescript.language_typescript())
    return Language(tree_sitter_typescript.language_tsx())


def parse_source(path: Path, source: str) -> SemanticModel:
    """Parse ``source`` and build its semantic model.

    Raises:
        ParseError: if the tree contains any error or missing node.
    """
    data = source.encode("utf-8")
    parser = Parser(_language(grammar_for(path)))
    tree = parser.parse(data)
    diagnostics = collect_diagnostics(tree.root_node)
    if diagnostics:
        raise ParseError(path, diagnostics)
    model = _SemanticBuilder(data).build(tree.root_node)
    logger.debug(
        "Built semantic model for %s: %d symbols, %d nodes",
        path,
        len(model.symbols),
        len(model.nodes),
    )
    return model


def collect_diagnostics(root: TSNode) -> list[Diagnostic]:
    diagnostics: list[Diagnostic] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_missing:
            message = f"missing {node.type}"
        elif node.type == "ERROR":
            message = "unexpected syntax"
        else:
            message = None
        if message is not None:
            row, column = node.start_point[0], node.start_point[1]
            diagnostics.append(Diagnostic(line=row + 1, column=column + 1, message=message))
            if node.type == "ERROR":
                continue
        stack.extend(child for child in node.children if child.has_error or child.is_missing)
    diagnostics.sort(key=lambda d: (d.line, d.column))
    return diagnostics


class _Scope:
    def __init__(self, parent: _Scope | None, is_function: bool) -> None:
        self.parent = parent
        self.is_function = is_function
        self.names: dict[str, int] = {}

    def function_scope(self) -> _Scope:
        scope = self
        while not scope.is_function and scope.parent is not None:
            scope = scope.parent
        return scope

    def lookup(self, name: str) -> int | None:
        scope: _Scope | None = self
        while scope is not None:
            if name in scope.names:
                return scope.names[name]
            scope = scope.parent
        return None


@dataclass
class _BindContext:
    target: _Scope  # scope receiving the bindings
    scope: _Scope  # scope for default values and computed keys
    owner: tuple[TSNode, NodeKind] | None = None  # declares every leaf at this node


class _SemanticBuilder:
    def __init__(self, source: bytes) -> None:
        self.source = source
        self.model = SemanticModel()
        self._ids: dict[int, int] = {}
        self._bindings: set[int] = set()
        self._candidates: list[tuple[TSNode, _Scope]] = []

    def build(self, root: TSNode) -> SemanticModel:
        self._visit(root, _Scope(None, is_function=True))
        for node, scope in self._candidates:
            if node.id in self._bindings:
                continue
            symbol_id = scope.lookup(self._text(node))
            if symbol_id is not None:
                self.model.symbols[symbol_id].references.append(
                    (node.start_byte, node.end_byte)
                )
        return self.model

    def _text(self, node: TSNode) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8")

    def _register(self, node: TSNode, kind: NodeKind | None = None) -> int:
        existing = self._ids.get(node.id)
        if existing is not None:
            record = self.model.nodes[existing]
            if kind is not None and record.kind != kind:
                self.model.nodes[existing] = replace(record, kind=kind)
            return existing
        parent = node.parent
        parent_id = self._register(parent) if parent is not None else None
        node_id = len(self.model.nodes)
        self.model.nodes.append(
            Node(
                id=node_id,
                kind=kind or _structural_kind(node),
                start=node.start_byte,
                end=node.end_byte,
                parent=parent_id,
                type_name=node.type,
            )
        )
        self._ids[node.id] = node_id
        return node_id

    def _declare(self, scope: _Scope, name_node: TSNode, decl: TSNode, kind: NodeKind) -> int:
        name = self._text(name_node)
        self._bindings.add(name_node.id)
        node_id = self._register(decl, kind)
        existing = scope.names.get(name)
        if existing is not None:
            self.model.symbols[existing].redeclarations.append(node_id)
            return existing
        symbol = Symbol(id=len(self.model.symbols), name=name, declaration=node_id)
        self.model.symbols.append(symbol)
        scope.names[name] = symbol.id
        return symbol.id

    # traversal

    def _visit(self, node: TSNode, scope: _Scope) -> None:
        handler = getattr(self, f"_visit_{node.type}", None) if node.is_named else None
        if handler is not None:
            handler(node, scope)
        else:
            self._generic_visit(node, scope)

    def _generic_visit(self, node: TSNode, scope: _Scope) -> None:
        if node.type in REFERENCE_TYPES:
            self._candidates.append((node, scope))
        for child in node.children:
            self._visit(child, scope)

    def _visit_statement_block(self, node: TSNode, scope: _Scope) -> None:
        parent = node.parent
        if parent is None or parent.type not in FUNCTION_TYPES:
            scope = _Scope(scope, is_function=False)
        self._generic_visit(node, scope)

    def _visit_switch_body(self, node: TSNode, scope: _Scope) -> None:
        self._generic_visit(node, _Scope(scope, is_function=False))

    def _visit_for_statement(self, node: TSNode, scope: _Scope) -> None:
        self._generic_visit(node, _Scope(scope, is_function=False))

    def _visit_for_in_statement(self, node: TSNode, scope: _Scope) -> None:
        inner = _Scope(scope, is_function=False)
        left = node.child_by_field_name("left")
        keyword = next(
            (child.type for child in node.children if child.type in ("var", "let", "const")),
            None,
        )
        for child in node.children:
            if keyword is not None and left is not None and child.id == left.id:
                target = inner.function_scope() if keyword == "var" else inner
                context = _BindContext(target, inner, owner=(child, NodeKind.PINNED_BINDING))
                self._bind_pattern(child, context, child)
            else:
                self._visit(child, inner)

    def _visit_catch_clause(self, node: TSNode, scope: _Scope) -> None:
        inner = _Scope(scope, is_function=False)
        parameter = node.child_by_field_name("parameter")
        for child in node.children:
            if parameter is not None and child.id == parameter.id:
                context = _BindContext(inner, inner, owner=(child, NodeKind.PINNED_BINDING))
                self._bind_pattern(child, context, child)
            else:
                self._visit(child, inner)

    def _visit_lexical_declaration(self, node: TSNode, scope: _Scope) -> None:
        target = scope if node.type == "lexical_declaration" else scope.function_scope()
        parent = node.parent
        pinned = parent is not None and parent.type in PINNING_PARENTS
        for child in node.children:
            if child.type == "variable_declarator":
                self._bind_declarator(child, scope, target, pinned)
            else:
                self._visit(child, scope)

    _visit_variable_declaration = _visit_lexical_declaration

    def _bind_declarator(
        self, node: TSNode, scope: _Scope, target: _Scope, pinned: bool
    ) -> None:
        kind = NodeKind.PINNED_BINDING if pinned else NodeKind.VARIABLE_DECLARATOR
        name = node.child_by_field_name("name")
        pattern: Pattern = OpaquePattern("missing")
        for child in node.children:
            if name is not None and child.id == name.id:
                context = _BindContext(target, scope, owner=(node, kind))
                pattern = self._bind_pattern(child, context, child)
            else:
                self._visit(child, scope)
        if pinned:
            return
        declarator_id = self._register(node, kind)
        self.model.patterns[declarator_id] = pattern
        statement_id = self.model.nodes[declarator_id].parent
        if statement_id is not None:
            self.model.declarators.setdefault(statement_id, []).append(declarator_id)

    def _visit_function_declaration(self, node: TSNode, scope: _Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(scope, name, _statement_root(node), NodeKind.OTHER)
        self._visit_function(node, scope)

    _visit_generator_function_declaration = _visit_function_declaration

    def _visit_function(self, node: TSNode, scope: _Scope) -> None:
        inner = _Scope(scope, is_function=True)
        name = node.child_by_field_name("name")
        parameter = node.child_by_field_name("parameter")
        for child in node.children:
            if name is not None and child.id == name.id:
                if child.type == "computed_property_name":
                    # The key expression is evaluated in the enclosing scope.
                    self._visit(child, scope)
                else:
                    # Expression names are local to the function itself.
                    self._bindings.add(child.id)
            elif parameter is not None and child.id == parameter.id:
                self._declare(inner, child, child, NodeKind.PINNED_BINDING)
            elif child.type == "formal_parameters":
                self._bind_parameters(child, inner)
            else:
                self._visit(child, inner)

    _visit_function_expression = _visit_function
    _visit_generator_function = _visit_function
    _visit_arrow_function = _visit_function
    _visit_method_definition = _visit_function

    def _bind_parameters(self, node: TSNode, scope: _Scope) -> None:
        container_id = self._register(node)
        patterns: list[Pattern | None] = []
        for child in node.children:
            if child.type not in ("required_parameter", "optional_parameter"):
                self._visit(child, scope)
                continue
            pattern_node = child.child_by_field_name("pattern")
            if pattern_node is None:
                self._visit(child, scope)
                patterns.append(OpaquePattern(child.type))
                continue
            context = _BindContext(scope, scope)
            pinned = any(c.type in PARAMETER_PROPERTY_MARKERS for c in child.children)
            if pinned:
                context.owner = (child, NodeKind.PINNED_BINDING)
            elif _is_simple_binding(pattern_node):
                context.owner = (child, NodeKind.FORMAL_PARAMETER)
            pattern: Pattern = OpaquePattern(child.type)
            for part in child.children:
                if part.id == pattern_node.id:
                    pattern = self._bind_pattern(part, context, child)
                else:
                    self._visit(part, scope)
            # A parameter property stays, so it holds its position.
            patterns.append(OpaquePattern(child.type) if pinned else pattern)
            if not pinned and context.owner is not None:
                self.model.slots[self._register(child)] = (container_id, len(patterns) - 1)
        self.model.containers[container_id] = patterns

    def _visit_formal_parameters(self, node: TSNode, scope: _Scope) -> None:
        # Parameters of signatures and function types bind nothing at runtime.
        for param in node.named_children:
            pattern = param.child_by_field_name("pattern")
            for child in param.children:
                if pattern is not None and child.id == pattern.id:
                    self._mark_names(child)
                else:
                    self._visit(child, scope)

    def _mark_names(self, node: TSNode) -> None:
        if node.type in LEAF_PATTERNS:
            self._bindings.add(node.id)
        for child in node.children:
            self._mark_names(child)

    def _bind_pattern(self, node: TSNode, context: _BindContext, slot: TSNode) -> Pattern:
        kind = node.type
        if kind in LEAF_PATTERNS:
            return IdentifierPattern(self._declare_leaf(node, context, slot))
        if kind == "object_pattern":
            properties: list[Pattern] = []
            for child in node.named_children:
                if child.type == "pair_pattern":
                    key = child.child_by_field_name("key")
                    value = child.child_by_field_name("value")
                    if key is not None:
                        self._visit(key, context.scope)
                    if value is None:
                        properties.append(OpaquePattern(child.type))
                    else:
                        properties.append(self._bind_pattern(value, context, child))
                elif child.type in (
                    "shorthand_property_identifier_pattern",
                    "object_assignment_pattern",
                    "rest_pattern",
                ):
                    properties.append(self._bind_pattern(child, context, child))
                elif child.type != "comment":
                    self._visit(child, context.scope)
                    properties.append(OpaquePattern(child.type))
            return ObjectPattern(tuple(properties))
        if kind == "array_pattern":
            elements = _array_elements(node)
            patterns = tuple(
                None if element is None else self._bind_pattern(element, context, element)
                for element in elements
            )
            if context.owner is None:
                container_id = self._register(node)
                self.model.containers[container_id] = list(patterns)
                for index, element in enumerate(elements):
                    if element is not None:
                        self.model.slots[self._register(element)] = (container_id, index)
            return ArrayPattern(patterns)
        if kind in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            right = node.child_by_field_name("right")
            if right is not None:
                self._visit(right, context.scope)
            if left is None:
                return OpaquePattern(kind)
            return self._bind_pattern(left, context, slot)
        if kind == "rest_pattern":
            inner = next((c for c in node.named_children if c.type != "comment"), None)
            if inner is None:
                return OpaquePattern(kind)
            return self._bind_pattern(inner, context, slot)
        self._visit(node, context.scope)
        return OpaquePattern(kind)

    def _declare_leaf(self, name_node: TSNode, context: _BindContext, slot: TSNode) -> int:
        if context.owner is not None:
            decl, kind = context.owner
        else:
            decl = slot
            kind = NodeKind.REST_ELEMENT if slot.type == "rest_pattern" else NodeKind.BINDING_IDENTIFIER
        return self._declare(context.target, name_node, decl, kind)

    def _visit_class_declaration(self, node: TSNode, scope: _Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(scope, name, _statement_root(node), NodeKind.OTHER)
        self._generic_visit(node, scope)

    _visit_abstract_class_declaration = _visit_class_declaration
    _visit_interface_declaration = _visit_class_declaration
    _visit_type_alias_declaration = _visit_class_declaration
    _visit_enum_declaration = _visit_class_declaration

    def _visit_import_alias(self, node: TSNode, scope: _Scope) -> None:
        name = next((c for c in node.named_children if c.type == "identifier"), None)
        if name is not None:
            self._declare(scope, name, node, NodeKind.OTHER)
        self._generic_visit(node, scope)

    def _visit_class(self, node: TSNode, scope: _Scope) -> None:
        self._mark_field(node, "name")
        self._generic_visit(node, scope)

    def _visit_function_signature(self, node: TSNode, scope: _Scope) -> None:
        name = node.child_by_field_name("name")
        parent = node.parent
        if name is not None and parent is not None and parent.type in OVERLOAD_PARENTS:
            # Overloads share one symbol with their implementation.
            self._declare(scope, name, node, NodeKind.OTHER)
        else:
            self._mark_field(node, "name")
        self._generic_visit(node, scope)

    def _visit_module(self, node: TSNode, scope: _Scope) -> None:
        self._mark_field(node, "name")
        self._generic_visit(node, scope)

    _visit_internal_module = _visit_module
    _visit_type_parameter = _visit_module
    _visit_index_signature = _visit_module
    _visit_mapped_type_clause = _visit_module

    def _mark_field(self, node: TSNode, field_name: str) -> None:
        child = node.child_by_field_name(field_name)
        if child is not None:
            self._bindings.add(child.id)

    def _visit_import_statement(self, node: TSNode, scope: _Scope) -> None:
        statement_id = self._register(node)
        symbols: list[int] = []
        for clause in node.named_children:
            if clause.type == "import_clause":
                symbols.extend(self._bind_import_clause(clause, scope))
            elif clause.type == "import_require_clause":
                name = next((c for c in clause.named_children if c.type == "identifier"), None)
                if name is not None:
                    symbols.append(
                        self._declare(scope, name, clause, NodeKind.IMPORT_DEFAULT_SPECIFIER)
                    )
        if symbols:
            self.model.specifiers[statement_id] = symbols

    def _bind_import_clause(self, clause: TSNode, scope: _Scope) -> list[int]:
        symbols: list[int] = []
        for child in clause.named_children:
            if child.type == "identifier":
                symbols.append(
                    self._declare(scope, child, child, NodeKind.IMPORT_DEFAULT_SPECIFIER)
                )
            elif child.type == "namespace_import":
                name = next((c for c in child.named_children if c.type == "identifier"), None)
                if name is not None:
                    symbols.append(
                        self._declare(scope, name, child, NodeKind.IMPORT_NAMESPACE_SPECIFIER)
                    )
            elif child.type == "named_imports":
                for specifier in child.named_children:
                    if specifier.type != "import_specifier":
                        continue
                    name = specifier.child_by_field_name("name")
                    alias = specifier.child_by_field_name("alias")
                    local = alias if alias is not None else name
                    if local is None:
                        continue
                    if alias is not None and name is not None:
                        self._bindings.add(name.id)
                    symbols.append(
                        self._declare(scope, local, specifier, NodeKind.IMPORT_SPECIFIER)
                    )
        return symbols

    def _visit_export_statement(self, node: TSNode, scope: _Scope) -> None:
        reexport = node.child_by_field_name("source") is not None
        for child in node.named_children:
            if child.type == "namespace_export":
                self._mark_names(child)
            elif child.type == "export_clause":
                for specifier in child.named_children:
                    if specifier.type != "export_specifier":
                        continue
                    self._mark_field(specifier, "alias")
                    if reexport:
                        self._mark_field(specifier, "name")
        self._generic_visit(node, scope)


def _structural_kind(node: TSNode) -> NodeKind:
    if node.type in ("lexical_declaration", "variable_declaration"):
        return NodeKind.VARIABLE_DECLARATION
    if node.type == "import_statement":
        return NodeKind.IMPORT_DECLARATION
    if node.type == "export_statement":
        return _export_kind(node)
    return NodeKind.OTHER


def _export_kind(node: TSNode) -> NodeKind:
    tokens = {child.type for child in node.children}
    if "default" in tokens:
        return NodeKind.EXPORT_DEFAULT_DECLARATION
    if (
        node.child_by_field_name("declaration") is None
        and node.child_by_field_name("source") is not None
        and ("*" in tokens or "namespace_export" in tokens)
    ):
        return NodeKind.EXPORT_ALL_DECLARATION
    return NodeKind.EXPORT_NAMED_DECLARATION


def _statement_root(node: TSNode) -> TSNode:
    parent = node.parent
    if parent is not None and parent.type == "ambient_declaration":
        return parent
    return node


def _is_simple_binding(node: TSNode) -> bool:
    if node.type in LEAF_PATTERNS:
        return True
    if node.type == "rest_pattern":
        return any(child.type == "identifier" for child in node.named_children)
    return False


def _array_elements(node: TSNode) -> list[TSNode | None]:
    elements: list[TSNode | None] = []
    current: TSNode | None = None
    for child in node.children:
        if child.type == ",":
            elements.append(current)
            current = None
        elif child.is_named and child.type != "comment":
            current = child
    if current is not None:
        elements.append(current)
    return elements
