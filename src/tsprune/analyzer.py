from __future__ import annotations

import logging

from tsprune.models import (
    EXPORT_KINDS,
    IMPORT_SPECIFIER_KINDS,
    ArrayPattern,
    IdentifierPattern,
    NodeKind,
    ObjectPattern,
    Pattern,
    RemovalSpan,
)
from tsprune.semantic import SemanticModel

logger = logging.getLogger(__name__)

# Implicit bindings of function scopes; never candidates for removal.
RESERVED_NAMES = frozenset({"this", "arguments"})
# An import statement with no recorded specifiers counts as entirely unused.
ABSENT_SPECIFIERS_UNUSED = True
# Positional bindings go only when every later position goes too.
TRAILING_POSITIONS_ONLY = True


def classify_unused(model: SemanticModel) -> set[int]:
    unused: set[int] = set()
    for symbol_id in model.symbol_ids():
        if model.symbol_name(symbol_id) in RESERVED_NAMES:
            continue
        if _is_used(model, symbol_id) or _is_exported(model, symbol_id):
            continue
        unused.add(symbol_id)
    return unused


def _is_used(model: SemanticModel, symbol_id: int) -> bool:
    return next(model.resolved_references(symbol_id), None) is not None


def _is_exported(model: SemanticModel, symbol_id: int) -> bool:
    return any(
        model.node(node_id).kind in EXPORT_KINDS
        for node_id in model.ancestors(model.declaration(symbol_id))
    )


def resolve_removals(model: SemanticModel, unused: set[int]) -> set[int]:
    """Map every unused symbol to the node ids whose text must go."""
    nodes: set[int] = set()
    for symbol_id in unused:
        node_id = _resolve_symbol(model, unused, symbol_id)
        if node_id is None:
            logger.debug(
                "Keeping unused %r: its %s cannot be removed on its own",
                model.symbol_name(symbol_id),
                model.node(model.declaration(symbol_id)).type_name,
            )
            continue
        logger.debug(
            "Removing unused %r with its %s",
            model.symbol_name(symbol_id),
            model.node(node_id).type_name,
        )
        nodes.add(node_id)
    return nodes


def _resolve_symbol(model: SemanticModel, unused: set[int], symbol_id: int) -> int | None:
    if model.symbols[symbol_id].redeclarations:
        return None
    decl_id = model.declaration(symbol_id)
    decl = model.node(decl_id)

    if decl.kind == NodeKind.VARIABLE_DECLARATOR:
        parent_id = decl.parent
        if parent_id is not None and _is_entire_declaration_unused(model, unused, parent_id):
            return parent_id
        if not is_pattern_entirely_unused(model.pattern_of(decl_id), unused):
            return None
        return decl_id

    if decl.kind in (
        NodeKind.BINDING_IDENTIFIER,
        NodeKind.REST_ELEMENT,
        NodeKind.FORMAL_PARAMETER,
    ):
        if TRAILING_POSITIONS_ONLY and not _is_trailing(model, unused, decl_id):
            return None
        return decl_id

    if decl.kind in IMPORT_SPECIFIER_KINDS:
        import_id = _enclosing(model, decl_id, NodeKind.IMPORT_DECLARATION)
        if import_id is not None and _is_entire_import_unused(model, unused, import_id):
            return import_id
        return decl_id

    if decl.kind == NodeKind.PINNED_BINDING:
        return None

    return decl_id


def _is_entire_declaration_unused(
    model: SemanticModel, unused: set[int], node_id: int
) -> bool:
    if model.node(node_id).kind != NodeKind.VARIABLE_DECLARATION:
        return False
    declarators = model.declarators_of(node_id) or []
    return all(
        is_pattern_entirely_unused(model.pattern_of(declarator_id), unused)
        for declarator_id in declarators
    )


def _is_entire_import_unused(model: SemanticModel, unused: set[int], node_id: int) -> bool:
    symbols = model.specifier_symbols(node_id)
    if symbols is None:
        return ABSENT_SPECIFIERS_UNUSED
    return all(symbol_id in unused for symbol_id in symbols)


def is_pattern_entirely_unused(pattern: Pattern | None, unused: set[int]) -> bool:
    match pattern:
        case None:
            return True
        case IdentifierPattern(symbol=symbol_id):
            return symbol_id in unused
        case ObjectPattern(properties=properties):
            return all(is_pattern_entirely_unused(p, unused) for p in properties)
        case ArrayPattern(elements=elements):
            return all(is_pattern_entirely_unused(e, unused) for e in elements)
        case _:
            return False


def _is_trailing(model: SemanticModel, unused: set[int], node_id: int) -> bool:
    position = model.position_of(node_id)
    if position is None:
        return True
    container_id, index = position
    later = model.positions(container_id)[index + 1 :]
    # Redeclared symbols are never removed, so they hold their position too.
    removable = {s for s in unused if not model.symbols[s].redeclarations}
    return all(is_pattern_entirely_unused(p, removable) for p in later)


def _enclosing(model: SemanticModel, node_id: int, kind: NodeKind) -> int | None:
    for ancestor_id in model.ancestors(node_id):
        if model.node(ancestor_id).kind == kind:
            return ancestor_id
    return None


def merge_spans(model: SemanticModel, node_ids: set[int]) -> list[RemovalSpan]:
    """Order node spans for deletion from the end of the file backwards.

    Exact duplicates collapse into one span, and a span lying inside an
    earlier kept span is dropped since its text goes with the outer one.
    """
    spans = [
        RemovalSpan(start=model.node(node_id).start, end=model.node(node_id).end, nodes=(node_id,))
        for node_id in node_ids
    ]
    spans.sort(key=lambda span: (span.start, -span.end))
    merged: list[RemovalSpan] = []
    for span in spans:
        if merged:
            last = merged[-1]
            if span == last or (span.start < last.end and span.end <= last.end):
                merged[-1] = RemovalSpan(last.start, last.end, last.nodes + span.nodes)
                continue
        merged.append(span)
    merged.reverse()
    return merged


def find_unused_spans(model: SemanticModel) -> list[RemovalSpan]:
    unused = classify_unused(model)
    for symbol_id in sorted(unused):
        logger.debug("Unused symbol: %s", model.symbol_name(symbol_id))
    return merge_spans(model, resolve_removals(model, unused))
