"""
Declaration Graph & Inheritance Resolver.

A source tree is parsed into DeclarationNodes (one per type or typealias
declaration). The graph answers one question: does a declaration descend,
directly or through other declarations, from a named base type?

Matching rules for a declared supertype against a target base name:

    target "Widget"        matches "Widget", "UI.Widget", "A.B.Widget"
    target "Request<*>"    matches "Request<DTO>", "Net.Request<T>"
                           but never a bare "Request"

Typealiases take part as hops: `typealias Theme = Stylable` makes anything
declared as `Theme` inherit from `Stylable`. An alias is never itself a
result of find_inheriting().
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

WILDCARD_SUFFIX = "<*>"


@dataclass(frozen=True)
class DeclarationNode:
    """
    One parsed declaration.

    name: simple name (e.g. "AddToCartEvent")
    full_name: dotted name including enclosing types (e.g. "Analytics.AddToCartEvent")
    inherited_types: supertypes as written in source, generics included;
        for an alias, the single aliased type text
    """

    name: str
    full_name: str
    file_path: str
    inherited_types: Tuple[str, ...] = ()
    is_alias: bool = False

    def __post_init__(self):
        object.__setattr__(self, "inherited_types", tuple(self.inherited_types))


def strip_generic(type_name: str) -> str:
    """'JsonAsyncRequest<DTO>' -> 'JsonAsyncRequest'"""
    bracket = type_name.find("<")
    if bracket == -1:
        return type_name.strip()
    return type_name[:bracket].strip()


def matches_base_type(inherited_type: str, target: str) -> bool:
    """Check one declared supertype against a target base name."""
    if target.endswith(WILDCARD_SUFFIX):
        base = target[: -len(WILDCARD_SUFFIX)]
        return inherited_type.startswith(f"{base}<") or f".{base}<" in inherited_type

    return inherited_type == target or inherited_type.endswith(f".{target}")


class DeclarationGraph:
    """
    All declarations of one tree snapshot plus a simple-name index.

    The index keeps the first node registered under a simple name; later
    declarations sharing that name stay in the graph but are never reached
    through lookups.
    """

    def __init__(self, nodes: Iterable[DeclarationNode] = ()):
        self.nodes: List[DeclarationNode] = []
        self._index: Dict[str, DeclarationNode] = {}
        self.duplicate_names: List[str] = []
        self.extend(nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[DeclarationNode]:
        return iter(self.nodes)

    def add(self, node: DeclarationNode):
        self.nodes.append(node)
        if node.name in self._index:
            self.duplicate_names.append(node.name)
        else:
            self._index[node.name] = node

    def extend(self, nodes: Iterable[DeclarationNode]):
        for node in nodes:
            self.add(node)

    def lookup(self, name: str) -> Optional[DeclarationNode]:
        return self._index.get(name)

    @classmethod
    def build(cls, root: str, parser, extension: str = "swift") -> "DeclarationGraph":
        """
        Parse every source file under root (hidden entries skipped).

        parser must provide parse(file_path) -> list of DeclarationNode.
        """
        graph = cls()
        files = 0
        for file_path in iter_source_files(root, extension):
            graph.extend(parser.parse(file_path))
            files += 1

        logger.debug(f"Parsed {files} .{extension} files into {len(graph)} declarations")
        if graph.duplicate_names:
            # First registration wins; see DESIGN.md open questions
            logger.debug(
                f"{len(graph.duplicate_names)} duplicate simple names, "
                f"first declaration used: {sorted(set(graph.duplicate_names))[:10]}"
            )
        return graph

    def is_inherited(self, node: DeclarationNode, target: str) -> bool:
        """
        True when node descends from target directly or transitively.

        Traversal is an explicit worklist with a visited set keyed by node
        identity, so cyclic declarations (A: B, B: A) terminate.
        """
        visited = {id(node)}
        pending = [node]

        while pending:
            current = pending.pop()

            if any(matches_base_type(t, target) for t in current.inherited_types):
                return True

            for inherited_type in current.inherited_types:
                parent = self.lookup(strip_generic(inherited_type))
                if parent is None or id(parent) in visited:
                    continue
                visited.add(id(parent))
                pending.append(parent)

        return False

    def find_inheriting(self, target: str) -> List[DeclarationNode]:
        """All non-alias declarations inheriting from target, sorted by name."""
        found = [
            node
            for node in self.nodes
            if not node.is_alias and self.is_inherited(node, target)
        ]
        return sorted(found, key=lambda n: (n.name, n.full_name, n.file_path))


def is_inherited(
    node: DeclarationNode,
    target: str,
    all_nodes: Union[DeclarationGraph, Iterable[DeclarationNode]],
) -> bool:
    """Inheritance query against a graph or a plain collection of nodes."""
    graph = all_nodes if isinstance(all_nodes, DeclarationGraph) else DeclarationGraph(all_nodes)
    return graph.is_inherited(node, target)


def iter_source_files(root: str, extension: str) -> Iterator[str]:
    """Yield files with the given extension under root in a stable order."""
    suffix = f".{extension}"
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for filename in sorted(filenames):
            if not filename.startswith(".") and filename.endswith(suffix):
                yield os.path.join(dirpath, filename)
