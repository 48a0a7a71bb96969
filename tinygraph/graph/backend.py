"""
tinygraph In-Memory Property Graph Store

Nodes have: integer id, type, properties, incoming/outgoing arc keys
Arcs have: key (from_id, arc_type, to_id), properties

Every mutation is checked against the store's Policy. Nodes are
queryable by type and by property name/value through secondary
indices kept in lockstep with the node table.

Back-references are ArcKey handles into the store's arc table, never
live object links. Not safe for concurrent mutation.
"""

import copy
import logging
import os
import sys
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, NamedTuple, Optional, TextIO, Union

from tinygraph.core.config import StoreSettings, get_settings
from tinygraph.core.errors import (
    ArcNotFound, ErrorKind, GraphError, NodeNotFound, ParseError,
    ParseErrorKind, PolicyViolation, PropertyNotFound, UnknownType,
)
from tinygraph.graph import codec
from tinygraph.graph.policy import Policy

logger = logging.getLogger("tinygraph.store")

_MISSING = object()


class ArcKey(NamedTuple):
    """Composite identity of an arc."""
    from_id: int
    arc_type: str
    to_id: int


def _property_name(name) -> str:
    name = str(name)
    if not name:
        raise ValueError("property name must be non-empty")
    return name


def _clean_properties(properties: Optional[Mapping]) -> dict[str, str]:
    if not properties:
        return {}
    return {_property_name(k): str(v) for k, v in properties.items()}


class _Entity:
    """Property access shared by nodes and arcs."""

    def __init__(self, properties: Optional[Mapping] = None):
        self._properties: dict[str, str] = _clean_properties(properties)

    @property
    def properties(self) -> Mapping[str, str]:
        return MappingProxyType(self._properties)

    def property(self, name: str) -> str:
        """Value of a property; raises PropertyNotFound if absent."""
        try:
            return self._properties[name]
        except KeyError:
            raise PropertyNotFound(name, self._describe()) from None

    def get(self, name: str, default=None) -> Optional[str]:
        return self._properties.get(name, default)

    def has_prop(self, name: str, value=_MISSING) -> bool:
        if name not in self._properties:
            return False
        return value is _MISSING or self._properties[name] == value

    def _describe(self) -> str:
        raise NotImplementedError


class Node(_Entity):
    """A typed node. Identity and type never change after creation."""

    def __init__(self, node_id: int, node_type: str,
                 properties: Optional[Mapping] = None):
        super().__init__(properties)
        self._id = node_id
        self._type = node_type
        self._incoming: set[ArcKey] = set()
        self._outgoing: set[ArcKey] = set()

    @property
    def id(self) -> int:
        return self._id

    @property
    def node_type(self) -> str:
        return self._type

    @property
    def incoming(self) -> frozenset[ArcKey]:
        return frozenset(self._incoming)

    @property
    def outgoing(self) -> frozenset[ArcKey]:
        return frozenset(self._outgoing)

    # --------------------------------------------------------
    # Arc helpers (work on keys alone)
    # --------------------------------------------------------

    def arcs_in_of_type(self, arc_type: str) -> set[ArcKey]:
        return {k for k in self._incoming if k.arc_type == arc_type}

    def arcs_out_of_type(self, arc_type: str) -> set[ArcKey]:
        return {k for k in self._outgoing if k.arc_type == arc_type}

    def neighbor_ids_of_type(self, arc_type: str,
                             direction: str = "both") -> set[int]:
        """Ids of nodes linked to this one by arcs of arc_type.

        direction is "out" (arc targets), "in" (arc sources) or "both".
        """
        ids = set()
        if direction in ("out", "both"):
            ids.update(k.to_id for k in self.arcs_out_of_type(arc_type))
        if direction in ("in", "both"):
            ids.update(k.from_id for k in self.arcs_in_of_type(arc_type))
        return ids

    def has_arc_of_type(self, arc_type: str) -> bool:
        return any(k.arc_type == arc_type
                   for k in self._incoming | self._outgoing)

    def has_arc_of_type_to(self, arc_type: str, node_id: int) -> bool:
        return ArcKey(self._id, arc_type, node_id) in self._outgoing

    def to_line(self) -> str:
        return codec.format_node_line(self._type, self._id, self._properties)

    def _describe(self) -> str:
        return f"node {self._id}"

    def __hash__(self):
        return hash(self._id)

    def __eq__(self, other):
        if not isinstance(other, Node):
            return False
        return self._id == other._id

    def __repr__(self):
        return f"Node(id={self._id}, node_type={self._type!r}, properties={self._properties!r})"


class Arc(_Entity):
    """A typed, directed arc between two existing nodes."""

    def __init__(self, key: ArcKey, properties: Optional[Mapping] = None):
        super().__init__(properties)
        self._key = key

    @property
    def key(self) -> ArcKey:
        return self._key

    @property
    def from_id(self) -> int:
        return self._key.from_id

    @property
    def arc_type(self) -> str:
        return self._key.arc_type

    @property
    def to_id(self) -> int:
        return self._key.to_id

    def to_line(self) -> str:
        return codec.format_arc_line(self.from_id, self.arc_type, self.to_id,
                                     self._properties)

    def _describe(self) -> str:
        return f"arc {self.from_id} -[{self.arc_type}]-> {self.to_id}"

    def __hash__(self):
        return hash(self._key)

    def __eq__(self, other):
        if not isinstance(other, Arc):
            return False
        return self._key == other._key

    def __repr__(self):
        return f"Arc(key={self._key!r}, properties={self._properties!r})"


# ============================================================
# Load results
# ============================================================

@dataclass
class LineRejection:
    """A line the loader skipped, and why."""
    line_no: int
    section: Optional[str]
    kind: ErrorKind
    detail: str
    text: str


@dataclass
class LoadResult:
    """Outcome of a bulk load: the store plus every rejected line."""
    store: "GraphStore"
    rejected: list[LineRejection] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected


class GraphStore:
    """In-memory, policy-checked property graph.

    The store owns every Node and Arc. Lookups of absent ids return None
    or an empty list; mutations that break the policy raise.
    """

    def __init__(self, policy: Optional[Policy] = None,
                 settings: Optional[StoreSettings] = None):
        self._policy = copy.deepcopy(policy) if policy is not None else Policy()
        self.settings = settings or get_settings()
        self._nodes: dict[int, Node] = {}
        self._arcs: dict[ArcKey, Arc] = {}
        # Indexes for fast lookup
        self._nodes_by_type: dict[str, set[int]] = {}
        self._nodes_by_property: dict[str, dict[str, set[int]]] = {}
        self._max_id = -1

    @property
    def policy(self) -> Policy:
        return self._policy

    # --------------------------------------------------------
    # Node operations
    # --------------------------------------------------------

    def new_node(self, node_type: str,
                 properties: Optional[Mapping] = None) -> int:
        """Create a node and return its id.

        The id is the current node count, or one past the largest id if
        that slot was already taken by new_node_with_id.
        """
        if not self._policy.is_node_type(node_type):
            raise UnknownType(node_type)
        node_id = len(self._nodes)
        if node_id in self._nodes:
            node_id = self._max_id + 1
        self._insert_node(node_id, node_type, properties)
        return node_id

    def new_node_with_id(self, node_id: int, node_type: str,
                         properties: Optional[Mapping] = None) -> None:
        """Create a node with a caller-chosen id. An existing id is left untouched."""
        if isinstance(node_id, bool) or not isinstance(node_id, int):
            raise TypeError(f"node id must be an int, got {node_id!r}")
        if node_id < 0:
            raise ValueError(f"node id must be non-negative, got {node_id}")
        if not self._policy.is_node_type(node_type):
            raise UnknownType(node_type)
        if node_id in self._nodes:
            return
        self._insert_node(node_id, node_type, properties)

    def _insert_node(self, node_id: int, node_type: str,
                     properties: Optional[Mapping]) -> None:
        node = Node(node_id, node_type, properties)
        self._nodes[node_id] = node
        self._max_id = max(self._max_id, node_id)
        self._nodes_by_type.setdefault(node_type, set()).add(node_id)
        for name, value in node._properties.items():
            self._index_property(node_id, name, value)

    def set_node_property(self, node_id: int, name: str, value: str) -> None:
        """Add or overwrite a node property, keeping the property index current."""
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        name, value = _property_name(name), str(value)
        old = node._properties.get(name)
        if old == value:
            return
        if old is not None:
            self._unindex_property(node_id, name, old)
        node._properties[name] = value
        self._index_property(node_id, name, value)

    def _index_property(self, node_id: int, name: str, value: str) -> None:
        self._nodes_by_property.setdefault(name, {}).setdefault(value, set()).add(node_id)

    def _unindex_property(self, node_id: int, name: str, value: str) -> None:
        by_value = self._nodes_by_property.get(name, {})
        ids = by_value.get(value)
        if ids is None:
            return
        ids.discard(node_id)
        if not ids:
            del by_value[value]
        if not by_value:
            self._nodes_by_property.pop(name, None)

    def get_node(self, node_id: int) -> Optional[Node]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: int) -> bool:
        return node_id in self._nodes

    # --------------------------------------------------------
    # Arc operations
    # --------------------------------------------------------

    def add_arc(self, from_id: int, arc_type: str, to_id: int,
                properties: Optional[Mapping] = None) -> ArcKey:
        """Link two existing nodes. Re-adding an existing arc is a no-op."""
        node_from = self._nodes.get(from_id)
        if node_from is None:
            raise NodeNotFound(from_id)
        node_to = self._nodes.get(to_id)
        if node_to is None:
            raise NodeNotFound(to_id)
        if not self._policy.is_valid(node_from.node_type, arc_type,
                                     node_to.node_type):
            raise PolicyViolation(node_from.node_type, arc_type,
                                  node_to.node_type)
        key = ArcKey(from_id, arc_type, to_id)
        if key not in self._arcs:
            self._arcs[key] = Arc(key, properties)
            node_from._outgoing.add(key)
            node_to._incoming.add(key)
        return key

    def set_arc_property(self, key: tuple, name: str, value: str) -> None:
        arc = self._arcs.get(ArcKey(*key))
        if arc is None:
            raise ArcNotFound(key)
        arc._properties[_property_name(name)] = str(value)

    def get_arc(self, key: tuple) -> Optional[Arc]:
        return self._arcs.get(ArcKey(*key))

    def get_outgoing(self, node_id: int,
                     arc_type: Optional[str] = None) -> list[Arc]:
        """Outgoing arcs of a node, optionally filtered by type."""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return [self._arcs[k] for k in sorted(node._outgoing)
                if arc_type is None or k.arc_type == arc_type]

    def get_incoming(self, node_id: int,
                     arc_type: Optional[str] = None) -> list[Arc]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return [self._arcs[k] for k in sorted(node._incoming)
                if arc_type is None or k.arc_type == arc_type]

    def get_neighbors(self, node_id: int, arc_type: Optional[str] = None,
                      direction: str = "out") -> list[Node]:
        """Neighbor nodes via arcs of the given type ("out", "in" or "both")."""
        ids = set()
        if direction in ("out", "both"):
            ids.update(a.to_id for a in self.get_outgoing(node_id, arc_type))
        if direction in ("in", "both"):
            ids.update(a.from_id for a in self.get_incoming(node_id, arc_type))
        return self._resolve(ids)

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    def _resolve(self, ids: Iterable[int]) -> list[Node]:
        return [self._nodes[i] for i in sorted(ids)]

    def _ids_with_property(self, name: str,
                           value: Optional[str] = None) -> set[int]:
        by_value = self._nodes_by_property.get(name)
        if not by_value:
            return set()
        if value is not None:
            return set(by_value.get(value, ()))
        ids = set()
        for value_ids in by_value.values():
            ids |= value_ids
        return ids

    def all_nodes(self) -> list[Node]:
        return self._resolve(self._nodes)

    def all_arcs(self) -> list[Arc]:
        return [self._arcs[k] for k in sorted(self._arcs)]

    def get_nodes_of_type(self, node_type: str) -> list[Node]:
        return self._resolve(self._nodes_by_type.get(node_type, ()))

    def get_nodes_with_property(self, name: str,
                                value: Optional[str] = None) -> list[Node]:
        return self._resolve(self._ids_with_property(name, value))

    def get_nodes_of_type_with_property(self, node_type: str, name: str,
                                        value: Optional[str] = None) -> list[Node]:
        ids = self._nodes_by_type.get(node_type, set())
        return self._resolve(ids & self._ids_with_property(name, value))

    def get_nodes_with_value(self, value: str) -> list[Node]:
        """Nodes holding value under any property name."""
        ids = set()
        for by_value in self._nodes_by_property.values():
            ids |= by_value.get(value, set())
        return self._resolve(ids)

    def find_similar_nodes(self, node_id: int) -> list[Node]:
        """Other nodes sharing at least one exact (name, value) property."""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        ids = set()
        for name, value in node._properties.items():
            ids |= self._ids_with_property(name, value)
        ids.discard(node_id)
        return self._resolve(ids)

    # --------------------------------------------------------
    # Stats
    # --------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def arc_count(self) -> int:
        return len(self._arcs)

    # --------------------------------------------------------
    # Persistence
    # --------------------------------------------------------

    def write(self, sink: TextIO) -> None:
        """Policy, then nodes by id, then arcs by key."""
        self._policy.print(sink)
        codec.write_section(sink, codec.SECTION_NODES,
                            (n.to_line() for n in self.all_nodes()))
        codec.write_section(sink, codec.SECTION_RELATIONS,
                            (a.to_line() for a in self.all_arcs()))

    def print(self, sink: Optional[TextIO] = None) -> None:
        self.write(sink if sink is not None else sys.stdout)

    def save(self, path: Union[str, os.PathLike]) -> None:
        with open(path, "w", encoding=self.settings.encoding, newline="\n") as f:
            self.write(f)
        logger.info(f"Saved {self.node_count} nodes, {self.arc_count} arcs to {path}")

    @classmethod
    def from_file(cls, path: Union[str, os.PathLike],
                  settings: Optional[StoreSettings] = None) -> "GraphStore":
        """Build a store from a saved file.

        Bad lines are logged and skipped; an unreadable file raises OSError.
        """
        settings = settings or get_settings()
        with open(path, encoding=settings.encoding) as f:
            lines = f.read().split("\n")
        result = cls.load_lines(lines, settings=settings)
        logger.info(f"Loaded {path}: {result.store.node_count} nodes, "
                    f"{result.store.arc_count} arcs, "
                    f"{len(result.rejected)} lines rejected")
        return result.store

    @classmethod
    def load_text(cls, text: str,
                  settings: Optional[StoreSettings] = None) -> LoadResult:
        return cls.load_lines(text.split("\n"), settings=settings)

    @classmethod
    def load_lines(cls, lines: Iterable[str],
                   settings: Optional[StoreSettings] = None) -> LoadResult:
        """Load a whole document: policy first, then nodes and relations."""
        lines = list(lines)
        store = cls(Policy.read(lines), settings=settings)
        result = LoadResult(store=store)
        for entry in codec.iter_sections(lines):
            if entry.section == codec.SECTION_POLICY:
                continue
            try:
                store._apply_line(entry)
            except GraphError as e:
                logger.warning(f"Line {entry.line_no} ({entry.section}): "
                               f"{e.message} -> ignored")
                result.rejected.append(LineRejection(
                    line_no=entry.line_no, section=entry.section,
                    kind=e.kind, detail=str(e), text=entry.text))
        return result

    def _apply_line(self, entry: codec.SectionLine) -> None:
        if entry.section == codec.SECTION_NODES:
            rec = codec.parse_node_line(entry.text, entry.line_no)
            self.new_node_with_id(rec.node_id, rec.node_type, rec.properties)
        elif entry.section == codec.SECTION_RELATIONS:
            rec = codec.parse_arc_line(entry.text, entry.line_no)
            self.add_arc(rec.from_id, rec.arc_type, rec.to_id, rec.properties)
        else:
            raise ParseError(ParseErrorKind.OUTSIDE_SECTION,
                             "line appears before any section header",
                             entry.text, entry.line_no)
