"""
tinygraph Policy

The schema a store enforces: which node types exist, which arc types
exist, and which (fromType, arcType, toType) triples may be linked.
Catalogs are small (tens of entries), so validation is a linear scan
over the constraint list rather than an index.
"""

import logging
import os
import sys
from typing import Iterable, NamedTuple, Optional, TextIO, Union

from tinygraph.core.config import StoreSettings, get_settings
from tinygraph.core.errors import ParseError
from tinygraph.graph import codec

logger = logging.getLogger("tinygraph.policy")


class Constraint(NamedTuple):
    """One authorized link: from_type -[arc_type]-> to_type."""
    from_type: str
    arc_type: str
    to_type: str


def check_type_name(name: str, what: str = "type name") -> None:
    """Type names must be non-empty strings without surrounding whitespace."""
    if not isinstance(name, str):
        raise TypeError(f"{what} must be a str, got {name!r}")
    if not name or name != name.strip():
        raise ValueError(f"{what} must be non-empty and unpadded, got {name!r}")


class Policy:
    """Registry of node types, arc types and allowed triples."""

    def __init__(self):
        self.node_types: set[str] = set()
        self.arc_types: set[str] = set()
        self.constraints: list[Constraint] = []

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    def add_node_type(self, name: str) -> None:
        check_type_name(name, "node type")
        self.node_types.add(name)

    def add_arc_type(self, name: str) -> None:
        check_type_name(name, "arc type")
        self.arc_types.add(name)

    def add_constraint(self, from_type: str, arc_type: str, to_type: str) -> None:
        """Declare a triple. Unknown type names are registered on the fly.

        Re-declaring an existing triple is a no-op. Invalid names raise
        before anything is registered.
        """
        check_type_name(from_type, "node type")
        check_type_name(arc_type, "arc type")
        check_type_name(to_type, "node type")
        self.add_arc_type(arc_type)
        self.add_node_type(from_type)
        self.add_node_type(to_type)
        constraint = Constraint(from_type, arc_type, to_type)
        for existing in self.constraints:
            if existing == constraint:
                return
        self.constraints.append(constraint)

    # --------------------------------------------------------
    # Checks
    # --------------------------------------------------------

    def is_node_type(self, name: str) -> bool:
        return name in self.node_types

    def is_arc_type(self, name: str) -> bool:
        return name in self.arc_types

    def is_valid(self, from_type: str, arc_type: str, to_type: str) -> bool:
        for c in self.constraints:
            if (c.from_type == from_type and c.arc_type == arc_type
                    and c.to_type == to_type):
                return True
        return False

    def constraints_from(self, from_type: str) -> list[Constraint]:
        """Constraints starting at from_type, in declaration order."""
        return [c for c in self.constraints if c.from_type == from_type]

    @property
    def constraint_count(self) -> int:
        return len(self.constraints)

    def __eq__(self, other):
        if not isinstance(other, Policy):
            return NotImplemented
        return (self.node_types == other.node_types
                and self.arc_types == other.arc_types
                and set(self.constraints) == set(other.constraints))

    # --------------------------------------------------------
    # Text form
    # --------------------------------------------------------

    def lines(self) -> list[str]:
        """Canonical policy lines.

        Constraints grouped by sorted from_type, in declaration order within
        a group. Types no constraint mentions follow as bare declarations,
        node types first, each group sorted.
        """
        out = []
        for node_type in sorted(self.node_types):
            for c in self.constraints_from(node_type):
                out.append(codec.format_constraint(*c))
        linked_nodes = {c.from_type for c in self.constraints}
        linked_nodes.update(c.to_type for c in self.constraints)
        linked_arcs = {c.arc_type for c in self.constraints}
        for node_type in sorted(self.node_types - linked_nodes):
            out.append(codec.format_node_type(node_type))
        for arc_type in sorted(self.arc_types - linked_arcs):
            out.append(codec.format_arc_type(arc_type))
        return out

    def print(self, sink: Optional[TextIO] = None) -> None:
        sink = sink if sink is not None else sys.stdout
        codec.write_section(sink, codec.SECTION_POLICY, self.lines(),
                            leading_blank=False)

    @classmethod
    def read(cls, source: Union[str, os.PathLike, Iterable[str]],
             settings: Optional[StoreSettings] = None) -> "Policy":
        """Read the Policy section of a store file (or of a sequence of lines).

        Reading stops at the first line of the next section. Malformed
        lines are logged and skipped.
        """
        if isinstance(source, (str, os.PathLike)):
            settings = settings or get_settings()
            with open(source, encoding=settings.encoding) as f:
                return cls._read_lines(f)
        return cls._read_lines(source)

    @classmethod
    def _read_lines(cls, lines: Iterable[str]) -> "Policy":
        policy = cls()
        seen_policy = False
        for entry in codec.iter_sections(lines):
            if entry.section != codec.SECTION_POLICY:
                if seen_policy:
                    break
                continue
            seen_policy = True
            try:
                rec = codec.parse_policy_line(entry.text, entry.line_no)
            except ParseError as e:
                logger.warning(f"Skipping malformed policy line: {e}")
                continue
            if rec.node_type is not None:
                policy.add_node_type(rec.node_type)
            elif rec.arc_type is not None:
                policy.add_arc_type(rec.arc_type)
            else:
                policy.add_constraint(*rec.constraint)
        return policy
