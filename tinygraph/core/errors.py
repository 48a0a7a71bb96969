"""
tinygraph Error Taxonomy

Every failure the store can report carries a deterministic ErrorKind.
Programmer errors (wrong type, undeclared triple, dangling id) raise.
Expected absence (a missing node on lookup) does not: lookups return
None or an empty list instead.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Deterministic error codes for rejected operations."""
    UNKNOWN_TYPE = "UNKNOWN_TYPE"           # node type not declared in the policy
    POLICY_VIOLATION = "POLICY_VIOLATION"   # (from, arc, to) triple not declared
    NODE_NOT_FOUND = "NODE_NOT_FOUND"       # arc endpoint id not present
    ARC_NOT_FOUND = "ARC_NOT_FOUND"
    PROPERTY_NOT_FOUND = "PROPERTY_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"             # malformed text line


class ParseErrorKind(Enum):
    """Why a line of the text format was rejected."""
    MISSING_FIELDS = "MISSING_FIELDS"
    EXTRA_FIELDS = "EXTRA_FIELDS"
    NON_INTEGER_ID = "NON_INTEGER_ID"
    INCOMPLETE_PROPERTY = "INCOMPLETE_PROPERTY"
    OUTSIDE_SECTION = "OUTSIDE_SECTION"


class GraphError(Exception):
    """Base class for every error raised by the store."""
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownType(GraphError):
    kind = ErrorKind.UNKNOWN_TYPE

    def __init__(self, node_type: str):
        super().__init__(f"Unknown node type '{node_type}'")
        self.node_type = node_type


class PolicyViolation(GraphError):
    kind = ErrorKind.POLICY_VIOLATION

    def __init__(self, from_type: str, arc_type: str, to_type: str):
        super().__init__(
            f"Arc not valid: {from_type} -[{arc_type}]-> {to_type}")
        self.from_type = from_type
        self.arc_type = arc_type
        self.to_type = to_type


class NodeNotFound(GraphError):
    kind = ErrorKind.NODE_NOT_FOUND

    def __init__(self, node_id: int):
        super().__init__(f"Node '{node_id}' does not exist")
        self.node_id = node_id


class ArcNotFound(GraphError):
    kind = ErrorKind.ARC_NOT_FOUND

    def __init__(self, key: tuple):
        super().__init__(f"Arc {tuple(key)!r} does not exist")
        self.key = key


class PropertyNotFound(GraphError):
    kind = ErrorKind.PROPERTY_NOT_FOUND

    def __init__(self, name: str, owner: str):
        super().__init__(f"Property '{name}' not found in {owner}")
        self.name = name
        self.owner = owner


class ParseError(GraphError):
    """A line of the text format could not be parsed.

    Carries the offending line (and its number, when known) so that the
    loader can report exactly what it skipped.
    """
    kind = ErrorKind.PARSE_ERROR

    def __init__(self, reason: ParseErrorKind, detail: str, line: str,
                 line_no: Optional[int] = None):
        where = f"line {line_no}: " if line_no is not None else ""
        super().__init__(f"{where}{detail}: {line!r}")
        self.reason = reason
        self.detail = detail
        self.line = line
        self.line_no = line_no
