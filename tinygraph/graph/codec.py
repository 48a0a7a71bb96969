"""
tinygraph Text Codec

Line-oriented, tab-delimited format for a whole store:

    Policy
    fromType<TAB>arcType<TAB>toType
    nodeType<TAB>                       (type with no constraint)
    <TAB>arcType<TAB>                   (arc type with no constraint)

    Nodes
    type<TAB>id[<TAB>name<TAB>value]*

    Relations
    fromId<TAB>arcType<TAB>toId[<TAB>name<TAB>value]*

Sections appear in that order. Blank lines and lines whose first
non-blank character is '#' are ignored anywhere. Fields are escaped
(backslash, tab, newline, carriage return, leading '#') so any string
survives a save/load round trip.

Everything here is a pure function of its arguments. Parsers raise
ParseError naming the offending line; they never log or swallow.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, TextIO

from tinygraph.core.errors import ParseError, ParseErrorKind


SECTION_POLICY = "Policy"
SECTION_NODES = "Nodes"
SECTION_RELATIONS = "Relations"
SECTIONS = (SECTION_POLICY, SECTION_NODES, SECTION_RELATIONS)

SEP = "\t"
COMMENT = "#"

_ESCAPES = {"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "r": "\r", "#": "#"}


# ============================================================
# Records
# ============================================================

@dataclass
class NodeRecord:
    """A parsed node line."""
    node_type: str
    node_id: int
    properties: dict[str, str] = field(default_factory=dict)


@dataclass
class ArcRecord:
    """A parsed arc line."""
    from_id: int
    arc_type: str
    to_id: int
    properties: dict[str, str] = field(default_factory=dict)


@dataclass
class PolicyRecord:
    """A parsed Policy line: one constraint or one bare type declaration."""
    node_type: Optional[str] = None
    arc_type: Optional[str] = None
    constraint: Optional[tuple[str, str, str]] = None


@dataclass
class SectionLine:
    """A content line together with the section it appeared in."""
    section: Optional[str]
    line_no: int
    text: str


# ============================================================
# Fields
# ============================================================

def escape_field(value: str) -> str:
    out = "".join(_ESCAPES.get(ch, ch) for ch in value)
    if out.startswith(COMMENT):
        out = "\\" + out
    return out


def unescape_field(value: str) -> str:
    """Inverse of escape_field. Unknown escapes are kept verbatim."""
    if "\\" not in value:
        return value
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _UNESCAPES:
            out.append(_UNESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def split_fields(line: str) -> list[str]:
    """Split one line on tabs and unescape each field."""
    return [unescape_field(f) for f in line.rstrip("\r\n").split(SEP)]


def join_fields(fields: Iterable[str]) -> str:
    return SEP.join(escape_field(f) for f in fields)


# ============================================================
# Parsing
# ============================================================

def parse_id(text: str, line: str, line_no: Optional[int] = None) -> int:
    """Parse a node id: a non-empty run of decimal digits."""
    s = text.strip()
    if not (s.isascii() and s.isdigit()):
        raise ParseError(ParseErrorKind.NON_INTEGER_ID,
                         f"id '{s}' is not an integer", line, line_no)
    return int(s)


def _parse_name(text: str, what: str, line: str,
                line_no: Optional[int]) -> str:
    name = text.strip()
    if not name:
        raise ParseError(ParseErrorKind.MISSING_FIELDS,
                         f"empty {what}", line, line_no)
    return name


def parse_properties(fields: list[str], line: str,
                     line_no: Optional[int] = None) -> dict[str, str]:
    """Turn trailing name/value fields into a dict (last write wins)."""
    if len(fields) % 2:
        raise ParseError(ParseErrorKind.INCOMPLETE_PROPERTY,
                         f"property '{fields[-1]}' has no value", line, line_no)
    props = {}
    for i in range(0, len(fields), 2):
        name = fields[i]
        if not name:
            raise ParseError(ParseErrorKind.INCOMPLETE_PROPERTY,
                             "empty property name", line, line_no)
        props[name] = fields[i + 1]
    return props


def parse_constraint(line: str,
                     line_no: Optional[int] = None) -> tuple[str, str, str]:
    fields = split_fields(line)
    if len(fields) < 3:
        raise ParseError(ParseErrorKind.MISSING_FIELDS,
                         "constraint needs fromType, arcType and toType",
                         line, line_no)
    if len(fields) > 3:
        raise ParseError(ParseErrorKind.EXTRA_FIELDS,
                         "constraint has more than three fields", line, line_no)
    from_type = _parse_name(fields[0], "from type", line, line_no)
    arc_type = _parse_name(fields[1], "arc type", line, line_no)
    to_type = _parse_name(fields[2], "to type", line, line_no)
    return from_type, arc_type, to_type


def parse_policy_line(line: str,
                      line_no: Optional[int] = None) -> PolicyRecord:
    """Parse a Policy section line.

    `type<TAB>` declares a node type and `<TAB>arcType<TAB>` an arc type;
    anything else must be a full constraint.
    """
    fields = split_fields(line)
    if len(fields) == 2 and not fields[1].strip():
        return PolicyRecord(
            node_type=_parse_name(fields[0], "node type", line, line_no))
    if len(fields) == 3 and not fields[0].strip() and not fields[2].strip():
        return PolicyRecord(
            arc_type=_parse_name(fields[1], "arc type", line, line_no))
    return PolicyRecord(constraint=parse_constraint(line, line_no))


def parse_node_line(line: str, line_no: Optional[int] = None) -> NodeRecord:
    fields = split_fields(line)
    if len(fields) < 2:
        raise ParseError(ParseErrorKind.MISSING_FIELDS,
                         "node needs a type and an id", line, line_no)
    node_type = _parse_name(fields[0], "node type", line, line_no)
    node_id = parse_id(fields[1], line, line_no)
    props = parse_properties(fields[2:], line, line_no)
    return NodeRecord(node_type=node_type, node_id=node_id, properties=props)


def parse_arc_line(line: str, line_no: Optional[int] = None) -> ArcRecord:
    fields = split_fields(line)
    if len(fields) < 3:
        raise ParseError(ParseErrorKind.MISSING_FIELDS,
                         "arc needs fromId, arcType and toId", line, line_no)
    from_id = parse_id(fields[0], line, line_no)
    arc_type = _parse_name(fields[1], "arc type", line, line_no)
    to_id = parse_id(fields[2], line, line_no)
    props = parse_properties(fields[3:], line, line_no)
    return ArcRecord(from_id=from_id, arc_type=arc_type, to_id=to_id,
                     properties=props)


def iter_sections(lines: Iterable[str]) -> Iterator[SectionLine]:
    """Yield content lines tagged with their section.

    Header lines switch the current section and are not yielded; a line
    holding a tab is never a header. Lines before the first header carry
    section None.
    """
    section = None
    for line_no, raw in enumerate(lines, start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith(COMMENT):
            continue
        if SEP not in raw and stripped in SECTIONS:
            section = stripped
            continue
        yield SectionLine(section=section, line_no=line_no,
                          text=raw.rstrip("\r\n"))


# ============================================================
# Formatting
# ============================================================

def _property_fields(properties: Mapping[str, str]) -> list[str]:
    fields = []
    for name in sorted(properties):
        fields.append(name)
        fields.append(properties[name])
    return fields


def format_constraint(from_type: str, arc_type: str, to_type: str) -> str:
    return join_fields([from_type, arc_type, to_type])


def format_node_line(node_type: str, node_id: int,
                     properties: Mapping[str, str]) -> str:
    return join_fields([node_type, str(node_id)] + _property_fields(properties))


def format_arc_line(from_id: int, arc_type: str, to_id: int,
                    properties: Mapping[str, str]) -> str:
    return join_fields([str(from_id), arc_type, str(to_id)]
                       + _property_fields(properties))


def format_node_type(node_type: str) -> str:
    return join_fields([node_type, ""])


def format_arc_type(arc_type: str) -> str:
    return join_fields(["", arc_type, ""])


def write_section(sink: TextIO, header: str, lines: Iterable[str],
                  leading_blank: bool = True) -> None:
    """Write a section header followed by its lines."""
    if leading_blank:
        sink.write("\n")
    sink.write(header + "\n")
    for line in lines:
        sink.write(line + "\n")
