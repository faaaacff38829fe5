"""
Line-preserving YAML frontmatter handling for record files.

The header is kept as an ordered list of raw line groups (one per top-level
key) so that untouched fields are written back byte-for-byte, while values
are decoded with PyYAML.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

HEADER_DELIMITER = "---"
KEY_LINE_PATTERN = re.compile(r"^([A-Za-z_][\w.-]*)\s*:")
DATE_VALUE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}(?: \d{2}:\d{2})?$")

# Alternate spellings accepted for canonical keys
ALIAS_TO_CANONICAL: Dict[str, str] = {
    "created": "created_date",
    "updated": "updated_date",
    "parent": "parent_task_id",
    "assignees": "assignee",
    "on_status_change": "onStatusChange",
}


class HeaderLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamps as the strings they were written as."""


HeaderLoader.add_constructor(
    "tag:yaml.org,2002:timestamp",
    lambda loader, node: loader.construct_scalar(node),
)


@dataclass
class HeaderEntry:
    """Raw lines of one top-level header key (key is None for comments/blanks)."""

    key: Optional[str]
    lines: List[str]

    @property
    def raw(self) -> str:
        return "".join(self.lines)


@dataclass
class Header:
    """Parsed frontmatter block with its original text retained."""

    open_line: str
    close_line: str
    entries: List[HeaderEntry] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def newline(self) -> str:
        return "\r\n" if self.open_line.endswith("\r\n") else "\n"

    def render(self) -> str:
        return self.open_line + "".join(e.raw for e in self.entries) + self.close_line

    def find_all(self, keys: Sequence[str]) -> List[HeaderEntry]:
        """Return every entry whose key is one of keys, in file order."""
        return [entry for entry in self.entries if entry.key in keys]

    def set_field(
        self,
        key: str,
        value: Any,
        aliases: Sequence[str] = (),
        order: Sequence[str] = (),
    ) -> None:
        """Set, replace or remove one field, leaving every other line untouched.

        An existing entry keeps its key spelling (alias). Repeated entries for
        the same field collapse into the first one, so the written value is the
        one read back. A new entry is placed before the first present key that
        comes later in ``order``.

        Args:
            key: Canonical key name.
            value: New value; None removes the field.
            aliases: Other spellings that name the same field.
            order: Canonical key order used to position new entries.
        """
        names = (key,) + tuple(aliases)
        matches = self.find_all(names)
        kept = matches[0] if matches and value is not None else None
        for entry in matches:
            if entry is not kept:
                self.entries.remove(entry)
            self.values.pop(entry.key, None)

        if value is None:
            return

        if kept is not None:
            kept.lines = format_field(kept.key, value, self.newline)
            self.values[kept.key] = value
            return

        new_entry = HeaderEntry(key=key, lines=format_field(key, value, self.newline))
        position = len(self.entries)
        if key in order:
            rank = order.index(key)
            for index, existing in enumerate(self.entries):
                other = _canonical_key(existing.key, order)
                if other is not None and order.index(other) > rank:
                    position = index
                    break
        self.entries.insert(position, new_entry)
        self.values[key] = value


def _canonical_key(key: Optional[str], order: Sequence[str]) -> Optional[str]:
    if key is None:
        return None
    canonical = ALIAS_TO_CANONICAL.get(key, key)
    return canonical if canonical in order else None


def _strip_newline(line: str) -> str:
    return line.rstrip("\r\n")


def is_delimiter(line: str) -> bool:
    return _strip_newline(line).rstrip() == HEADER_DELIMITER


def has_unterminated_header(text: str) -> bool:
    """True when the text opens a header block that never closes."""
    lines = text.splitlines(keepends=True)
    if not lines or not is_delimiter(lines[0]):
        return False
    return not any(is_delimiter(line) for line in lines[1:])


def split_header(text: str) -> Tuple[Optional[Header], str]:
    """Split raw record text into its header and body.

    The header must start on the very first line. Decoding errors are recorded
    on ``Header.error`` instead of raised, so read paths can degrade.

    Args:
        text: Full file content.

    Returns:
        Tuple of (Header or None, body_text). Header render + body equals text.
    """
    lines = text.splitlines(keepends=True)
    if not lines or not is_delimiter(lines[0]):
        return None, text

    close_index = None
    for index in range(1, len(lines)):
        if is_delimiter(lines[index]):
            close_index = index
            break
    if close_index is None:
        return None, text

    header = Header(open_line=lines[0], close_line=lines[close_index])
    header.entries = group_entries(lines[1:close_index])
    body = "".join(lines[close_index + 1 :])

    yaml_text = "".join(lines[1:close_index])
    try:
        data = yaml.load(yaml_text, Loader=HeaderLoader) or {}
    except yaml.YAMLError as e:
        header.error = f"Invalid YAML in frontmatter: {e}"
        return header, body

    if not isinstance(data, dict):
        header.error = "Frontmatter must be a YAML dictionary."
        return header, body

    header.values = {str(k): v for k, v in data.items()}
    return header, body


def group_entries(lines: Iterable[str]) -> List[HeaderEntry]:
    """Group header lines into per-key entries.

    Indented lines and block-list items belong to the preceding key; blank and
    comment lines at column zero stand alone.
    """
    entries: List[HeaderEntry] = []
    current: Optional[HeaderEntry] = None
    for line in lines:
        content = _strip_newline(line)
        match = KEY_LINE_PATTERN.match(content)
        if match:
            current = HeaderEntry(key=match.group(1), lines=[line])
            entries.append(current)
        elif current is not None and content[:1] in (" ", "\t", "-") and content.strip():
            current.lines.append(line)
        else:
            current = None
            entries.append(HeaderEntry(key=None, lines=[line]))
    return entries


def format_value(value: Any) -> str:
    """Render a value for the right-hand side of a header line."""
    if isinstance(value, (list, tuple)):
        return yaml.safe_dump(
            [v for v in value],
            default_flow_style=True,
            allow_unicode=True,
            width=float("inf"),
        ).strip()
    if isinstance(value, str) and DATE_VALUE_PATTERN.match(value):
        return value
    dumped = yaml.safe_dump(
        {"v": value},
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
        sort_keys=False,
    )
    return dumped[len("v: ") :].rstrip("\n")


def format_field(key: str, value: Any, newline: str = "\n") -> List[str]:
    """Render one header field as its raw line(s)."""
    rendered = f"{key}: {format_value(value)}"
    return [line + newline for line in rendered.split("\n")]


def build_header(fields: Iterable[Tuple[str, Any]], newline: str = "\n") -> Header:
    """Build a fresh header from (key, value) pairs in emission order."""
    header = Header(
        open_line=HEADER_DELIMITER + newline, close_line=HEADER_DELIMITER + newline
    )
    for key, value in fields:
        header.entries.append(HeaderEntry(key=key, lines=format_field(key, value, newline)))
        header.values[key] = value
    return header
