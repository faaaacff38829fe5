"""
Section spans for record bodies.

A body is split once into ordered spans: the preamble before the first
``## `` heading, then one span per heading. Recognized headings carry a
section name; anything else stays opaque. Edits replace a single span's lines
and the body is re-concatenated, so untouched spans keep their exact bytes.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from backlog_store.core.models import ChecklistItem

SECTION_HEADING_PATTERN = re.compile(r"^##\s+(.+?)\s*#*\s*$")
TITLE_HEADING_PATTERN = re.compile(r"^#\s+(?:[A-Za-z]+-\d+(?:\.\d+)*\s*-\s*)?(.+?)\s*$")
CHECKLIST_PATTERN = re.compile(r"^-\s*\[([ xX])\]\s*(?:#(\d+)\s+)?(.+)$")
CHECKBOX_LINE_PATTERN = re.compile(r"^(\s*-\s*\[)([ xX])(\]\s*#(\d+)\s+.*)$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


@dataclass
class Span:
    """One body region: heading line plus content lines (raw, with newlines)."""

    name: Optional[str]
    heading: str = ""
    lines: List[str] = field(default_factory=list)

    @property
    def raw(self) -> str:
        return self.heading + "".join(self.lines)

    @property
    def is_opaque(self) -> bool:
        return self.name is None


@dataclass(frozen=True)
class SectionDef:
    """How a named section is recognized and written."""

    name: str
    heading: str
    aliases: Tuple[str, ...] = ()
    marker: Optional[str] = None
    kind: str = "text"

    @property
    def begin_marker(self) -> str:
        return f"<!-- {self.marker}:BEGIN -->"

    @property
    def end_marker(self) -> str:
        return f"<!-- {self.marker}:END -->"

    def matches(self, title: str) -> bool:
        wanted = title.strip().lower()
        return wanted == self.heading.lower() or wanted in self.aliases


def _split_newline(line: str) -> Tuple[str, str]:
    stripped = line.rstrip("\r\n")
    return stripped, line[len(stripped) :]


def iter_unfenced(lines: Sequence[str]) -> Iterator[Tuple[int, str]]:
    """Yield (index, line) for lines outside fenced code blocks."""
    fence: Optional[str] = None
    for index, line in enumerate(lines):
        match = FENCE_PATTERN.match(line)
        if fence is None:
            if match:
                fence = match.group(1)
                continue
            yield index, line
        elif match and match.group(1) == fence:
            fence = None


def split_spans(body: str, sections: Sequence[SectionDef]) -> List[Span]:
    """Split a body into spans. Headings inside code fences are content."""
    lines = body.splitlines(keepends=True)
    spans = [Span(name=None)]
    fence: Optional[str] = None
    for line in lines:
        match = FENCE_PATTERN.match(line)
        if fence is not None:
            if match and match.group(1) == fence:
                fence = None
            spans[-1].lines.append(line)
            continue
        if match:
            fence = match.group(1)
            spans[-1].lines.append(line)
            continue

        heading = SECTION_HEADING_PATTERN.match(_split_newline(line)[0])
        if heading:
            spec = next((s for s in sections if s.matches(heading.group(1))), None)
            spans.append(Span(name=spec.name if spec else None, heading=line))
        else:
            spans[-1].lines.append(line)
    return spans


def render_spans(spans: Iterable[Span]) -> str:
    return "".join(span.raw for span in spans)


def find_span(spans: Sequence[Span], name: str) -> Optional[Span]:
    for span in spans:
        if span.name == name:
            return span
    return None


def find_title_heading(spans: Sequence[Span]) -> Optional[str]:
    """Return the text of the first level-one heading in the preamble."""
    if not spans:
        return None
    for _, line in iter_unfenced(spans[0].lines):
        match = TITLE_HEADING_PATTERN.match(_split_newline(line)[0].strip())
        if match:
            return match.group(1).strip()
    return None


def _marker_bounds(lines: Sequence[str], spec: SectionDef) -> Optional[Tuple[int, int]]:
    if not spec.marker:
        return None
    begin = None
    for index, line in iter_unfenced(lines):
        text = line.strip()
        if begin is None and text == spec.begin_marker:
            begin = index
        elif begin is not None and text == spec.end_marker:
            return begin, index
    return None


def section_text(span: Span, spec: SectionDef) -> Optional[str]:
    """Semantic text of a section (between markers when they are present)."""
    bounds = _marker_bounds(span.lines, spec)
    if bounds:
        value = "".join(span.lines[bounds[0] + 1 : bounds[1]])
    else:
        stray = {spec.begin_marker, spec.end_marker} if spec.marker else set()
        value = "".join(line for line in span.lines if line.strip() not in stray)
    value = value.strip()
    return value or None


def checklist_items(span: Span, spec: SectionDef) -> List[ChecklistItem]:
    """Parse checklist lines of a section.

    Lines without an explicit ``#N`` receive ids after the highest explicit id,
    in document order.
    """
    bounds = _marker_bounds(span.lines, spec)
    lines = span.lines[bounds[0] + 1 : bounds[1]] if bounds else span.lines
    parsed: List[Tuple[Optional[int], bool, str]] = []
    for _, line in iter_unfenced(lines):
        match = CHECKLIST_PATTERN.match(line.strip())
        if match:
            item_id = int(match.group(2)) if match.group(2) else None
            parsed.append((item_id, match.group(1).lower() == "x", match.group(3).strip()))

    next_id = max((p[0] for p in parsed if p[0] is not None), default=0) + 1
    items = []
    for item_id, checked, text in parsed:
        if item_id is None:
            item_id = next_id
            next_id += 1
        items.append(ChecklistItem(id=item_id, text=text, checked=checked))
    return items


def render_checklist(items: Iterable[ChecklistItem], newline: str = "\n") -> str:
    return "".join(
        f"- [{'x' if item.checked else ' '}] #{item.id} {item.text}{newline}"
        for item in items
    )


def replace_section_content(
    spans: List[Span],
    spec: SectionDef,
    content: str,
    order: Sequence[str],
    newline: str = "\n",
) -> None:
    """Replace the semantic content of one section in place.

    With markers present only the text between them changes. A section without
    markers is rewritten wrapped in markers (when the section uses them). A
    missing section is inserted in canonical order.

    Args:
        spans: Body spans (mutated).
        spec: Section being written.
        content: Rendered content (no surrounding markers), possibly empty.
        order: Canonical section order used for insertion.
        newline: Line ending of the file.
    """
    if content and not content.endswith(newline):
        content += newline

    span = find_span(spans, spec.name)
    if span is not None:
        bounds = _marker_bounds(span.lines, spec)
        if bounds:
            begin, end = bounds
            span.lines[begin + 1 : end] = [content] if content else []
            return
        is_last = spans[-1] is span
        span.lines = _wrapped_lines(spec, content, newline, trailing_blank=not is_last)
        return

    position = len(spans)
    if spec.name in order:
        rank = order.index(spec.name)
        for index, existing in enumerate(spans):
            if existing.name in order and order.index(existing.name) > rank:
                position = index
                break

    is_last = position == len(spans)
    if position > 0:
        _ensure_blank_line_after(spans[position - 1], newline)
    new_span = Span(
        name=spec.name,
        heading=f"## {spec.heading}{newline}",
        lines=_wrapped_lines(spec, content, newline, trailing_blank=not is_last),
    )
    spans.insert(position, new_span)


def _wrapped_lines(
    spec: SectionDef, content: str, newline: str, trailing_blank: bool
) -> List[str]:
    lines = [newline] if spec.kind == "text" else []
    if spec.marker:
        lines.append(spec.begin_marker + newline)
    if content:
        lines.append(content)
    if spec.marker:
        lines.append(spec.end_marker + newline)
    if trailing_blank:
        lines.append(newline)
    return lines


def _ensure_blank_line_after(span: Span, newline: str) -> None:
    raw = span.raw
    if not raw:
        return
    if not raw.endswith(newline):
        span.lines.append(newline)
        raw += newline
    if not raw.endswith(newline * 2):
        span.lines.append(newline)


def toggle_checklist_lines(span: Span, item_id: int) -> int:
    """Flip the checkbox of every line in the span whose id equals item_id.

    Duplicate ids are all toggled. Returns the number of lines flipped.
    """
    toggled = 0
    for index, line in iter_unfenced(span.lines):
        text, ending = _split_newline(line)
        match = CHECKBOX_LINE_PATTERN.match(text)
        if not match or int(match.group(4)) != item_id:
            continue
        mark = " " if match.group(2) in ("x", "X") else "x"
        span.lines[index] = f"{match.group(1)}{mark}{match.group(3)}{ending}"
        toggled += 1
    return toggled
