"""
Record codec: raw file text <-> Task / Document / Decision.

Parsing never raises on the read path: a missing or broken header degrades to
a minimal record. Serializing against the original text rewrites only the
header entries and body spans whose semantic value changed.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from backlog_store.codec.body import (
    SectionDef,
    Span,
    checklist_items,
    find_span,
    find_title_heading,
    render_checklist,
    render_spans,
    toggle_checklist_lines,
    replace_section_content,
    section_text,
    split_spans,
)
from backlog_store.codec.frontmatter import (
    Header,
    build_header,
    has_unterminated_header,
    split_header,
)
from backlog_store.constants import DEFAULT_STATUSES, DRAFT_STATUS
from backlog_store.core.exceptions import MalformedRecordError
from backlog_store.core.models import Decision, Document, Task
from backlog_store.core.naming import id_from_filename, normalize_id, title_from_filename

logger = logging.getLogger(__name__)

STATUS_GLYPH_PATTERN = re.compile(r"^[○◒●◑]\s*")
LEGACY_DATE_PATTERN = re.compile(r"^(\d{2})-(\d{2})-(\d{2})$")


@dataclass(frozen=True)
class HeaderField:
    """Mapping of a model attribute onto a header key."""

    attr: str
    key: str
    aliases: Tuple[str, ...] = ()
    kind: str = "str"

    @property
    def names(self) -> Tuple[str, ...]:
        return (self.key,) + self.aliases


TASK_HEADER_FIELDS: List[HeaderField] = [
    HeaderField("id", "id"),
    HeaderField("title", "title"),
    HeaderField("status", "status"),
    HeaderField("priority", "priority"),
    HeaderField("milestone", "milestone"),
    HeaderField("labels", "labels", kind="list"),
    HeaderField("assignee", "assignee", ("assignees",), kind="list"),
    HeaderField("reporter", "reporter"),
    HeaderField("created_date", "created_date", ("created",), kind="date"),
    HeaderField("updated_date", "updated_date", ("updated",), kind="date"),
    HeaderField("dependencies", "dependencies", kind="list"),
    HeaderField("references", "references", kind="list"),
    HeaderField("documentation", "documentation", kind="list"),
    HeaderField("parent_task_id", "parent_task_id", ("parent",)),
    HeaderField("subtasks", "subtasks", kind="optional_list"),
    HeaderField("type", "type"),
    HeaderField("ordinal", "ordinal", kind="number"),
    HeaderField("on_status_change", "onStatusChange", ("on_status_change",)),
]
TASK_KEY_ORDER = [f.key for f in TASK_HEADER_FIELDS]

TASK_SECTIONS: List[SectionDef] = [
    SectionDef("description", "Description", marker="SECTION:DESCRIPTION"),
    SectionDef("acceptance_criteria", "Acceptance Criteria", marker="AC", kind="checklist"),
    SectionDef("definition_of_done", "Definition of Done", marker="DOD", kind="checklist"),
    SectionDef("implementation_plan", "Implementation Plan", ("plan",), marker="SECTION:PLAN"),
    SectionDef(
        "implementation_notes", "Implementation Notes", ("notes",), marker="SECTION:NOTES"
    ),
    SectionDef(
        "final_summary", "Final Summary", ("summary",), marker="SECTION:FINAL_SUMMARY"
    ),
]
TASK_SECTION_ORDER = [s.name for s in TASK_SECTIONS]

DOCUMENT_HEADER_FIELDS: List[HeaderField] = [
    HeaderField("id", "id"),
    HeaderField("title", "title"),
    HeaderField("type", "type"),
    HeaderField("created_date", "created_date", ("created",), kind="date"),
    HeaderField("updated_date", "updated_date", ("updated",), kind="date"),
    HeaderField("tags", "tags", kind="list"),
]

DECISION_HEADER_FIELDS: List[HeaderField] = [
    HeaderField("id", "id"),
    HeaderField("title", "title"),
    HeaderField("date", "date", kind="date"),
    HeaderField("status", "status"),
]
DECISION_KEY_ORDER = [f.key for f in DECISION_HEADER_FIELDS]

DECISION_SECTIONS: List[SectionDef] = [
    SectionDef("context", "Context"),
    SectionDef("decision", "Decision"),
    SectionDef("consequences", "Consequences"),
    SectionDef("alternatives", "Alternatives"),
]
DECISION_SECTION_ORDER = [s.name for s in DECISION_SECTIONS]


@dataclass
class ParsedRecord:
    """Structured view of a record file that can be rendered back verbatim."""

    header: Optional[Header]
    spans: List[Span] = field(default_factory=list)
    newline: str = "\n"

    @property
    def values(self) -> Dict[str, Any]:
        if self.header is None or self.header.error:
            return {}
        return self.header.values

    def render(self) -> str:
        head = self.header.render() if self.header is not None else ""
        return head + render_spans(self.spans)


def parse_record(
    text: str, sections: Sequence[SectionDef], path: str = "", strict: bool = False
) -> ParsedRecord:
    """Split record text into header and body spans.

    Args:
        text: Raw file content.
        sections: Recognized section vocabulary.
        path: File path (for error messages).
        strict: Raise MalformedRecordError instead of degrading.

    Raises:
        MalformedRecordError: In strict mode when the header is broken.
    """
    header, body = split_header(text)
    if strict:
        if header is None and has_unterminated_header(text):
            raise MalformedRecordError(path, "frontmatter is not terminated")
        if header is not None and header.error:
            raise MalformedRecordError(path, header.error)
    elif header is not None and header.error:
        logger.warning(f"Degrading record {path}: {header.error}")

    newline = "\r\n" if "\r\n" in text else "\n"
    return ParsedRecord(header=header, spans=split_spans(body, sections), newline=newline)


# ============================================================================
# Value normalization
# ============================================================================


def normalize_string_list(value: Any) -> List[str]:
    """Normalize a scalar-or-list header value into a list of strings."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    text = str(value).strip()
    return [text] if text else []


def normalize_date(value: Any) -> Optional[str]:
    """Normalize a date value; legacy DD-MM-YY becomes YYYY-MM-DD."""
    if value is None:
        return None
    text = str(value).strip()
    match = LEGACY_DATE_PATTERN.match(text)
    if match:
        day, month, year = match.groups()
        return f"20{year}-{month}-{day}"
    return text or None


def normalize_status(value: Any, statuses: Sequence[str]) -> Optional[str]:
    """Map a status value onto the configured spelling (case-insensitive)."""
    if value is None:
        return None
    clean = STATUS_GLYPH_PATTERN.sub("", str(value)).strip()
    if not clean:
        return None
    for status in list(statuses) + [DRAFT_STATUS]:
        if status.lower() == clean.lower():
            return status
    return clean


def parse_priority(value: Any) -> Optional[str]:
    if value is None:
        return None
    lower = str(value).lower()
    for priority in Task.VALID_PRIORITIES:
        if priority in lower:
            return priority
    return None


def _parse_ordinal(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _decode_fields(values: Dict[str, Any], fields: Sequence[HeaderField]) -> Dict[str, Any]:
    decoded: Dict[str, Any] = {}
    for spec in fields:
        raw = next((values[n] for n in spec.names if values.get(n) is not None), None)
        if spec.kind == "list":
            decoded[spec.attr] = normalize_string_list(raw)
        elif spec.kind == "optional_list":
            decoded[spec.attr] = normalize_string_list(raw) if raw is not None else None
        elif spec.kind == "date":
            decoded[spec.attr] = normalize_date(raw)
        elif spec.kind == "number":
            decoded[spec.attr] = _parse_ordinal(raw)
        else:
            decoded[spec.attr] = str(raw).strip() if raw is not None else None
    return decoded


def _extra_fields(values: Dict[str, Any], fields: Sequence[HeaderField]) -> Dict[str, Any]:
    known = {name for spec in fields for name in spec.names}
    return {k: v for k, v in values.items() if k not in known}


def _fallback_id(path: str) -> str:
    filename = os.path.basename(path) if path else ""
    return id_from_filename(filename) or (filename[:-3] if filename.endswith(".md") else filename)


# ============================================================================
# Tasks
# ============================================================================


def task_from_record(
    record: ParsedRecord, path: str = "", statuses: Sequence[str] = DEFAULT_STATUSES
) -> Task:
    """Build a Task from a parsed record."""
    decoded = _decode_fields(record.values, TASK_HEADER_FIELDS)
    filename = os.path.basename(path) if path else ""

    task_id = normalize_id(decoded["id"]) if decoded["id"] else _fallback_id(path)
    title = (
        decoded["title"]
        or find_title_heading(record.spans)
        or (title_from_filename(filename) if filename else "")
        or task_id
    )
    status = normalize_status(decoded["status"], statuses) or (
        statuses[0] if statuses else DEFAULT_STATUSES[0]
    )

    task = Task(
        id=task_id,
        title=title,
        status=status,
        priority=parse_priority(decoded["priority"]),
        labels=decoded["labels"],
        assignee=decoded["assignee"],
        reporter=decoded["reporter"],
        milestone=decoded["milestone"],
        dependencies=decoded["dependencies"],
        parent_task_id=normalize_id(decoded["parent_task_id"])
        if decoded["parent_task_id"]
        else None,
        subtasks=decoded["subtasks"],
        references=decoded["references"],
        documentation=decoded["documentation"],
        type=decoded["type"],
        ordinal=decoded["ordinal"],
        on_status_change=decoded["on_status_change"],
        created_date=decoded["created_date"],
        updated_date=decoded["updated_date"],
        file_path=path,
        extra_fields=_extra_fields(record.values, TASK_HEADER_FIELDS),
    )

    for spec in TASK_SECTIONS:
        span = find_span(record.spans, spec.name)
        if span is None:
            continue
        if spec.kind == "checklist":
            setattr(task, spec.name, checklist_items(span, spec))
        else:
            setattr(task, spec.name, section_text(span, spec))
    return task


def parse_task(
    text: str,
    path: str = "",
    statuses: Sequence[str] = DEFAULT_STATUSES,
    strict: bool = False,
) -> Task:
    """Parse task file text into a Task.

    Args:
        text: Raw file content.
        path: File path; supplies the id/title fallback.
        statuses: Configured status list (first one is the default).
        strict: Raise MalformedRecordError on a broken header (write path).

    Returns:
        Parsed Task. Never None on the read path.
    """
    record = parse_record(text, TASK_SECTIONS, path=path, strict=strict)
    return task_from_record(record, path=path, statuses=statuses)


def _header_value(task: Task, spec: HeaderField) -> Any:
    value = getattr(task, spec.attr)
    if spec.kind == "list":
        return list(value or [])
    if spec.kind == "optional_list":
        return list(value) if value else None
    if spec.attr == "id" and value:
        return normalize_id(value)
    if value == "":
        return None
    return value


def _with_newline(text: str, newline: str) -> str:
    return text.strip().replace("\r\n", "\n").replace("\n", newline)


def _task_section_content(task: Task, spec: SectionDef, newline: str) -> str:
    value = getattr(task, spec.name)
    if spec.kind == "checklist":
        return render_checklist(value or [], newline)
    return _with_newline(value or "", newline)


def _apply_header_changes(
    header: Header,
    old: Any,
    new: Any,
    fields: Sequence[HeaderField],
    order: Sequence[str],
) -> None:
    for spec in fields:
        old_value = _header_value(old, spec)
        new_value = _header_value(new, spec)
        if old_value == new_value:
            continue
        header.set_field(spec.key, new_value, aliases=spec.aliases, order=order)

    old_extra = getattr(old, "extra_fields", {}) or {}
    new_extra = getattr(new, "extra_fields", {}) or {}
    for key in list(old_extra) + [k for k in new_extra if k not in old_extra]:
        if old_extra.get(key) != new_extra.get(key):
            header.set_field(key, new_extra.get(key), order=order)


def serialize_task(
    task: Task, original: Optional[str] = None, statuses: Sequence[str] = DEFAULT_STATUSES
) -> str:
    """Serialize a Task to file text.

    With ``original`` only the fields and sections that differ from the
    original's parsed values are rewritten; every other byte is preserved.
    Without it a fresh record is emitted in canonical order.

    Raises:
        MalformedRecordError: When the original header cannot be parsed.
    """
    if original is None:
        return _render_new_task(task)

    record = parse_record(original, TASK_SECTIONS, path=task.file_path, strict=True)
    old = task_from_record(record, path=task.file_path, statuses=statuses)

    if record.header is None:
        record.header = build_header([], record.newline)
        if record.spans and record.spans[0].lines and record.spans[0].lines[0].strip():
            record.spans[0].lines.insert(0, record.newline)
        for spec in TASK_HEADER_FIELDS:
            value = _header_value(task, spec)
            if value is not None:
                record.header.set_field(spec.key, value, order=TASK_KEY_ORDER)
    else:
        _apply_header_changes(record.header, old, task, TASK_HEADER_FIELDS, TASK_KEY_ORDER)

    for spec in TASK_SECTIONS:
        if (getattr(old, spec.name) or None) == (getattr(task, spec.name) or None):
            continue
        replace_section_content(
            record.spans,
            spec,
            _task_section_content(task, spec, record.newline),
            TASK_SECTION_ORDER,
            record.newline,
        )
    return record.render()


def _render_new_task(task: Task) -> str:
    fields = []
    for spec in TASK_HEADER_FIELDS:
        value = _header_value(task, spec)
        if value is None:
            continue
        fields.append((spec.key, value))
    for key, value in (task.extra_fields or {}).items():
        if value is not None:
            fields.append((key, value))

    record = ParsedRecord(header=build_header(fields), spans=[Span(name=None)])
    replace_section_content(
        record.spans, TASK_SECTIONS[0], _task_section_content(task, TASK_SECTIONS[0], "\n"),
        TASK_SECTION_ORDER,
    )
    for spec in TASK_SECTIONS[1:]:
        if getattr(task, spec.name):
            replace_section_content(
                record.spans, spec, _task_section_content(task, spec, "\n"), TASK_SECTION_ORDER
            )
    record.spans[0].lines = ["\n"]
    return record.render()


def toggle_checklist_item(
    text: str, list_name: str, item_id: int, path: str = ""
) -> Tuple[str, int]:
    """Flip checklist item(s) with the given id inside one list's section.

    Returns:
        Tuple of (new_text, number_of_lines_toggled).
    """
    record = parse_record(text, TASK_SECTIONS, path=path, strict=True)
    span = find_span(record.spans, list_name)
    if span is None:
        return text, 0
    toggled = toggle_checklist_lines(span, item_id)
    return record.render(), toggled


# ============================================================================
# Documents and decisions
# ============================================================================


def parse_document(text: str, path: str = "") -> Document:
    """Parse a docs/ record; the whole body is its content."""
    header, body = split_header(text)
    values = header.values if header is not None and not header.error else {}
    decoded = _decode_fields(values, DOCUMENT_HEADER_FIELDS)
    filename = os.path.basename(path) if path else ""
    doc_id = normalize_id(decoded["id"]) if decoded["id"] else _fallback_id(path)
    return Document(
        id=doc_id,
        title=decoded["title"] or (title_from_filename(filename) if filename else doc_id),
        type=decoded["type"],
        tags=decoded["tags"],
        created_date=decoded["created_date"],
        updated_date=decoded["updated_date"],
        content=body.strip(),
        file_path=path,
        extra_fields=_extra_fields(values, DOCUMENT_HEADER_FIELDS),
    )


def decision_from_record(record: ParsedRecord, path: str = "") -> Decision:
    decoded = _decode_fields(record.values, DECISION_HEADER_FIELDS)
    filename = os.path.basename(path) if path else ""
    decision_id = normalize_id(decoded["id"]) if decoded["id"] else _fallback_id(path)
    decision = Decision(
        id=decision_id,
        title=decoded["title"]
        or find_title_heading(record.spans)
        or (title_from_filename(filename) if filename else decision_id),
        date=decoded["date"],
        status=decoded["status"],
        file_path=path,
        extra_fields=_extra_fields(record.values, DECISION_HEADER_FIELDS),
    )
    for spec in DECISION_SECTIONS:
        span = find_span(record.spans, spec.name)
        if span is not None:
            setattr(decision, spec.name, section_text(span, spec))
    return decision


def parse_decision(text: str, path: str = "") -> Decision:
    """Parse a decisions/ record with its four named sections."""
    record = parse_record(text, DECISION_SECTIONS, path=path)
    return decision_from_record(record, path)


def serialize_decision(decision: Decision, original: str) -> str:
    """Rewrite only the changed header fields and sections of a decision."""
    record = parse_record(original, DECISION_SECTIONS, path=decision.file_path, strict=True)
    old = decision_from_record(record, decision.file_path)
    if record.header is None:
        raise MalformedRecordError(decision.file_path, "decision has no frontmatter")

    _apply_header_changes(
        record.header, old, decision, DECISION_HEADER_FIELDS, DECISION_KEY_ORDER
    )
    for spec in DECISION_SECTIONS:
        new_value = getattr(decision, spec.name)
        if (getattr(old, spec.name) or None) == (new_value or None):
            continue
        content = _with_newline(new_value or "", record.newline)
        replace_section_content(
            record.spans, spec, content, DECISION_SECTION_ORDER, record.newline
        )
    return record.render()
