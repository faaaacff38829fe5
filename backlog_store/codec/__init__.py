"""Codec package: record text <-> model objects with byte-exact round-trip."""

from backlog_store.codec.records import (
    TASK_SECTIONS,
    ParsedRecord,
    parse_decision,
    parse_document,
    parse_record,
    parse_task,
    serialize_decision,
    serialize_task,
    toggle_checklist_item,
)

__all__ = [
    "TASK_SECTIONS",
    "ParsedRecord",
    "parse_decision",
    "parse_document",
    "parse_record",
    "parse_task",
    "serialize_decision",
    "serialize_task",
    "toggle_checklist_item",
]
