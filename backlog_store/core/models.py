"""Core domain model: tasks, checklist items, documents, and decisions."""

from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ChecklistItem:
    """One acceptance criterion or definition-of-done entry."""

    id: int
    text: str
    checked: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        """Create ChecklistItem from dictionary."""
        return cls(
            id=int(data["id"]),
            text=str(data["text"]),
            checked=bool(data.get("checked", False)),
        )


@dataclass
class Task:
    """Single source of truth for the parsed task record schema."""

    id: str
    title: str
    status: str
    priority: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    assignee: List[str] = field(default_factory=list)
    reporter: Optional[str] = None
    milestone: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    parent_task_id: Optional[str] = None
    subtasks: Optional[List[str]] = None
    references: List[str] = field(default_factory=list)
    documentation: List[str] = field(default_factory=list)
    type: Optional[str] = None
    ordinal: Optional[float] = None
    on_status_change: Optional[str] = None
    created_date: Optional[str] = None
    updated_date: Optional[str] = None
    description: Optional[str] = None
    acceptance_criteria: List[ChecklistItem] = field(default_factory=list)
    definition_of_done: List[ChecklistItem] = field(default_factory=list)
    implementation_plan: Optional[str] = None
    implementation_notes: Optional[str] = None
    final_summary: Optional[str] = None

    # Provenance (never serialized into the header)
    file_path: str = ""
    folder: str = "tasks"
    source: str = "local"
    branch: Optional[str] = None
    last_modified: Optional[datetime] = None
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    VALID_PRIORITIES = ("high", "medium", "low")
    VALID_SOURCES = ("local", "local-branch", "remote", "completed")
    CHECKLIST_FIELDS = ("acceptance_criteria", "definition_of_done")

    @property
    def is_read_only(self) -> bool:
        """Only files in the current checkout's active folders may be written."""
        return self.source != "local"

    def checklist(self, list_name: str) -> List[ChecklistItem]:
        """Return the checklist named by its field name."""
        if list_name not in self.CHECKLIST_FIELDS:
            raise ValueError(f"Unknown checklist '{list_name}'")
        return getattr(self, list_name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create Task from dictionary (inverse of to_dict)."""
        data = dict(data)
        for list_name in cls.CHECKLIST_FIELDS:
            if list_name in data:
                data[list_name] = [
                    item if isinstance(item, ChecklistItem) else ChecklistItem.from_dict(item)
                    for item in data[list_name]
                ]
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert Task to dictionary."""
        return asdict(self)


@dataclass
class Document:
    """A free-form project document stored under docs/."""

    id: str
    title: str
    type: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_date: Optional[str] = None
    updated_date: Optional[str] = None
    content: str = ""
    file_path: str = ""
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert Document to dictionary."""
        return asdict(self)


@dataclass
class Decision:
    """An architecture decision record stored under decisions/."""

    id: str
    title: str
    date: Optional[str] = None
    status: Optional[str] = None
    context: Optional[str] = None
    decision: Optional[str] = None
    consequences: Optional[str] = None
    alternatives: Optional[str] = None
    file_path: str = ""
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    SECTION_FIELDS = ("context", "decision", "consequences", "alternatives")

    def to_dict(self) -> Dict[str, Any]:
        """Convert Decision to dictionary."""
        return asdict(self)
