from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, NamedTuple, Union, Any

ROOT_STAGE_ID = "root"

def now() -> datetime:
    """Timestamp used for every created_at/updated_at field."""
    return datetime.now(timezone.utc)

class Status(Enum):
    IN_PROGRESS = "in-progress"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    FROZEN = "frozen"

class StatusColors(NamedTuple):
    fill: str
    border: str
    highlight: str

STATUS_TEXT: Dict[Status, str] = {
    Status.IN_PROGRESS: "In progress",
    Status.WAITING: "Waiting on others",
    Status.COMPLETED: "Completed",
    Status.FAILED: "Failed",
    Status.FROZEN: "Frozen",
}

STATUS_COLORS: Dict[Status, StatusColors] = {
    Status.IN_PROGRESS: StatusColors("#2196F3", "#1976D2", "#42A5F5"),
    Status.WAITING: StatusColors("#FF9800", "#F57C00", "#FFB74D"),
    Status.COMPLETED: StatusColors("#4CAF50", "#388E3C", "#66BB6A"),
    Status.FAILED: StatusColors("#F44336", "#D32F2F", "#EF5350"),
    Status.FROZEN: StatusColors("#9E9E9E", "#616161", "#BDBDBD"),
}

DEFAULT_STATUS_COLORS = StatusColors("#969696", "#616161", "#9E9E9E")

# Statuses written by newer or older versions load as plain strings
StatusValue = Union[Status, str]

def _coerce_status(status: Union[Status, str, None]) -> Optional[Status]:
    if isinstance(status, Status):
        return status
    try:
        return Status(status)
    except ValueError:
        return None

def status_text(status: Union[Status, str]) -> str:
    """Display text for a status; unknown values are shown as-is."""
    known = _coerce_status(status)
    if known is None:
        return str(status)
    return STATUS_TEXT[known]

def status_colors(status: Union[Status, str]) -> StatusColors:
    """Fill/border/highlight colors for a status, with a grey fallback."""
    known = _coerce_status(status)
    if known is None:
        return DEFAULT_STATUS_COLORS
    return STATUS_COLORS[known]

def parse_status(value: str) -> Status:
    """Parse user input (``frozen``, ``in-progress``, ``IN_PROGRESS``) into a Status."""
    normalized = value.strip().lower().replace("_", "-")
    try:
        return Status(normalized)
    except ValueError:
        allowed = ", ".join(s.value for s in Status)
        raise ValueError(f"Unknown status '{value}', expected one of: {allowed}")

class DocumentModel(BaseModel):
    """Base for models stored on disk: camelCase keys, enums stored by value."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_data(self) -> Dict[str, Any]:
        """Plain JSON-compatible dict, ready for json.dump or yaml.safe_dump."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_data(cls, data: Dict[str, Any]):
        return cls.model_validate(data)

class Stage(DocumentModel):
    """A node in a task's stage tree; structure lives in ``children``."""

    id: str = Field(description="Opaque unique identifier, 'root' for the task's root stage")
    label: str = Field(default="", description="Display text of the stage")
    status: StatusValue = Field(default=Status.IN_PROGRESS, union_mode='left_to_right',
                                description="Current status of the stage; unknown values are kept as text")
    children: List[str] = Field(
        default_factory=list,
        description="Child stage IDs in display order"
    )
    created_at: datetime = Field(default_factory=now, description="When the stage was created")
    updated_at: datetime = Field(default_factory=now, description="When the stage or its child list last changed")

    @model_validator(mode='before')
    @classmethod
    def accept_legacy_name(cls, data):
        # Early data files stored the display text under "name"
        if isinstance(data, dict) and 'label' not in data and 'name' in data:
            data = dict(data)
            data['label'] = data.pop('name')
        return data

    @field_validator('children', mode='before')
    @classmethod
    def null_children(cls, v):
        return [] if v is None else v

    def touch(self, when: Optional[datetime] = None):
        self.updated_at = when or now()

class Task(DocumentModel):
    """A top-level unit of work owning one stage tree."""

    id: str = Field(description="Opaque unique identifier of the task")
    name: str = Field(description="Display name, mirrored by the root stage label")
    status: StatusValue = Field(default=Status.IN_PROGRESS, union_mode='left_to_right',
                                description="Task status, independent of stage statuses")
    stages: Dict[str, Stage] = Field(
        default_factory=dict,
        description="Stages keyed by stage ID"
    )
    created_at: datetime = Field(default_factory=now, description="When the task was created")
    updated_at: datetime = Field(default_factory=now, description="When the task or any of its stages last changed")

    @field_validator('stages', mode='before')
    @classmethod
    def null_stages(cls, v):
        return {} if v is None else v

    @property
    def root(self) -> Optional[Stage]:
        return self.stages.get(ROOT_STAGE_ID)

    def touch(self, when: Optional[datetime] = None):
        self.updated_at = when or now()

class TaskSnapshot(DocumentModel):
    """The persisted document: the whole task collection at one point in time."""

    tasks: List[Task] = Field(
        default_factory=list,
        description="All tasks in collection order"
    )
    updated_at: Optional[datetime] = Field(default=None, description="When the snapshot was saved")
