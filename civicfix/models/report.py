"""
Pydantic models for citizen reports.
These models handle validation for report submission, staff actions and
the change events delivered by the persistence backend.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum


class ReportStatus(str, Enum):
    """
    Report lifecycle.

    pending → in-progress → resolved, with in-progress → pending for
    reopening. resolved is terminal.
    """
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class ReportPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReportCategory(str, Enum):
    """Department categories a citizen can file under."""
    PUBLIC_WORKS = "Public Works"
    SANITATION = "Sanitation"
    PARKS_AND_RECREATION = "Parks & Recreation"
    TRANSPORTATION = "Transportation"
    ENVIRONMENTAL = "Environmental"
    EMERGENCY_SERVICES = "Emergency Services"


# Categories whose reports start above medium priority
ELEVATED_PRIORITY: Dict[ReportCategory, ReportPriority] = {
    ReportCategory.EMERGENCY_SERVICES: ReportPriority.HIGH,
}

# Responsible department per category
CATEGORY_DEPARTMENTS: Dict[ReportCategory, str] = {
    ReportCategory.PUBLIC_WORKS: "Department of Public Works",
    ReportCategory.SANITATION: "Sanitation Department",
    ReportCategory.PARKS_AND_RECREATION: "Parks & Recreation Department",
    ReportCategory.TRANSPORTATION: "Transportation Department",
    ReportCategory.ENVIRONMENTAL: "Environmental Services",
    ReportCategory.EMERGENCY_SERVICES: "Emergency Services",
}


def default_priority(category: ReportCategory) -> ReportPriority:
    return ELEVATED_PRIORITY.get(category, ReportPriority.MEDIUM)


class SyncState(str, Enum):
    """Whether the store's copy of a report has been confirmed by the backend."""
    PENDING = "pending-confirmation"
    CONFIRMED = "confirmed"


class ReportDraft(BaseModel):
    """
    Fields a citizen provides when submitting a report.

    Required fields are checked by the report store so that the error
    names every missing field at once.
    """
    title: Optional[str] = Field(None, max_length=200, description="Short summary of the issue")
    description: Optional[str] = Field(None, max_length=2000, description="What the citizen observed")
    category: Optional[str] = Field(None, description="Department category")
    priority: Optional[ReportPriority] = Field(None, description="Explicit priority (defaults from category)")
    location_address: Optional[str] = Field(None, max_length=500)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    original_image_ref: Optional[str] = Field(None, description="Evidence reference for the submitted photo")
    audio_ref: Optional[str] = Field(None, description="Evidence reference for the voice note")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Pothole",
                "description": "Deep pothole in the right lane outside the library.",
                "category": "Public Works",
                "location_address": "12 Main St",
                "location_lat": 40.7128,
                "location_lng": -74.0060,
                "original_image_ref": "gs://civicfix-evidence/reports/photo-1.jpg",
            }
        }
        extra = "ignore"


class Report(BaseModel):
    """
    A submitted municipal-issue record.
    Mirrors the stored document; `id` and timestamps are assigned by the backend.
    """
    id: str = Field(..., description="Backend-assigned document ID")
    title: str
    description: str
    category: ReportCategory
    department: Optional[str] = None
    status: ReportStatus = ReportStatus.PENDING
    priority: ReportPriority = ReportPriority.MEDIUM
    reporter_id: str
    assigned_employee_id: Optional[str] = None
    location_address: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    original_image_ref: Optional[str] = None
    audio_ref: Optional[str] = None
    completion_image_ref: Optional[str] = None
    resolution_notes: Optional[str] = None
    status_history: List[Dict[str, Any]] = Field(default_factory=list, description="Status transition audit trail")
    version: Optional[int] = Field(None, description="Backend-managed monotonic write counter")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        extra = "ignore"

    @property
    def has_coordinates(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None


class StatusUpdateRequest(BaseModel):
    """Staff request to move a report along its lifecycle."""
    status: ReportStatus = Field(..., description="Target status")
    assigned_employee_id: Optional[str] = Field(None, description="Assignee (defaults to the acting staff member)")
    completion_image_ref: Optional[str] = Field(None, description="Required when resolving")
    resolution_notes: Optional[str] = Field(None, max_length=2000)
    note: Optional[str] = Field(None, max_length=500, description="Optional note for the status history")

    def extra_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"status", "note"}, exclude_unset=True)


class AssignRequest(BaseModel):
    employee_id: str = Field(..., min_length=1, description="Employee who takes the report")


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """
    One change notification from the persistence backend.
    insert/update carry the resulting row; delete carries only the key.
    """
    kind: ChangeKind
    key: str
    row: Optional[Dict[str, Any]] = None
