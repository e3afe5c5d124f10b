"""Pydantic schemas for Web API.

Serialization models for tabs, profiles, dashboards and question creation.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from quizdesk import __version__


# =============================================================================
# PROFILE SCHEMAS
# =============================================================================


class AssignedBookSchema(BaseModel):
    """A book assigned to the user."""

    id: str
    title: str = ""
    subject: str = ""
    grade: str = ""
    chapters: int = 0

    model_config = {"from_attributes": True}


class ProfileSchema(BaseModel):
    """Synchronized user profile."""

    name: str
    email: str
    role: str
    school_id: str = ""
    school_name: str = ""
    account_id: str | None = None
    subjects: list[str] | None = None
    assigned_grades: list[str] | None = None
    assigned_books: list[AssignedBookSchema] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProfileStateResponse(BaseModel):
    """What a consumer reads: user is null when no profile is available."""

    user: ProfileSchema | None = None
    loading: bool = False
    error: str | None = None
    state: str


# =============================================================================
# TAB SCHEMAS
# =============================================================================


class TabCreate(BaseModel):
    """Request body for opening a tab."""

    tab_id: str | None = Field(default=None, min_length=1, max_length=64)
    visible: bool = True
    duplicate: bool = False


class TabResponse(BaseModel):
    """Response for an open window."""

    window_id: str
    tab_id: str
    state: str
    visible: bool
    created_at: str


class TabListResponse(BaseModel):
    tabs: list[TabResponse]
    count: int


class SignInRequest(BaseModel):
    """Account reported by the identity provider."""

    email: str = Field(..., min_length=3, max_length=200)
    account_id: str = Field(..., min_length=1, max_length=128)


class VisibilityRequest(BaseModel):
    visible: bool


# =============================================================================
# DASHBOARD SCHEMAS
# =============================================================================


class AssignedBookItemSchema(BaseModel):
    id: str
    title: str
    subject: str
    grade: str
    chapters: int
    status: str = "Active"

    model_config = {"from_attributes": True}


class DashboardResponse(BaseModel):
    """Dashboard summary for the signed-in user."""

    welcome_name: str
    assigned_book_count: int
    total_chapters: int
    books: list[AssignedBookItemSchema] = Field(default_factory=list)
    role: str | None = None
    subjects: list[str] = Field(default_factory=list)
    assigned_grades: list[str] = Field(default_factory=list)


# =============================================================================
# QUESTION CREATION SCHEMAS
# =============================================================================


class CreationOptionsResponse(BaseModel):
    """Choices available for the current grade/subject selection."""

    grades: list[str]
    subjects: list[str]
    books: list[AssignedBookSchema]
    complete: bool = False
    individual_route: str | None = None
    bulk_route: str | None = None


class BulkQuestionRowSchema(BaseModel):
    row: int
    chapter: str
    difficulty: str
    question_type: str
    question: str
    option_a: str = ""
    option_b: str = ""
    correct_answer: str = ""

    model_config = {"from_attributes": True}


class BulkUploadResponse(BaseModel):
    questions: list[BulkQuestionRowSchema]
    count: int


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = __version__
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
