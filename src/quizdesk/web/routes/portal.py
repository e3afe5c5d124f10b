"""Portal endpoints: dashboard and question creation."""

from urllib.parse import quote

import structlog
from fastapi import APIRouter, HTTPException, Request, Response, status

from quizdesk.core.dashboard import build_dashboard
from quizdesk.core.question_creation import (
    BulkUploadError,
    CreationForm,
    CreationMode,
    TemplateError,
    available_books,
    available_grades,
    available_subjects,
    build_template,
    creation_route,
    parse_bulk_upload,
    template_filename,
)
from quizdesk.web.routes.tabs import require_tab
from quizdesk.web.schemas import (
    AssignedBookItemSchema,
    AssignedBookSchema,
    BulkQuestionRowSchema,
    BulkUploadResponse,
    CreationOptionsResponse,
    DashboardResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tabs/{window_id}", tags=["portal"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _content_disposition(filename: str) -> str:
    """Attachment header that survives non-Latin-1 names and quotes.

    Old clients read the ASCII filename; others prefer filename*.
    """
    fallback = "".join(
        c if " " <= c <= "~" and c not in '"\\' else "_" for c in filename
    )
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(window_id: str, role_label: str = "Teacher") -> DashboardResponse:
    """Dashboard summary for the tab's signed-in user."""
    tab = await require_tab(window_id)
    dashboard = build_dashboard(tab.synchronizer.snapshot.user, role_label)
    return DashboardResponse(
        welcome_name=dashboard.welcome_name,
        assigned_book_count=dashboard.assigned_book_count,
        total_chapters=dashboard.total_chapters,
        books=[AssignedBookItemSchema.model_validate(b) for b in dashboard.books],
        role=dashboard.role,
        subjects=dashboard.subjects,
        assigned_grades=dashboard.assigned_grades,
    )


@router.get("/creation/options", response_model=CreationOptionsResponse)
async def get_creation_options(
    window_id: str,
    grade: str = "",
    subject: str = "",
    book: str = "",
    base_route: str = "/teacher/create-questions",
) -> CreationOptionsResponse:
    """Grades, subjects and books to offer for the current selection."""
    tab = await require_tab(window_id)
    profile = tab.synchronizer.snapshot.user
    form = CreationForm(subject=subject, grade=grade, book=book)

    complete = form.is_complete
    return CreationOptionsResponse(
        grades=available_grades(profile),
        subjects=available_subjects(profile),
        books=[AssignedBookSchema.model_validate(b) for b in available_books(profile, form)],
        complete=complete,
        individual_route=(
            creation_route(base_route, form.with_mode(CreationMode.INDIVIDUAL))
            if complete
            else None
        ),
        bulk_route=(
            creation_route(base_route, form.with_mode(CreationMode.BULK)) if complete else None
        ),
    )


@router.get("/creation/template")
async def download_template(window_id: str, grade: str = "", subject: str = "", book: str = "") -> Response:
    """Download the bulk-upload spreadsheet template."""
    await require_tab(window_id)
    form = CreationForm(subject=subject, grade=grade, book=book)
    try:
        content = build_template(form)
    except TemplateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": _content_disposition(template_filename(form))},
    )


@router.post("/creation/bulk", response_model=BulkUploadResponse)
async def upload_bulk(window_id: str, request: Request) -> BulkUploadResponse:
    """Parse an uploaded template (raw xlsx body) into question rows."""
    await require_tab(window_id)
    data = await request.body()
    try:
        rows = parse_bulk_upload(data)
    except BulkUploadError as e:
        logger.warning("bulk_upload_rejected", window_id=window_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return BulkUploadResponse(
        questions=[BulkQuestionRowSchema.model_validate(r) for r in rows],
        count=len(rows),
    )
