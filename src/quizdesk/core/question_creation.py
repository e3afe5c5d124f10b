"""Question creation flow.

The author picks grade, subject and book (from the books assigned to
them), then either continues to individual entry or works with a bulk
spreadsheet: download the template, fill it in, upload it back.

Template layout (sheet "Questions"):
    row 1: "# Grade: 5, Subject: Math, Book: Math Essentials"
    row 2: blank
    row 3: chapter | difficulty | questionType | question | optionA | optionB | correctAnswer
    row 4+: one question per row
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from io import BytesIO
from typing import Any
from urllib.parse import urlencode

import structlog
from openpyxl import Workbook, load_workbook

from quizdesk.core.profile import AssignedBook, Profile

logger = structlog.get_logger(__name__)

DEFAULT_SUBJECTS = ["Mathematics", "Science", "English", "History", "Geography"]

TEMPLATE_SHEET = "Questions"
TEMPLATE_COLUMNS = [
    "chapter",
    "difficulty",
    "questionType",
    "question",
    "optionA",
    "optionB",
    "correctAnswer",
]
TEMPLATE_SAMPLES = [
    ["Chapter 1", "MEDIUM", "MCQ", "What is 5 + 3?", "7", "8", "B"],
    ["Chapter 1", "EASY", "TRUE_FALSE", "10 - 4 = 6", "", "", "TRUE"],
]


class TemplateError(Exception):
    """Raised when a template cannot be built for the current selection."""


class BulkUploadError(Exception):
    """Raised when an uploaded workbook is not in template format."""


class CreationMode(str, Enum):
    INDIVIDUAL = "individual"
    BULK = "bulk"


@dataclass(frozen=True)
class CreationForm:
    """Grade / subject / book selection.

    Changing grade or subject clears the chosen book.
    """

    subject: str = ""
    grade: str = ""
    book: str = ""
    mode: CreationMode = CreationMode.INDIVIDUAL

    def with_grade(self, grade: str) -> CreationForm:
        return replace(self, grade=grade, book="")

    def with_subject(self, subject: str) -> CreationForm:
        return replace(self, subject=subject, book="")

    def with_book(self, book: str) -> CreationForm:
        return replace(self, book=book)

    def with_mode(self, mode: CreationMode) -> CreationForm:
        return replace(self, mode=mode)

    @property
    def is_complete(self) -> bool:
        return bool(self.grade and self.subject and self.book)


@dataclass(frozen=True)
class BulkQuestionRow:
    """One question read from an uploaded workbook."""

    row: int
    chapter: str
    difficulty: str
    question_type: str
    question: str
    option_a: str = ""
    option_b: str = ""
    correct_answer: str = ""


def normalize_grade(grade: Any) -> str:
    """'Grade 5' and '5' compare equal."""
    return str(grade).replace("Grade ", "").strip()


def available_grades(profile: Profile | None) -> list[str]:
    """Distinct grades of the assigned books, sorted."""
    if profile is None or not profile.assigned_books:
        return []
    return sorted({book.grade for book in profile.assigned_books})


def available_subjects(profile: Profile | None) -> list[str]:
    """The author's subjects, or the full default list."""
    if profile is not None and profile.subjects:
        return list(profile.subjects)
    return list(DEFAULT_SUBJECTS)


def available_books(profile: Profile | None, form: CreationForm) -> list[AssignedBook]:
    """Assigned books matching the selected grade and subject."""
    if profile is None or not profile.assigned_books:
        return []
    wanted_grade = normalize_grade(form.grade)
    return [
        book
        for book in profile.assigned_books
        if (not form.grade or normalize_grade(book.grade) == wanted_grade)
        and (not form.subject or book.subject == form.subject)
    ]


def route_params(form: CreationForm) -> str:
    return "?" + urlencode({"grade": form.grade, "subject": form.subject, "book": form.book})


def creation_route(base_route: str, form: CreationForm) -> str:
    """Where to continue: <base>/individual?... or <base>/bulk?..."""
    return f"{base_route.rstrip('/')}/{form.mode.value}{route_params(form)}"


# =============================================================================
# BULK TEMPLATE
# =============================================================================


def template_filename(form: CreationForm) -> str:
    return f"OUP_Questions_Template_{form.subject}_{form.grade}.xlsx"


def build_template(form: CreationForm) -> bytes:
    """Build the bulk-upload workbook for the selected grade/subject/book.

    Raises:
        TemplateError: If grade, subject or book is not selected
    """
    if not form.is_complete:
        raise TemplateError("Select grade, subject and book before downloading the template")

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = TEMPLATE_SHEET

    width = len(TEMPLATE_COLUMNS)
    comment = f"# Grade: {form.grade}, Subject: {form.subject}, Book: {form.book}"
    sheet.append([comment] + [""] * (width - 1))
    sheet.append([""] * width)
    sheet.append(TEMPLATE_COLUMNS)
    for sample in TEMPLATE_SAMPLES:
        sheet.append(sample)

    buffer = BytesIO()
    workbook.save(buffer)
    logger.info("template_built", grade=form.grade, subject=form.subject, book=form.book)
    return buffer.getvalue()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_bulk_upload(data: bytes) -> list[BulkQuestionRow]:
    """Read questions from a filled-in template.

    Comment rows (starting with '#') and blank rows are skipped, as are
    rows without question text.

    Raises:
        BulkUploadError: If the file is not a workbook or has no header row
    """
    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise BulkUploadError(f"Not a readable workbook: {e}") from e

    sheet = workbook[TEMPLATE_SHEET] if TEMPLATE_SHEET in workbook.sheetnames else workbook.active

    columns: dict[str, int] | None = None
    rows: list[BulkQuestionRow] = []
    for number, values in enumerate(sheet.iter_rows(values_only=True), start=1):
        cells = [_cell_text(v) for v in values]
        if not any(cells) or cells[0].startswith("#"):
            continue

        if columns is None:
            if cells and cells[0].lower() == "chapter":
                columns = {name: index for index, name in enumerate(cells) if name}
            continue

        def get(name: str) -> str:
            index = columns.get(name)
            if index is None or index >= len(cells):
                return ""
            return cells[index]

        question = get("question")
        if not question:
            continue
        rows.append(
            BulkQuestionRow(
                row=number,
                chapter=get("chapter"),
                difficulty=get("difficulty"),
                question_type=get("questionType"),
                question=question,
                option_a=get("optionA"),
                option_b=get("optionB"),
                correct_answer=get("correctAnswer"),
            )
        )
    workbook.close()

    if columns is None:
        raise BulkUploadError("Header row (chapter, difficulty, questionType, ...) not found")

    logger.info("bulk_upload_parsed", questions=len(rows))
    return rows
