"""Portal dashboard summary built from the synchronized profile."""

from __future__ import annotations

from dataclasses import dataclass, field

from quizdesk.core.profile import Profile


@dataclass(frozen=True)
class AssignedBookItem:
    id: str
    title: str
    subject: str
    grade: str
    chapters: int
    status: str = "Active"


@dataclass(frozen=True)
class Dashboard:
    welcome_name: str
    assigned_book_count: int
    total_chapters: int
    books: list[AssignedBookItem] = field(default_factory=list)
    role: str | None = None
    subjects: list[str] = field(default_factory=list)
    assigned_grades: list[str] = field(default_factory=list)

    @property
    def has_books(self) -> bool:
        return bool(self.books)


def build_dashboard(profile: Profile | None, role_label: str = "Teacher") -> Dashboard:
    """Summarize a profile for the dashboard.

    Without a profile the welcome falls back to role_label and every
    count is zero.
    """
    if profile is None:
        return Dashboard(welcome_name=role_label, assigned_book_count=0, total_chapters=0)

    books = [
        AssignedBookItem(
            id=book.id,
            title=book.title,
            subject=book.subject,
            grade=book.grade,
            chapters=book.chapters,
        )
        for book in profile.assigned_books
    ]
    return Dashboard(
        welcome_name=profile.name or role_label,
        assigned_book_count=len(books),
        total_chapters=sum(book.chapters for book in books),
        books=books,
        role=profile.role,
        subjects=list(profile.subjects or []),
        assigned_grades=list(profile.assigned_grades or []),
    )
