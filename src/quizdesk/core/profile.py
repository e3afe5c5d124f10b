"""User profile model and document decoding.

A profile document in the users collection looks like:

    {"fields": {
        "name": {"stringValue": "Ana Ruiz"},
        "email": {"stringValue": "ana@school.org"},
        "role": {"stringValue": "Teacher"},
        "schoolId": {"stringValue": "sch-1"},
        "schoolName": {"stringValue": "North High"},
        "subjects": {"arrayValue": {"values": [{"stringValue": "Math"}]}},
        "assignedGrades": {"arrayValue": {"values": [{"stringValue": "Grade 5"}]}},
        "assignedBooks": {"arrayValue": {"values": [
            {"mapValue": {"fields": {
                "id": {"stringValue": "bk-1"},
                "title": {"stringValue": "Math Essentials"},
                "subject": {"stringValue": "Math"},
                "grade": {"stringValue": "Grade 5"},
                "chapters": {"integerValue": "12"}}}}]}}}}

Decoding never fails: missing or malformed fields fall back to defaults.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from quizdesk.core.identity import AuthAccount
from quizdesk.store.values import (
    Fields,
    Ok,
    and_then,
    integer_value,
    map_list,
    non_empty,
    or_default,
    string_list,
    string_value,
)

DEFAULT_NAME = "User"
DEFAULT_ROLE = "User"


@dataclass(frozen=True)
class AssignedBook:
    """A book assigned to a teacher or content creator."""

    id: str
    title: str = ""
    subject: str = ""
    grade: str = ""
    chapters: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Profile:
    """Normalized user profile.

    subjects and assigned_grades are None unless non-empty;
    assigned_books is always a list.
    """

    name: str
    email: str
    role: str
    school_id: str = ""
    school_name: str = ""
    account_id: str | None = None
    subjects: list[str] | None = None
    assigned_grades: list[str] | None = None
    assigned_books: list[AssignedBook] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the cached session format."""
        data: dict[str, Any] = {
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "schoolId": self.school_id,
            "schoolName": self.school_name,
            "assignedBooks": [b.to_dict() for b in self.assigned_books],
        }
        if self.account_id is not None:
            data["uid"] = self.account_id
        if self.subjects:
            data["subjects"] = list(self.subjects)
        if self.assigned_grades:
            data["assignedGrades"] = list(self.assigned_grades)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Rebuild a profile from its cached session format."""
        books = []
        for raw in data.get("assignedBooks") or []:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            try:
                chapters = int(raw.get("chapters") or 0)
            except (TypeError, ValueError):
                chapters = 0
            books.append(
                AssignedBook(
                    id=str(raw["id"]),
                    title=str(raw.get("title") or ""),
                    subject=str(raw.get("subject") or ""),
                    grade=str(raw.get("grade") or ""),
                    chapters=chapters,
                )
            )

        return cls(
            name=data.get("name") or DEFAULT_NAME,
            email=data.get("email") or "",
            role=data.get("role") or DEFAULT_ROLE,
            school_id=data.get("schoolId") or "",
            school_name=data.get("schoolName") or "",
            account_id=data.get("uid"),
            subjects=list(data["subjects"]) if data.get("subjects") else None,
            assigned_grades=(
                list(data["assignedGrades"]) if data.get("assignedGrades") else None
            ),
            assigned_books=books,
        )


def _text(fields: Fields, name: str, default: str) -> str:
    return or_default(and_then(string_value(fields, name), non_empty(name)), default)


def _optional_list(fields: Fields, name: str) -> list[str] | None:
    items = or_default(string_list(fields, name), [])
    return items or None


def decode_book(fields: Fields) -> AssignedBook | None:
    """Decode one assignedBooks element; None when it has no id."""
    book_id = _text(fields, "id", "")
    if not book_id:
        return None
    return AssignedBook(
        id=book_id,
        title=_text(fields, "title", ""),
        subject=_text(fields, "subject", ""),
        grade=_text(fields, "grade", ""),
        chapters=or_default(integer_value(fields, "chapters"), 0),
    )


def decode_profile(document: dict[str, Any], account: AuthAccount) -> Profile:
    """Decode a users-collection document into a Profile.

    Args:
        document: Raw document with a "fields" map
        account: Signed-in account (supplies email fallback and account id)

    Returns:
        Profile with defaults for anything missing or malformed
    """
    fields = document.get("fields") if isinstance(document, dict) else None
    if not isinstance(fields, dict):
        fields = {}

    books = [
        book
        for book in map(decode_book, or_default(map_list(fields, "assignedBooks"), []))
        if book is not None
    ]

    return Profile(
        name=_text(fields, "name", DEFAULT_NAME),
        email=_text(fields, "email", account.email or ""),
        role=_text(fields, "role", DEFAULT_ROLE),
        school_id=_text(fields, "schoolId", ""),
        school_name=_text(fields, "schoolName", ""),
        account_id=account.account_id,
        subjects=_optional_list(fields, "subjects"),
        assigned_grades=_optional_list(fields, "assignedGrades"),
        assigned_books=books,
    )


def find_user_document(
    documents: Iterable[dict[str, Any]], email: str
) -> dict[str, Any] | None:
    """Find the first document whose email field equals email."""
    if not email:
        return None
    for document in documents:
        fields = document.get("fields") if isinstance(document, dict) else None
        found = string_value(fields, "email")
        if isinstance(found, Ok) and found.value == email:
            return document
    return None
