"""Question bank: filtering, statistics and edits over a user's questions."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable

TYPE_LABELS: dict[str, str] = {
    "multiple": "MCQ",
    "truefalse": "True/False",
    "short": "Short",
    "long": "Long",
    "fillblanks": "Fill Blanks",
    "multiple-choice": "MCQ",
    "matching": "Matching",
    "ordering": "Ordering",
    "categorization": "Categorization",
}

DIFFICULTIES = ("Easy", "Medium", "Hard")

FILTER_FIELDS = ("subject", "grade", "book")


@dataclass(frozen=True)
class Question:
    """A question as returned by the question endpoints."""

    id: str
    subject: str = ""
    grade: str = ""
    book: str = ""
    chapter: str = ""
    difficulty: str = ""
    type: str = ""
    question_text: str | None = None
    created_at: str | None = None
    created_by_name: str | None = None
    created_by: str | None = None

    @property
    def type_label(self) -> str:
        return type_label(self.type)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Question:
        """Build from the endpoint's camelCase JSON."""
        return cls(
            id=str(data.get("id", "")),
            subject=str(data.get("subject") or ""),
            grade=str(data.get("grade") or ""),
            book=str(data.get("book") or ""),
            chapter=str(data.get("chapter") or ""),
            difficulty=str(data.get("difficulty") or ""),
            type=str(data.get("type") or ""),
            question_text=data.get("questionText"),
            created_at=data.get("createdAt"),
            created_by_name=data.get("createdByName"),
            created_by=data.get("createdBy"),
        )


@dataclass(frozen=True)
class QuestionFilters:
    """Exact-match filters; an empty value matches anything."""

    subject: str = ""
    grade: str = ""
    book: str = ""

    def matches(self, question: Question) -> bool:
        for name in FILTER_FIELDS:
            wanted = getattr(self, name)
            if wanted and getattr(question, name) != wanted:
                return False
        return True


@dataclass(frozen=True)
class QuestionEdit:
    """The fields a question's owner may change."""

    question_text: str | None = None
    difficulty: str | None = None
    chapter: str | None = None

    def validate(self) -> list[str]:
        """Return a list of problems (empty when valid)."""
        problems = []
        if self.difficulty is not None and self.difficulty not in DIFFICULTIES:
            problems.append(f"difficulty must be one of {', '.join(DIFFICULTIES)}")
        if self.question_text is not None and not self.question_text.strip():
            problems.append("question text cannot be empty")
        if self.chapter is not None and not self.chapter.strip():
            problems.append("chapter cannot be empty")
        return problems

    def to_api(self) -> dict[str, str]:
        data = {}
        if self.question_text is not None:
            data["questionText"] = self.question_text
        if self.difficulty is not None:
            data["difficulty"] = self.difficulty
        if self.chapter is not None:
            data["chapter"] = self.chapter
        return data

    @classmethod
    def from_question(cls, question: Question) -> QuestionEdit:
        """Start an edit pre-filled with the question's current values."""
        return cls(
            question_text=question.question_text,
            difficulty=question.difficulty,
            chapter=question.chapter,
        )


@dataclass(frozen=True)
class BankStats:
    questions: int
    subjects: int
    grades: int
    books: int


def type_label(question_type: str) -> str:
    return TYPE_LABELS.get(question_type, question_type)


def owned_by(questions: Iterable[Question], user_id: str) -> list[Question]:
    """Keep only the questions user_id created."""
    return [q for q in questions if q.created_by == user_id]


def filter_questions(questions: Iterable[Question], filters: QuestionFilters) -> list[Question]:
    return [q for q in questions if filters.matches(q)]


def unique_values(questions: Iterable[Question], attr: str) -> list[str]:
    """Sorted distinct values of a question attribute (for filter choices)."""
    return sorted({getattr(q, attr) for q in questions})


def bank_stats(questions: list[Question], filters: QuestionFilters | None = None) -> BankStats:
    """Counts shown above the bank.

    The question count honors the filters; the distinct subject, grade
    and book counts always cover the whole bank.
    """
    filtered = filter_questions(questions, filters or QuestionFilters())
    return BankStats(
        questions=len(filtered),
        subjects=len(unique_values(questions, "subject")),
        grades=len(unique_values(questions, "grade")),
        books=len(unique_values(questions, "book")),
    )


def apply_edit(question: Question, edit: QuestionEdit) -> Question:
    """Return question with the edited fields replaced."""
    changes: dict[str, Any] = {}
    if edit.question_text is not None:
        changes["question_text"] = edit.question_text
    if edit.difficulty is not None:
        changes["difficulty"] = edit.difficulty
    if edit.chapter is not None:
        changes["chapter"] = edit.chapter
    return replace(question, **changes)


def replace_question(questions: list[Question], updated: Question) -> list[Question]:
    return [updated if q.id == updated.id else q for q in questions]


def remove_question(questions: list[Question], question_id: str) -> list[Question]:
    return [q for q in questions if q.id != question_id]


def empty_message(total: int, filtered: int) -> str | None:
    """Text for an empty bank listing, or None when there is something to show."""
    if filtered:
        return None
    if total == 0:
        return "No questions yet. Create your first question!"
    return "No questions match your filters."
