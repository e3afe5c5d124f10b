"""Core business logic.

Modules:
- identity: Signed-in account and change notifications
- profile: Profile model and document decoding
- tab_cache: Shared/tab-local storage and the tab session cache
- synchronizer: Keeps a tab's Profile in sync with the document store
- dashboard: Dashboard summary from a Profile
- question_bank: Filtering, stats and edits over questions
- question_creation: Grade/subject/book selection and bulk templates
"""

__all__ = [
    "identity",
    "profile",
    "tab_cache",
    "synchronizer",
    "dashboard",
    "question_bank",
    "question_creation",
]
