"""Document store access.

Provides:
- Tagged-value decoders for store documents (values)
- Async REST client for collection listing (client)
- Question CRUD endpoint client (questions)
"""

from quizdesk.store.client import DocumentStoreClient, DocumentStoreError

__all__ = ["DocumentStoreClient", "DocumentStoreError"]
