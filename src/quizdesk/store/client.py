"""Async REST client for the hosted document store.

Lists whole collections; filtering happens on the caller side.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from quizdesk.config.app_config import DocumentStoreConfig, get_document_store_config

logger = structlog.get_logger(__name__)


class DocumentStoreError(Exception):
    """Raised when a collection cannot be fetched or parsed."""


class DocumentStoreClient:
    """Reads documents from the store's REST endpoint.

    Usage:
        async with DocumentStoreClient() as store:
            docs = await store.list_documents("users")
    """

    def __init__(
        self,
        config: DocumentStoreConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or get_document_store_config()
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> DocumentStoreClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_documents(self, collection: str | None = None) -> list[dict[str, Any]]:
        """Fetch every document of a collection.

        Follows nextPageToken until the listing is exhausted.

        Args:
            collection: Collection name (defaults to the users collection)

        Returns:
            List of raw documents, each with a "fields" map

        Raises:
            DocumentStoreError: On transport failure, non-2xx status or
                a body that is not a JSON object
        """
        url = self.config.collection_url(collection)
        params: dict[str, str] = {}
        api_key = self.config.get_api_key()
        if api_key:
            params["key"] = api_key

        documents: list[dict[str, Any]] = []
        while True:
            payload = await self._get_page(url, params)
            page = payload.get("documents") or []
            if not isinstance(page, list):
                raise DocumentStoreError(f"Unexpected 'documents' in response from {url}")
            documents.extend(doc for doc in page if isinstance(doc, dict))

            token = payload.get("nextPageToken")
            if not token:
                break
            params = {**params, "pageToken": token}

        logger.debug("documents_listed", url=url, count=len(documents))
        return documents

    async def _get_page(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._client.get(url, params=params or None)
        except httpx.HTTPError as e:
            raise DocumentStoreError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise DocumentStoreError(
                f"Document store returned HTTP {response.status_code} for {url}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DocumentStoreError(f"Invalid JSON from {url}: {e}") from e

        if not isinstance(payload, dict):
            raise DocumentStoreError(f"Expected a JSON object from {url}")
        return payload
