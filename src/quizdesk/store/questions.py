"""Client for the portal's question CRUD endpoints.

Every request carries the caller's identity in headers:
x-user-id, x-user-role and, when known, x-school-id / x-school-name.
"""

from __future__ import annotations

from typing import Any, Literal

import httpx
import structlog

from quizdesk.core.question_bank import Question, QuestionEdit, owned_by

logger = structlog.get_logger(__name__)

PortalRole = Literal["content_creator", "teacher"]


class QuestionApiError(Exception):
    """Raised when a question endpoint call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class QuestionApiClient:
    """Lists, edits and deletes the caller's own questions."""

    def __init__(
        self,
        endpoint: str,
        user_role: PortalRole,
        user_id: str,
        school_id: str | None = None,
        school_name: str | None = None,
        base_url: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.user_role = user_role
        self.user_id = user_id
        self.school_id = school_id
        self.school_name = school_name
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> QuestionApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._client.aclose()

    def headers(self) -> dict[str, str]:
        headers = {
            "x-user-id": self.user_id or "",
            "x-user-role": self.user_role,
        }
        if self.school_id:
            headers["x-school-id"] = self.school_id
        if self.school_name:
            headers["x-school-name"] = self.school_name
        return headers

    async def list_questions(self) -> list[Question]:
        """Get the questions this user created.

        The endpoint answers either {"success": true, "questions": [...]}
        or a bare list.
        """
        response = await self._request("GET", self.endpoint)
        data = self._json(response)

        if isinstance(data, list):
            raw = data
        elif isinstance(data, dict) and data.get("success"):
            raw = data.get("questions") or []
        else:
            raise QuestionApiError("Unexpected question list payload", response.status_code)

        questions = [Question.from_api(q) for q in raw if isinstance(q, dict)]
        mine = owned_by(questions, self.user_id)
        logger.debug("questions_listed", total=len(questions), owned=len(mine))
        return mine

    async def update_question(self, question_id: str, edit: QuestionEdit) -> None:
        problems = edit.validate()
        if problems:
            raise QuestionApiError("; ".join(problems))

        await self._request(
            "PUT",
            f"{self.endpoint}/{question_id}",
            json=edit.to_api(),
        )
        logger.info("question_updated", question_id=question_id)

    async def delete_question(self, question_id: str) -> None:
        await self._request("DELETE", f"{self.endpoint}/{question_id}")
        logger.info("question_deleted", question_id=question_id)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, headers=self.headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error("question_api_unreachable", method=method, url=url, error=str(e))
            raise QuestionApiError(f"Request failed: {e}") from e

        if response.is_error:
            message = f"HTTP {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("error"):
                    message = str(body["error"])
            except ValueError:
                pass
            logger.warning(
                "question_api_error",
                method=method,
                url=url,
                status=response.status_code,
                error=message,
            )
            raise QuestionApiError(message, response.status_code)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise QuestionApiError(f"Invalid JSON: {e}", response.status_code) from e
