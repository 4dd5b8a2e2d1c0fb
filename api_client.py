"""
Synchronous HTTP client for the recruiting backend's question and answer APIs.

Implements both ``QuestionSource`` and ``AnswerStore``.  Answer writes follow
the backend's PostgREST conventions (``?id=eq.N`` filters and
``Prefer: return=representation``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from models import ExistingAnswer, Question

logger = logging.getLogger(__name__)


class APIError(Exception):
    """User-friendly API error with categorized message.

    Categories: "connection", "timeout", "http", "network", "protocol".
    """

    def __init__(self, message: str, category: str = "unknown") -> None:
        self.message = message
        self.category = category
        super().__init__(message)


class InterviewApiClient:
    def __init__(
        self,
        base_url: str,
        auth_token: str = "",
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    def __enter__(self) -> "InterviewApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Execute a request and return the decoded JSON body (None for 204).

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        if method in ("post", "patch"):
            kwargs.setdefault("headers", {})["Prefer"] = "return=representation"
        try:
            resp = getattr(self._client, method)(path, **kwargs)
            resp.raise_for_status()
        except httpx.ConnectError:
            raise APIError("Backend server is not reachable.", category="connection") from None
        except httpx.TimeoutException:
            raise APIError("Request timed out.", category="timeout") from None
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text or str(exc)
            raise APIError(
                f"HTTP {exc.response.status_code}: {detail}", category="http"
            ) from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise APIError("Response is not valid JSON.", category="protocol") from None

    # -- questions --

    def list_questions(self, interview_id: int) -> List[Question]:
        body = self._request("get", f"/questions/interview/{interview_id}")
        rows = body.get("data", []) if isinstance(body, dict) else body
        questions = []
        for row in rows or []:
            questions.append(
                Question(
                    id=int(row["id"]),
                    text=str(row.get("question") or ""),
                    difficulty=str(row.get("difficulty") or ""),
                )
            )
        return questions

    # -- answers --

    def get_existing_answers(self, applicant_id: int) -> Dict[int, ExistingAnswer]:
        body = self._request("get", f"/applicant_answers/applicant/{applicant_id}")
        rows = body.get("data", []) if isinstance(body, dict) else body
        answers: Dict[int, ExistingAnswer] = {}
        for row in rows or []:
            question_id = int(row.get("question_id") or 0)
            if not question_id:
                continue
            answer_id = row.get("id")
            answers[question_id] = ExistingAnswer(
                id=int(answer_id) if answer_id else None,
                question_id=question_id,
                text=str(row.get("answer") or ""),
            )
        return answers

    def create_answer(
        self,
        interview_id: int,
        question_id: int,
        applicant_id: int,
        text: str,
    ) -> int:
        body = self._request(
            "post",
            "/applicant_answer",
            json={
                "interview_id": interview_id,
                "question_id": question_id,
                "applicant_id": applicant_id,
                "answer": text,
            },
        )
        record = body[0] if isinstance(body, list) and body else body
        if not isinstance(record, dict) or not record.get("id"):
            raise APIError("Created answer has no id.", category="protocol")
        logger.debug("Created answer %s for question %s", record["id"], question_id)
        return int(record["id"])

    def update_answer(self, answer_id: int, text: str) -> None:
        self._request(
            "patch",
            "/applicant_answer",
            params={"id": f"eq.{answer_id}"},
            json={"answer": text},
        )
