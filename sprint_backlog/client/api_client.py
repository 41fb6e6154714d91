"""
HTTP client for the sprint backlog API.

Used by the prioritization board to load sprints and backlog stories and
to persist membership and ordering changes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID
import logging

import httpx

from ..config import settings
from ..models.sprint import SprintStatus
from ..services.projection_service import BacklogStoryView, SprintView


class SprintApiError(Exception):
    """Raised for any failed call to the sprint backlog API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class SprintApiClient:
    """Async client for the sprint and backlog-story endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.client_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def __aenter__(self) -> SprintApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Sprints

    async def get_sprints(self, project_id: UUID) -> List[SprintView]:
        response = await self._make_request("GET", f"/projects/{project_id}/sprints")
        return [SprintView.model_validate(item) for item in response.json()]

    async def get_backlog_stories(self, project_id: UUID) -> List[BacklogStoryView]:
        response = await self._make_request("GET", f"/projects/{project_id}/sprints/backlog-stories")
        return [BacklogStoryView.model_validate(item) for item in response.json()]

    async def create_sprint(
        self,
        project_id: UUID,
        name: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        story_ids: Optional[Sequence[UUID]] = None
    ) -> SprintView:
        payload: Dict[str, Any] = {
            "name": name,
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "story_ids": [str(story_id) for story_id in story_ids or []]
        }
        response = await self._make_request("POST", f"/projects/{project_id}/sprints", json=payload)
        return SprintView.model_validate(response.json())

    async def delete_sprint(self, sprint_id: UUID) -> None:
        await self._make_request("DELETE", f"/sprints/{sprint_id}")

    async def update_sprint_stories(self, sprint_id: UUID, story_ids: Sequence[UUID]) -> None:
        payload = {"story_ids": [str(story_id) for story_id in story_ids]}
        await self._make_request("PUT", f"/sprints/{sprint_id}/stories", json=payload)

    async def reorder_sprint_stories(self, sprint_id: UUID, ordered_story_ids: Sequence[UUID]) -> None:
        payload = {"ordered_story_ids": [str(story_id) for story_id in ordered_story_ids]}
        await self._make_request("PUT", f"/sprints/{sprint_id}/stories/reorder", json=payload)

    async def update_sprint_status(self, sprint_id: UUID, status: SprintStatus) -> SprintView:
        payload = {"status": SprintStatus(status).value}
        response = await self._make_request("PATCH", f"/sprints/{sprint_id}/status", json=payload)
        return SprintView.model_validate(response.json())

    # Plumbing

    @asynccontextmanager
    async def _get_client(self):
        """Get HTTP client, created lazily and reused until ``close``."""
        if self._client is None:
            kwargs: Dict[str, Any] = {
                "base_url": self.base_url,
                "timeout": self.timeout,
                "headers": {"Accept": "application/json"}
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)

        yield self._client

    async def _make_request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._get_client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SprintApiError(f"Request timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise SprintApiError(f"Network error: {str(e)}") from e

        if response.is_success:
            return response

        detail = self._safe_json(response)
        message = detail.get("detail") if isinstance(detail, dict) else None
        if not isinstance(message, str):
            message = f"{method} {url} failed with status {response.status_code}"

        self._logger.error("API error %s on %s %s: %s", response.status_code, method, url, message)
        raise SprintApiError(message, response.status_code, detail)

    def _safe_json(self, response: httpx.Response) -> Optional[Any]:
        try:
            return response.json()
        except ValueError:
            return None
