import logging
import threading
from collections import deque
from typing import Any

import requests

from ..models import VideoIdea

logger = logging.getLogger(__name__)

IDEAS_TABLE = "video_ideas"
RECENT_IDEAS_LIMIT = 3
RECENT_BUFFER_SIZE = 10

# Postgres "undefined_table" and PostgREST's schema-cache miss for an unknown table
MISSING_TABLE_CODES = frozenset({"42P01", "PGRST205"})


class StoreError(Exception):
    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class StoreNotProvisionedError(StoreError):
    pass


def idea_to_row(idea: VideoIdea, user_id: str) -> dict[str, Any]:
    return {
        "id": idea.id,
        "title": idea.title,
        "concept": idea.concept,
        "platform": idea.platform,
        "content_type": idea.content_type,
        "virality_score": idea.virality_score,
        "virality_justification": idea.virality_justification,
        "monetization_strategy": idea.monetization_strategy,
        "video_format": idea.video_format.to_wire(),
        "hashtags": idea.hashtags,
        "trend_analysis": idea.trend_analysis.to_wire(),
        "region": idea.region,
        "channel_inspirations": idea.channel_inspirations,
        "user_id": user_id,
    }


def row_to_idea(row: dict[str, Any]) -> VideoIdea:
    return VideoIdea.model_validate(
        {
            "id": row.get("id"),
            "title": row.get("title"),
            "concept": row.get("concept") or "",
            "hashtags": row.get("hashtags") or [],
            "viralityScore": row.get("virality_score") or 0,
            "viralityJustification": row.get("virality_justification") or "",
            "monetizationStrategy": row.get("monetization_strategy") or "",
            "videoFormat": row.get("video_format") or {},
            "platform": row.get("platform") or "",
            "contentType": row.get("content_type") or "",
            "createdAt": row.get("created_at") or "",
            "trendAnalysis": row.get("trend_analysis") or {},
            "region": row.get("region") or "US",
            "channelInspirations": row.get("channel_inspirations"),
            "userId": row.get("user_id"),
            "isSaved": True,
        }
    )


class SupabaseIdeaStore:
    """``video_ideas`` rows through Supabase's REST (PostgREST) and auth endpoints."""

    def __init__(self, url: str, service_key: str, session: Any = None, timeout: int = 15):
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SupabaseIdeaStore":
        return cls(settings.supabase_url, settings.supabase_service_key)

    @property
    def table_url(self) -> str:
        return f"{self.url}/rest/v1/{IDEAS_TABLE}"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _raise_for_error(self, response, action: str) -> None:
        if response.status_code in (200, 201, 204):
            return
        code = None
        message = response.text or f"Failed to {action}"
        try:
            body = response.json() or {}
            code = body.get("code")
            message = body.get("message") or message
        except ValueError:
            pass
        logger.error("Supabase error during %s: %s %s", action, response.status_code, message)
        if code in MISSING_TABLE_CODES:
            raise StoreNotProvisionedError(
                "Database table not found. Please run the setup SQL script.",
                code=code,
            )
        raise StoreError(message, code=code)

    def _send(self, method: str, action: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, self.table_url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise StoreError(f"Failed to {action}: {exc}") from exc
        self._raise_for_error(response, action)
        if response.status_code == 204 or not response.content:
            return []
        return response.json()

    def get_user_id(self, token: str) -> str | None:
        try:
            response = self.session.get(
                f"{self.url}/auth/v1/user",
                headers={"apikey": self.service_key, "Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Error verifying token: %s", exc)
            return None
        if response.status_code != 200:
            return None
        return (response.json() or {}).get("id")

    def create(self, idea: VideoIdea, user_id: str) -> VideoIdea:
        rows = self._send(
            "POST",
            "save idea",
            json=idea_to_row(idea, user_id),
            headers=self._headers(prefer="return=representation"),
        )
        if not rows:
            raise StoreError("Failed to save idea")
        return row_to_idea(rows[0])

    def list_for_user(self, user_id: str) -> list[VideoIdea]:
        rows = self._send(
            "GET",
            "fetch ideas",
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
            headers=self._headers(),
        )
        return [row_to_idea(row) for row in rows]

    def list_recent(self, limit: int = RECENT_IDEAS_LIMIT) -> list[VideoIdea]:
        rows = self._send(
            "GET",
            "fetch recent ideas",
            params={"select": "*", "order": "created_at.desc", "limit": str(limit)},
            headers=self._headers(),
        )
        return [row_to_idea(row) for row in rows]

    def delete(self, idea_id: str, user_id: str) -> int:
        """Deletes only the caller's row; returns how many rows matched."""
        rows = self._send(
            "DELETE",
            "delete idea",
            params={"id": f"eq.{idea_id}", "user_id": f"eq.{user_id}"},
            headers=self._headers(prefer="return=representation"),
        )
        return len(rows)


class InMemoryIdeaStore:
    """Process-local store used when Supabase is not configured."""

    def __init__(self, tokens: dict[str, str] | None = None):
        self.tokens = dict(tokens or {})
        self._rows: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def get_user_id(self, token: str) -> str | None:
        return self.tokens.get(token)

    def create(self, idea: VideoIdea, user_id: str) -> VideoIdea:
        row = idea_to_row(idea, user_id)
        row["created_at"] = idea.created_at
        with self._lock:
            self._rows.append(row)
        return row_to_idea(row)

    def list_for_user(self, user_id: str) -> list[VideoIdea]:
        with self._lock:
            rows = [row for row in self._rows if row["user_id"] == user_id]
        rows.sort(key=lambda row: str(row.get("created_at") or ""), reverse=True)
        return [row_to_idea(row) for row in rows]

    def list_recent(self, limit: int = RECENT_IDEAS_LIMIT) -> list[VideoIdea]:
        with self._lock:
            rows = list(self._rows)
        rows.sort(key=lambda row: str(row.get("created_at") or ""), reverse=True)
        return [row_to_idea(row) for row in rows[:limit]]

    def delete(self, idea_id: str, user_id: str) -> int:
        with self._lock:
            keep = [row for row in self._rows if not (row["id"] == idea_id and row["user_id"] == user_id)]
            removed = len(self._rows) - len(keep)
            self._rows = keep
        return removed


class RecentIdeasBuffer:
    """Rolling newest-first buffer of generated ideas for callers without an account."""

    def __init__(self, max_size: int = RECENT_BUFFER_SIZE):
        self._ideas: deque[VideoIdea] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def push(self, idea: VideoIdea) -> None:
        with self._lock:
            self._ideas.appendleft(idea)

    def recent(self, limit: int | None = None) -> list[VideoIdea]:
        with self._lock:
            ideas = list(self._ideas)
        return ideas if limit is None else ideas[:limit]

    def __len__(self) -> int:
        return len(self._ideas)
