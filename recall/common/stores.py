"""
Reminder Stores

Interfaces for the three collaborators the retriever queries, and two
implementations:

- InMemoryReminderStore: all three interfaces over process memory, with
  numpy cosine similarity for the vector index. Used for local runs and tests.
- SupabaseReminderStore: all three interfaces over a Supabase project
  (PostgREST + a pgvector match RPC). Table and RPC names are configurable,
  so one class serves every embedding backend's index.

Every query is scoped to a single user.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from .config import StoreConfig
from .embedding_service import batch_cosine_similarity
from .schemas import Reminder, build_content_string

logger = logging.getLogger("recall.common.stores")


@dataclass
class VectorMatch:
    """Nearest-neighbour hit from the vector index"""
    reminder_id: str
    similarity: float
    reminder: Optional[Reminder] = None  # Present when the index joins reminder rows
    content: str = ""


@dataclass
class ContentMatch:
    """Substring hit from the embedded-content store"""
    reminder_id: str
    content: str


# ============================================================================
# Interfaces
# ============================================================================

class ReminderStore(ABC):
    """Canonical reminder rows"""

    @abstractmethod
    async def search_title(self, user_id: str, text: str, limit: int) -> List[Reminder]:
        """Case-insensitive substring match on title"""
        pass

    @abstractmethod
    async def find_by_date(self, user_id: str, day: date) -> List[Reminder]:
        """Reminders dated exactly `day`"""
        pass

    @abstractmethod
    async def find_by_range(self, user_id: str, start: date, end: date) -> List[Reminder]:
        """Reminders dated within [start, end]"""
        pass

    @abstractmethod
    async def fetch_by_ids(self, user_id: str, ids: List[str]) -> List[Reminder]:
        """Batch fetch by reminder id"""
        pass


class VectorIndex(ABC):
    """Per-user reminder embedding index"""

    @abstractmethod
    async def match(
        self,
        user_id: str,
        embedding: List[float],
        threshold: float,
        count: int,
    ) -> List[VectorMatch]:
        """Matches with similarity above threshold, most similar first"""
        pass


class EmbeddedContentStore(ABC):
    """Text that was embedded for each reminder"""

    @abstractmethod
    async def search_content(self, user_id: str, text: str, limit: int) -> List[ContentMatch]:
        """Case-insensitive substring match on embedded content"""
        pass


def _sort_key(reminder: Reminder):
    return (reminder.date or date.max, reminder.time or "99:99")


# ============================================================================
# In-memory implementation
# ============================================================================

@dataclass
class _IndexEntry:
    user_id: str
    content: str
    embedding: Optional[List[float]]


class InMemoryReminderStore(ReminderStore, VectorIndex, EmbeddedContentStore):
    """Process-local store implementing all three interfaces"""

    def __init__(self):
        self._reminders: Dict[str, Reminder] = {}
        self._index: Dict[str, _IndexEntry] = {}

    def add(
        self,
        reminder: Reminder,
        embedding: Optional[List[float]] = None,
        tag_name: Optional[str] = None,
    ) -> None:
        """Insert or replace a reminder and its embedded content"""
        self._reminders[reminder.id] = reminder
        self._index[reminder.id] = _IndexEntry(
            user_id=reminder.user_id,
            content=build_content_string(reminder, tag_name=tag_name),
            embedding=embedding,
        )

    def remove(self, reminder_id: str) -> bool:
        self._index.pop(reminder_id, None)
        return self._reminders.pop(reminder_id, None) is not None

    def __len__(self) -> int:
        return len(self._reminders)

    def _for_user(self, user_id: str) -> List[Reminder]:
        return [r for r in self._reminders.values() if r.user_id == user_id]

    async def search_title(self, user_id: str, text: str, limit: int) -> List[Reminder]:
        needle = text.lower().strip()
        if not needle:
            return []
        hits = [r for r in self._for_user(user_id) if needle in r.title.lower()]
        return hits[:limit]

    async def find_by_date(self, user_id: str, day: date) -> List[Reminder]:
        hits = [r for r in self._for_user(user_id) if r.date == day]
        return sorted(hits, key=_sort_key)

    async def find_by_range(self, user_id: str, start: date, end: date) -> List[Reminder]:
        hits = [r for r in self._for_user(user_id) if r.date and start <= r.date <= end]
        return sorted(hits, key=_sort_key)

    async def fetch_by_ids(self, user_id: str, ids: List[str]) -> List[Reminder]:
        return [
            self._reminders[i] for i in ids
            if i in self._reminders and self._reminders[i].user_id == user_id
        ]

    async def match(
        self,
        user_id: str,
        embedding: List[float],
        threshold: float,
        count: int,
    ) -> List[VectorMatch]:
        entries = [
            (rid, entry) for rid, entry in self._index.items()
            if entry.user_id == user_id and entry.embedding is not None
        ]
        if not entries:
            return []

        similarities = batch_cosine_similarity(embedding, [e.embedding for _, e in entries])
        matches = [
            VectorMatch(reminder_id=rid, similarity=sim, content=entry.content)
            for (rid, entry), sim in zip(entries, similarities)
            if sim > threshold
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:count]

    async def search_content(self, user_id: str, text: str, limit: int) -> List[ContentMatch]:
        needle = text.lower()
        hits = [
            ContentMatch(reminder_id=rid, content=entry.content)
            for rid, entry in self._index.items()
            if entry.user_id == user_id and needle in entry.content.lower()
        ]
        return hits[:limit]


# ============================================================================
# Supabase implementation
# ============================================================================

class SupabaseStoreError(Exception):
    """Non-success response from the Supabase REST API."""
    pass


def _row_to_reminder(row: Dict[str, Any], id_key: str = "id") -> Reminder:
    return Reminder(
        id=str(row[id_key]),
        user_id=str(row.get("user_id") or ""),
        title=row.get("title") or "",
        date=row.get("date") or None,
        time=row.get("time") or None,
        completed=bool(row.get("completed")),
        tag_id=row.get("tag_id"),
        priority_id=row.get("priority_id"),
    )


class SupabaseReminderStore(ReminderStore, VectorIndex, EmbeddedContentStore):
    """
    Supabase-backed store.

    Usage:
        store = SupabaseReminderStore(
            url="https://project.supabase.co",
            api_key="service-role-key",
        )
        rows = await store.find_by_date("user-1", date(2026, 1, 29))
        await store.close()
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        reminders_table: str = "reminders",
        content_table: str = "reminder_embeddings",
        match_function: str = "match_reminders",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not api_key:
            raise ValueError("Supabase store requires a URL and an API key")

        self._reminders_table = reminders_table
        self._content_table = content_table
        self._match_function = match_function
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SupabaseReminderStore":
        return cls(
            url=config.supabase_url,
            api_key=config.supabase_service_role_key or config.supabase_anon_key,
            reminders_table=config.reminders_table,
            content_table=config.content_table,
            match_function=config.match_function,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, table: str, params: List[tuple]) -> List[Dict[str, Any]]:
        response = await self._client.get(f"/{table}", params=params)
        if response.status_code >= 400:
            raise SupabaseStoreError(f"{table} query failed ({response.status_code}): {response.text[:200]}")
        return response.json()

    async def search_title(self, user_id: str, text: str, limit: int) -> List[Reminder]:
        needle = text.strip()
        if not needle:
            return []
        rows = await self._get(self._reminders_table, [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("title", f"ilike.*{needle}*"),
            ("limit", str(limit)),
        ])
        return [_row_to_reminder(r) for r in rows]

    async def find_by_date(self, user_id: str, day: date) -> List[Reminder]:
        rows = await self._get(self._reminders_table, [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("date", f"eq.{day.isoformat()}"),
            ("order", "time.asc"),
        ])
        return [_row_to_reminder(r) for r in rows]

    async def find_by_range(self, user_id: str, start: date, end: date) -> List[Reminder]:
        rows = await self._get(self._reminders_table, [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("date", f"gte.{start.isoformat()}"),
            ("date", f"lte.{end.isoformat()}"),
            ("order", "date.asc,time.asc"),
        ])
        return [_row_to_reminder(r) for r in rows]

    async def fetch_by_ids(self, user_id: str, ids: List[str]) -> List[Reminder]:
        if not ids:
            return []
        rows = await self._get(self._reminders_table, [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("id", f"in.({','.join(ids)})"),
        ])
        return [_row_to_reminder(r) for r in rows]

    async def match(
        self,
        user_id: str,
        embedding: List[float],
        threshold: float,
        count: int,
    ) -> List[VectorMatch]:
        response = await self._client.post(f"/rpc/{self._match_function}", json={
            "query_embedding": embedding,
            "match_threshold": threshold,
            "match_count": count,
            "p_user_id": user_id,
        })
        if response.status_code >= 400:
            raise SupabaseStoreError(
                f"{self._match_function} failed ({response.status_code}): {response.text[:200]}"
            )

        matches = []
        for row in response.json():
            # Enriched RPCs join the reminder row; older ones return only id + content
            reminder = _row_to_reminder(row, id_key="reminder_id") if row.get("title") else None
            matches.append(VectorMatch(
                reminder_id=str(row["reminder_id"]),
                similarity=float(row.get("similarity", 0.0)),
                reminder=reminder,
                content=row.get("content") or "",
            ))
        return matches

    async def search_content(self, user_id: str, text: str, limit: int) -> List[ContentMatch]:
        rows = await self._get(self._content_table, [
            ("select", "reminder_id,content"),
            ("user_id", f"eq.{user_id}"),
            ("content", f"ilike.*{text}*"),
            ("limit", str(limit)),
        ])
        return [ContentMatch(reminder_id=str(r["reminder_id"]), content=r.get("content") or "") for r in rows]


def create_store(config: StoreConfig):
    """Build the store named by config"""
    backend = config.backend.lower()
    if backend == "memory":
        return InMemoryReminderStore()
    if backend == "supabase":
        return SupabaseReminderStore.from_config(config)
    raise ValueError(f"Unsupported store backend: {config.backend}")
