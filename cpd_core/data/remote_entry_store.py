# =============================================================================
# cpd_core/data/remote_entry_store.py
# Remote CPD Entry Store (Supabase)
# =============================================================================
"""
RemoteEntryStore - thin client over the ``cpd_entries`` table.

Rows are matched by ``client_id`` (the entry's correlation id), never by the
server row id. Every operation returns a RemoteResult so callers can tell a
transport failure (safe to retry) from a server rejection (needs attention).

The supabase-py client is synchronous; calls are pushed to worker threads.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from cpd_core.errors import NetworkUnavailable, NotAuthenticated, RemoteRejected, StorageReadError
from cpd_core.models.entry import CPDEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RemoteStatus(Enum):
    """Outcome of a remote call."""
    SUCCESS = "success"
    NETWORK_ERROR = "network_error"     # Transport failure, retry is safe
    REJECTED = "rejected"               # Server refused the request
    NOT_FOUND = "not_found"


@dataclass
class RemoteResult(Generic[T]):
    """Typed result of a remote call."""
    status: RemoteStatus
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    operation: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == RemoteStatus.SUCCESS

    @property
    def is_network_error(self) -> bool:
        return self.status == RemoteStatus.NETWORK_ERROR

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, data: Any = None, operation: Optional[str] = None) -> RemoteResult:
        return cls(status=RemoteStatus.SUCCESS, data=data, operation=operation)

    @classmethod
    def network_error(cls, error: str, operation: Optional[str] = None) -> RemoteResult:
        return cls(status=RemoteStatus.NETWORK_ERROR, error=error, operation=operation)

    @classmethod
    def rejected(
        cls,
        error: str,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> RemoteResult:
        return cls(
            status=RemoteStatus.REJECTED,
            error=error,
            error_code=error_code,
            operation=operation,
        )

    def raise_for_status(self) -> T:
        """
        Return the data or raise the matching CPD error.

        Raises:
            NetworkUnavailable: On transport failure
            RemoteRejected: When the server refused the request
        """
        if self.status == RemoteStatus.NETWORK_ERROR:
            raise NetworkUnavailable(self.error or "Network unavailable", operation=self.operation)
        if self.status in (RemoteStatus.REJECTED, RemoteStatus.NOT_FOUND):
            raise RemoteRejected(
                self.error or "Request rejected",
                operation=self.operation,
                server_code=self.error_code,
            )
        return self.data


class RemoteEntryStore:
    """
    Authenticated access to CPD entries in Supabase.

    Usage:
        remote = RemoteEntryStore(client)
        result = await remote.upsert_by_correlation_id(entry)
        if result.ok:
            entry = result.data
    """

    PAGE_SIZE = 1000  # Supabase row limit per request

    def __init__(
        self,
        client: Client,
        table: str = "cpd_entries",
        evidence_bucket: str = "evidence",
    ):
        self.client = client
        self.table = table
        self.evidence_bucket = evidence_bucket

    # =========================================================================
    # SESSION
    # =========================================================================

    def _session_user_id(self) -> str:
        try:
            session = self.client.auth.get_session()
        except Exception as e:
            logger.debug(f"Session lookup failed: {e}")
            session = None

        user = getattr(session, "user", None) if session else None
        user_id = getattr(user, "id", None)
        if not user_id:
            raise NotAuthenticated()
        return str(user_id)

    async def current_user_id(self) -> str:
        """
        Return the signed-in user's id from the locally held session.

        get_session may refresh an expired token over the network, so the
        lookup runs in a worker thread.

        Raises:
            NotAuthenticated: If there is no session
        """
        return await asyncio.to_thread(self._session_user_id)

    # =========================================================================
    # CALL WRAPPER
    # =========================================================================

    async def _call(self, operation: str, func: Callable[[], T]) -> RemoteResult[T]:
        try:
            data = await asyncio.to_thread(func)
            return RemoteResult.success(data, operation=operation)
        except httpx.TransportError as e:
            logger.debug(f"{operation}: network unavailable ({e})")
            return RemoteResult.network_error(str(e), operation=operation)
        except APIError as e:
            logger.warning(f"{operation}: rejected by server [{e.code}] {e.message}")
            return RemoteResult.rejected(e.message or str(e), error_code=e.code, operation=operation)
        except NotAuthenticated:
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            return RemoteResult.rejected(str(e), operation=operation)

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    async def upsert_by_correlation_id(self, entry: CPDEntry) -> RemoteResult[CPDEntry]:
        """
        Update the row whose client_id matches the entry, or insert a new one.

        Returns:
            RemoteResult carrying the synced entry (with remote_id) on success

        Raises:
            NotAuthenticated: If there is no session
        """
        user_id = await self.current_user_id()
        row = entry.to_remote_row()

        def _upsert() -> CPDEntry:
            existing = (
                self.client.table(self.table)
                .select("id")
                .eq("client_id", entry.id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
            if existing.data:
                remote_id = existing.data[0]["id"]
                self.client.table(self.table).update(row).eq("id", remote_id).execute()
            else:
                inserted = self.client.table(self.table).insert({**row, "user_id": user_id}).execute()
                remote_id = inserted.data[0]["id"] if inserted.data else None
            return entry.mark_synced(str(remote_id) if remote_id is not None else None)

        return await self._call(f"upsert {entry.id}", _upsert)

    async def delete(
        self,
        correlation_id: str,
        evidence_paths: Sequence[str] = (),
    ) -> RemoteResult[int]:
        """
        Delete the row for a correlation id and its evidence objects.

        A missing row counts as success.

        Returns:
            RemoteResult carrying the number of rows removed

        Raises:
            NotAuthenticated: If there is no session
        """
        user_id = await self.current_user_id()
        paths = [p for p in evidence_paths if p]

        def _delete() -> int:
            response = (
                self.client.table(self.table)
                .delete()
                .eq("client_id", correlation_id)
                .eq("user_id", user_id)
                .execute()
            )
            if paths:
                self.client.storage.from_(self.evidence_bucket).remove(paths)
            return len(response.data or [])

        result = await self._call(f"delete {correlation_id}", _delete)
        if result.ok and result.data == 0:
            logger.debug(f"Remote row for {correlation_id} already absent")
        return result

    async def list_for_user(self) -> RemoteResult[List[CPDEntry]]:
        """
        Fetch every entry owned by the session user, newest activity date first.

        Raises:
            NotAuthenticated: If there is no session
        """
        user_id = await self.current_user_id()

        def _fetch_all() -> List[dict]:
            rows: List[dict] = []
            offset = 0
            while True:
                response = (
                    self.client.table(self.table)
                    .select("*")
                    .eq("user_id", user_id)
                    .order("date", desc=True)
                    .range(offset, offset + self.PAGE_SIZE - 1)
                    .execute()
                )
                batch = response.data or []
                rows.extend(batch)
                if len(batch) < self.PAGE_SIZE:
                    break
                offset += self.PAGE_SIZE
            return rows

        result = await self._call("list entries", _fetch_all)
        if not result.ok:
            return result

        entries = []
        for row in result.data:
            try:
                entries.append(CPDEntry.from_remote_row(row))
            except StorageReadError as e:
                logger.warning(f"Skipping malformed remote row: {e.message}")
        return RemoteResult.success(entries, operation=result.operation)

    # =========================================================================
    # OBJECT STORAGE
    # =========================================================================

    async def upload_object(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
    ) -> RemoteResult[str]:
        """
        Upload a binary object (evidence, audio) to storage.

        Returns:
            RemoteResult carrying the object path

        Raises:
            NotAuthenticated: If there is no session
        """
        await self.current_user_id()

        def _upload() -> str:
            self.client.storage.from_(bucket).upload(
                path,
                content,
                {"content-type": content_type, "upsert": "false"},
            )
            return path

        return await self._call(f"upload {bucket}/{path}", _upload)
