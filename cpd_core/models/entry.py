# =============================================================================
# cpd_core/models/entry.py
# CPD Entry Data Model
# =============================================================================
"""
CPDEntry - the central record of a Continuing Professional Development activity.

Entries are identified by a client-generated correlation id that stays the
same whether the entry lives only on the device or has been uploaded.
The server-assigned row id is kept in ``remote_id`` for reference only.

Storage format:
---------------
``to_storage_dict`` produces a JSON-safe dict where every date/datetime is
ISO-8601 text. ``from_storage_dict`` reverses it and rehydrates typed dates.
"""

from __future__ import annotations
import secrets
import string
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from cpd_core.config.settings import MAX_ENTRY_DURATION_HOURS
from cpd_core.errors import EntryValidationError, StorageReadError
from cpd_core.models.categories import is_known_category

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ActivityType(str, Enum):
    """Closed set of CPD activity types."""
    COURSE = "course"
    CONFERENCE = "conference"
    REFLECTION = "reflection"
    MENTORING = "mentoring"
    OTHER = "other"


class SyncState(str, Enum):
    """Where an entry currently lives."""
    LOCAL_ONLY = "local"            # Never uploaded
    PENDING_UPLOAD = "pending"      # Edited or queued since last upload
    SYNCED = "synced"               # Remote copy matches local

    @property
    def needs_upload(self) -> bool:
        return self is not SyncState.SYNCED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_correlation_id(now: Optional[datetime] = None) -> str:
    """Build an id of the form ``cpd_<epoch-ms>_<9 base36 chars>``."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"cpd_{millis}_{suffix}"


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp (or datetime) into a UTC-aware datetime."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = pd.Timestamp(value).to_pydatetime()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def parse_date(value: Any) -> date:
    """Parse an ISO date (or date/datetime) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Evidence:
    """An evidence file attached to an entry."""
    id: str
    name: str
    file_type: str                      # pdf, jpg, png, doc
    uri: str                            # Local file location
    size: int = 0
    storage_path: Optional[str] = None  # Object path once uploaded
    uploaded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "file_type": self.file_type,
            "uri": self.uri,
            "size": self.size,
            "storage_path": self.storage_path,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Evidence:
        uploaded = data.get("uploaded_at")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            file_type=data.get("file_type", ""),
            uri=data.get("uri", ""),
            size=int(data.get("size") or 0),
            storage_path=data.get("storage_path"),
            uploaded_at=parse_timestamp(uploaded) if uploaded else None,
        )


@dataclass(frozen=True)
class TranscriptReference:
    """Pointer to a voice recording and its transcript."""
    audio_path: str
    text: str = ""
    confidence: float = 0.0             # 0-100
    language: str = "en"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "audio_path": self.audio_path,
            "text": self.text,
            "confidence": self.confidence,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscriptReference:
        return cls(
            audio_path=data["audio_path"],
            text=data.get("text", ""),
            confidence=float(data.get("confidence") or 0.0),
            language=data.get("language", "en"),
        )


@dataclass
class CPDEntryDraft:
    """User-supplied fields for a new entry."""
    title: str
    type: ActivityType
    duration: float
    date: date
    description: str = ""
    learning_outcomes: List[str] = field(default_factory=list)
    nmc_categories: List[str] = field(default_factory=list)
    evidence: List[Evidence] = field(default_factory=list)
    transcript: Optional[TranscriptReference] = None
    is_starred: bool = False


@dataclass(frozen=True)
class CPDEntry:
    """A CPD activity record."""
    id: str
    title: str
    type: ActivityType
    duration: float
    date: date
    description: str = ""
    learning_outcomes: List[str] = field(default_factory=list)
    nmc_categories: List[str] = field(default_factory=list)
    evidence: List[Evidence] = field(default_factory=list)
    transcript: Optional[TranscriptReference] = None
    sync_state: SyncState = SyncState.LOCAL_ONLY
    is_starred: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    remote_id: Optional[str] = None

    def __post_init__(self):
        # Normalize loosely typed input before validating
        try:
            object.__setattr__(self, "type", ActivityType(self.type))
        except ValueError:
            raise EntryValidationError(
                f"Unknown activity type: {self.type}",
                field="type",
                value=self.type,
            ) from None
        object.__setattr__(self, "sync_state", SyncState(self.sync_state))
        if isinstance(self.date, datetime):
            object.__setattr__(self, "date", self.date.date())
        self.validate()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, max_duration: float = MAX_ENTRY_DURATION_HOURS) -> None:
        """
        Check entry invariants.

        Raises:
            EntryValidationError: naming the first offending field
        """
        if not self.id:
            raise EntryValidationError("Entry id is required", field="id")
        if not isinstance(self.title, str) or not self.title.strip():
            raise EntryValidationError("Title must not be empty", field="title")
        if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
            raise EntryValidationError("Duration must be a number", field="duration", value=self.duration)
        if not self.duration > 0:
            raise EntryValidationError("Duration must be positive", field="duration", value=self.duration)
        if self.duration > max_duration:
            raise EntryValidationError(
                f"Duration exceeds {max_duration} hours",
                field="duration",
                value=self.duration,
            )
        if not isinstance(self.date, date):
            raise EntryValidationError("Date must be a calendar date", field="date", value=self.date)
        if any(not isinstance(o, str) for o in self.learning_outcomes):
            raise EntryValidationError("Learning outcomes must be text", field="learning_outcomes")
        unknown = [c for c in self.nmc_categories if not is_known_category(c)]
        if unknown:
            raise EntryValidationError(
                f"Unknown NMC categories: {', '.join(unknown)}",
                field="nmc_categories",
                value=unknown,
            )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def from_draft(cls, draft: CPDEntryDraft, now: Optional[datetime] = None) -> CPDEntry:
        """Create a new local-only entry with a fresh correlation id."""
        now = now or utcnow()
        return cls(
            id=generate_correlation_id(now),
            title=draft.title.strip() if isinstance(draft.title, str) else draft.title,
            type=draft.type,
            duration=draft.duration,
            date=draft.date,
            description=draft.description,
            learning_outcomes=list(draft.learning_outcomes),
            nmc_categories=list(draft.nmc_categories),
            evidence=list(draft.evidence),
            transcript=draft.transcript,
            sync_state=SyncState.LOCAL_ONLY,
            is_starred=draft.is_starred,
            created_at=now,
            updated_at=now,
        )

    def with_updates(self, **changes: Any) -> CPDEntry:
        """
        Return an edited copy.

        Edits always move the entry back to pending-upload and refresh
        ``updated_at``. The id and creation time cannot change.
        """
        for frozen_field in ("id", "created_at"):
            if frozen_field in changes and changes[frozen_field] != getattr(self, frozen_field):
                raise EntryValidationError(f"{frozen_field} cannot be changed", field=frozen_field)
            changes.pop(frozen_field, None)

        changes.pop("sync_state", None)
        changes.pop("updated_at", None)
        return replace(
            self,
            **changes,
            sync_state=SyncState.PENDING_UPLOAD,
            updated_at=max(utcnow(), self.updated_at),
        )

    def mark_synced(self, remote_id: Optional[str] = None) -> CPDEntry:
        return replace(
            self,
            sync_state=SyncState.SYNCED,
            remote_id=remote_id or self.remote_id,
        )

    @property
    def evidence_paths(self) -> List[str]:
        """Remote storage paths of uploaded evidence."""
        return [e.storage_path for e in self.evidence if e.storage_path]

    # =========================================================================
    # LOCAL SERIALIZATION
    # =========================================================================

    def to_storage_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with ISO-8601 date text."""
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "duration": float(self.duration),
            "date": self.date.isoformat(),
            "description": self.description,
            "learning_outcomes": list(self.learning_outcomes),
            "nmc_categories": list(self.nmc_categories),
            "evidence": [e.to_dict() for e in self.evidence],
            "transcript": self.transcript.to_dict() if self.transcript else None,
            "sync_state": self.sync_state.value,
            "is_starred": self.is_starred,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "remote_id": self.remote_id,
        }

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> CPDEntry:
        """
        Rebuild an entry from ``to_storage_dict`` output.

        Raises:
            StorageReadError: If the record is missing fields or malformed
        """
        try:
            transcript = data.get("transcript")
            return cls(
                id=data["id"],
                title=data["title"],
                type=ActivityType(data["type"]),
                duration=float(data["duration"]),
                date=parse_date(data["date"]),
                description=data.get("description") or "",
                learning_outcomes=list(data.get("learning_outcomes") or []),
                nmc_categories=list(data.get("nmc_categories") or []),
                evidence=[Evidence.from_dict(e) for e in data.get("evidence") or []],
                transcript=TranscriptReference.from_dict(transcript) if transcript else None,
                sync_state=SyncState(data.get("sync_state", SyncState.LOCAL_ONLY.value)),
                is_starred=bool(data.get("is_starred", False)),
                created_at=parse_timestamp(data["created_at"]),
                updated_at=parse_timestamp(data["updated_at"]),
                remote_id=data.get("remote_id"),
            )
        except (KeyError, TypeError, ValueError, EntryValidationError) as e:
            raise StorageReadError(
                f"Corrupt CPD entry record: {e}",
                key=str(data.get("id")) if isinstance(data, dict) else None,
            ) from e

    # =========================================================================
    # REMOTE ROW MAPPING
    # =========================================================================

    def to_remote_row(self) -> Dict[str, Any]:
        """Columns of the ``cpd_entries`` table (without user_id)."""
        return {
            "client_id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "hours": float(self.duration),
            "date": self.date.isoformat(),
            "learning_outcomes": list(self.learning_outcomes),
            "standards": list(self.nmc_categories),
            "evidence": [e.to_dict() for e in self.evidence],
            "transcript": self.transcript.to_dict() if self.transcript else None,
            "has_evidence": bool(self.evidence),
            "has_transcription": self.transcript is not None,
            "is_starred": self.is_starred,
            "sync_status": SyncState.SYNCED.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_remote_row(cls, row: Dict[str, Any]) -> CPDEntry:
        """
        Build a synced entry from a ``cpd_entries`` row.

        Raises:
            StorageReadError: If the row cannot be mapped
        """
        try:
            transcript = row.get("transcript")
            return cls(
                id=row["client_id"],
                title=row["title"],
                type=ActivityType(row["type"]),
                duration=float(row["hours"]),
                date=parse_date(row["date"]),
                description=row.get("description") or "",
                learning_outcomes=list(row.get("learning_outcomes") or []),
                nmc_categories=list(row.get("standards") or []),
                evidence=[Evidence.from_dict(e) for e in row.get("evidence") or []],
                transcript=TranscriptReference.from_dict(transcript) if transcript else None,
                sync_state=SyncState.SYNCED,
                is_starred=bool(row.get("is_starred", False)),
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
                remote_id=str(row["id"]) if row.get("id") is not None else None,
            )
        except (KeyError, TypeError, ValueError, EntryValidationError) as e:
            raise StorageReadError(
                f"Malformed remote CPD row: {e}",
                key=str(row.get("client_id")) if isinstance(row, dict) else None,
            ) from e
