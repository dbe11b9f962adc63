# =============================================================================
# cpd_core/transcription/client.py
# Speech-to-Text Boundary
# =============================================================================
"""
Transcription of recorded reflections.

The core only depends on the TranscriptionClient protocol. The Supabase
implementation uploads the audio file to object storage and asks the
``transcribe`` edge function for the text.
"""

from __future__ import annotations
import asyncio
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union
import logging

import httpx
from supabase import Client

from cpd_core.data.remote_entry_store import RemoteEntryStore
from cpd_core.errors import NetworkUnavailable, RemoteRejected, StorageReadError
from cpd_core.models.entry import TranscriptReference
from cpd_core.transcription.text_analysis import detect_medical_terms

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResult:
    """Text recognised from one recording."""
    text: str
    confidence: float                   # 0-100
    audio_path: str
    language: str = "en-GB"
    medical_terms: List[str] = field(default_factory=list)

    def to_reference(self) -> TranscriptReference:
        return TranscriptReference(
            audio_path=self.audio_path,
            text=self.text,
            confidence=self.confidence,
            language=self.language,
        )


class TranscriptionClient(Protocol):
    """Anything that can turn a recording into text."""

    async def transcribe(
        self,
        audio_file: Union[str, Path],
        entry_id: Optional[str] = None,
    ) -> TranscriptionResult:
        ...


class SupabaseTranscriptionClient:
    """
    Upload audio to storage and transcribe it with an edge function.

    Usage:
        client = SupabaseTranscriptionClient(supabase, remote_store)
        result = await client.transcribe("recordings/reflection.m4a", entry.id)
    """

    def __init__(
        self,
        client: Client,
        remote_store: RemoteEntryStore,
        audio_bucket: str = "audio",
        function_name: str = "transcribe",
        language: str = "en-GB",
    ):
        self.client = client
        self.remote = remote_store
        self.audio_bucket = audio_bucket
        self.function_name = function_name
        self.language = language

    async def transcribe(
        self,
        audio_file: Union[str, Path],
        entry_id: Optional[str] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a local audio file.

        Raises:
            NotAuthenticated: If there is no session
            StorageReadError: If the audio file cannot be read
            NetworkUnavailable: If storage or the function cannot be reached
            RemoteRejected: If the upload or the function call fails
        """
        user_id = await self.remote.current_user_id()

        path = Path(audio_file)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageReadError(f"Could not read audio file: {e}", key=str(path)) from e

        object_path = f"{user_id}/audio/{int(time.time() * 1000)}.m4a"
        upload = await self.remote.upload_object(self.audio_bucket, object_path, content, "audio/m4a")
        upload.raise_for_status()

        body = {
            "audioPath": object_path,
            "cpdId": entry_id,
            "userId": user_id,
            "language": self.language,
        }
        payload = await self._invoke(body)

        text = payload.get("transcript") or ""
        metadata = payload.get("metadata") or {}
        terms = metadata.get("medical_terms") or detect_medical_terms(text)
        logger.info(f"Transcribed {object_path} ({len(text)} chars)")

        return TranscriptionResult(
            text=text,
            confidence=float(payload.get("confidence") or 0.0),
            audio_path=object_path,
            language=metadata.get("language") or self.language,
            medical_terms=list(terms),
        )

    async def _invoke(self, body: Dict[str, Any]) -> Dict[str, Any]:
        operation = f"invoke {self.function_name}"
        try:
            raw = await asyncio.to_thread(
                self.client.functions.invoke,
                self.function_name,
                invoke_options={"body": body},
            )
        except httpx.TransportError as e:
            raise NetworkUnavailable(str(e), operation=operation) from e
        except Exception as e:
            raise RemoteRejected(f"Transcription failed: {e}", operation=operation) from e

        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise RemoteRejected("Transcription returned invalid JSON", operation=operation) from e
        if not isinstance(raw, dict):
            raise RemoteRejected("Transcription returned an unexpected payload", operation=operation)
        return raw
