# =============================================================================
# cpd_core/transcription/__init__.py
# Voice Reflection Transcription
# =============================================================================

from .text_analysis import (
    MAX_LEARNING_OUTCOMES,
    TranscriptValidation,
    extract_learning_outcomes,
    generate_summary,
    detect_medical_terms,
    correct_medical_terms,
    validate_transcript,
)

from .client import (
    TranscriptionClient,
    TranscriptionResult,
    SupabaseTranscriptionClient,
)

__all__ = [
    # Text analysis
    "MAX_LEARNING_OUTCOMES",
    "TranscriptValidation",
    "extract_learning_outcomes",
    "generate_summary",
    "detect_medical_terms",
    "correct_medical_terms",
    "validate_transcript",
    # Clients
    "TranscriptionClient",
    "TranscriptionResult",
    "SupabaseTranscriptionClient",
]
