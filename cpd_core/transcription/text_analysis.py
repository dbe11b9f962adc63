# =============================================================================
# cpd_core/transcription/text_analysis.py
# Text Helpers for Reflections and Transcripts
# =============================================================================
"""
Deterministic text helpers used when an entry is created from free text.

- extract_learning_outcomes: pulls "I learned ..." style statements
- generate_summary: first sentences of a text, capped at a length
- detect_medical_terms / correct_medical_terms: nursing vocabulary
- validate_transcript: flags reflections that need more detail
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, List

MAX_LEARNING_OUTCOMES = 3

_OUTCOME_PATTERNS = [
    re.compile(r"i learned (.*?)(?:\.|,|$)", re.IGNORECASE),
    re.compile(r"i gained (.*?)(?:\.|,|$)", re.IGNORECASE),
    re.compile(r"i understood (.*?)(?:\.|,|$)", re.IGNORECASE),
    re.compile(r"i developed (.*?)(?:\.|,|$)", re.IGNORECASE),
    re.compile(r"this helped me (.*?)(?:\.|,|$)", re.IGNORECASE),
    re.compile(r"i now understand (.*?)(?:\.|,|$)", re.IGNORECASE),
]

_OUTCOME_KEYWORDS = ("learn", "understand", "knowledge", "skill")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

LEARNING_INDICATORS = (
    "learned", "gained", "understood", "improved", "developed",
    "knowledge", "skills", "experience", "insight", "reflection",
)

MEDICAL_TERMS: List[str] = [
    "medication", "patient", "diagnosis", "treatment", "nursing", "clinical",
    "assessment", "intervention", "care plan", "documentation", "procedure",
    "protocol", "guideline", "evidence-based", "best practice", "quality",
    "safety", "risk assessment", "infection control", "hand hygiene",
    "wound care", "medication administration", "vital signs", "blood pressure",
    "pulse", "temperature", "respiratory", "cardiovascular", "neurological",
    "gastrointestinal", "musculoskeletal", "endocrine", "renal", "hepatic",
    "dermatology", "oncology", "pediatric", "geriatric", "mental health",
    "psychiatry", "psychology", "rehabilitation", "palliative", "emergency",
    "critical care", "intensive care", "operating theatre", "anaesthesia",
    "recovery", "discharge planning", "continuity of care", "multidisciplinary",
    "interprofessional", "collaboration", "communication",
    "record keeping", "confidentiality", "consent", "capacity", "safeguarding",
    "advocacy", "ethics", "professional standards", "NMC", "revalidation",
    "CPD", "reflection", "supervision", "mentorship", "leadership",
]

# Common mis-transcriptions of nursing vocabulary
TERM_CORRECTIONS: Dict[str, str] = {
    "medecine": "medicine",
    "medicacion": "medication",
    "patien": "patient",
    "treatement": "treatment",
    "assesment": "assessment",
    "proceedure": "procedure",
    "protacol": "protocol",
    "evidance": "evidence",
    "qualaty": "quality",
    "safty": "safety",
    "infaction": "infection",
    "higene": "hygiene",
    "administracion": "administration",
    "respitory": "respiratory",
    "cardiovasculer": "cardiovascular",
    "neurlogical": "neurological",
    "muscloskeletal": "musculoskeletal",
    "endocrin": "endocrine",
    "pediatrik": "pediatric",
    "geriatrik": "geriatric",
    "rehabilitacion": "rehabilitation",
    "pallitive": "palliative",
    "emergancy": "emergency",
    "intensiv": "intensive",
    "anaestesia": "anaesthesia",
    "recovary": "recovery",
    "discharg": "discharge",
    "multidisciplinry": "multidisciplinary",
    "interprofesional": "interprofessional",
    "colaboration": "collaboration",
    "comunicacion": "communication",
    "confidencialaty": "confidentiality",
    "safguarding": "safeguarding",
    "advocasy": "advocacy",
    "ethiks": "ethics",
    "profesional": "professional",
    "revalidacion": "revalidation",
    "refleccion": "reflection",
    "supervicion": "supervision",
    "mentorshp": "mentorship",
    "ledership": "leadership",
}


def _sentences(text: str, min_length: int = 0) -> List[str]:
    return [s for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > min_length]


def extract_learning_outcomes(text: str) -> List[str]:
    """
    Extract up to three learning outcomes from free text.

    Explicit statements ("I learned ...", "this helped me ...") are preferred.
    Without any, sentences mentioning learning, understanding, knowledge or
    skills are used instead.
    """
    if not text:
        return []

    outcomes: List[str] = []
    for pattern in _OUTCOME_PATTERNS:
        for match in pattern.finditer(text):
            outcome = match.group(1).strip()
            if len(outcome) > 5:
                outcomes.append(outcome)

    if not outcomes:
        for sentence in _sentences(text, min_length=10):
            lowered = sentence.lower()
            if any(keyword in lowered for keyword in _OUTCOME_KEYWORDS):
                outcomes.append(sentence.strip())

    return outcomes[:MAX_LEARNING_OUTCOMES]


def generate_summary(text: str, max_length: int = 100) -> str:
    """Summarize text as its leading sentences, at most ``max_length`` characters."""
    sentences = _sentences(text, min_length=10)
    if not sentences:
        return text[:max_length]

    summary = sentences[0].strip()
    for sentence in sentences[1:]:
        if len(summary) >= max_length:
            break
        sentence = sentence.strip()
        if len(summary) + len(sentence) + 2 > max_length:
            break
        summary += ". " + sentence

    if len(summary) > max_length:
        summary = summary[:max_length - 3] + "..."
    return summary


def detect_medical_terms(text: str) -> List[str]:
    """Sorted, de-duplicated list of known nursing terms found in the text."""
    lowered = text.lower()
    return sorted({term for term in MEDICAL_TERMS if term.lower() in lowered})


def correct_medical_terms(text: str) -> str:
    """Replace common whole-word misspellings of nursing vocabulary."""
    for wrong, right in TERM_CORRECTIONS.items():
        text = re.sub(rf"\b{wrong}\b", right, text, flags=re.IGNORECASE)
    return text


@dataclass
class TranscriptValidation:
    """Outcome of validate_transcript."""
    is_valid: bool
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def validate_transcript(text: str) -> TranscriptValidation:
    """Check that a reflection is long enough and reads like a learning record."""
    issues: List[str] = []
    suggestions: List[str] = []

    if len(text) < 10:
        issues.append("Transcript is too short")
        suggestions.append("Add more detail about your learning experience")

    if not detect_medical_terms(text):
        issues.append("No medical or nursing terms detected")
        suggestions.append("Include specific medical terminology related to your learning")

    lowered = text.lower()
    if not any(indicator in lowered for indicator in LEARNING_INDICATORS):
        issues.append("No clear learning outcomes identified")
        suggestions.append("Describe what you learned or how you developed")

    if len(_sentences(text)) < 2:
        issues.append("Consider writing in complete sentences")
        suggestions.append("Structure your reflection with clear sentences")

    return TranscriptValidation(is_valid=not issues, issues=issues, suggestions=suggestions)
