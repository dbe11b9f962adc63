# =============================================================================
# tests/unit/test_text_analysis.py
# Unit Tests for Reflection Text Helpers
# =============================================================================

import pytest


class TestLearningOutcomes:
    """Test outcome extraction"""

    def test_explicit_statements(self):
        from cpd_core.transcription.text_analysis import extract_learning_outcomes

        text = (
            "Today I attended a wound care session. I learned about moisture balance in dressings. "
            "I developed confidence with compression bandaging, and I now understand when to escalate."
        )

        assert extract_learning_outcomes(text) == [
            "about moisture balance in dressings",
            "confidence with compression bandaging",
            "when to escalate",
        ]

    def test_short_matches_ignored(self):
        from cpd_core.transcription.text_analysis import extract_learning_outcomes

        assert extract_learning_outcomes("I gained a lot.") == []

    def test_keyword_fallback(self):
        """Without explicit statements, sentences about skills are used"""
        from cpd_core.transcription.text_analysis import extract_learning_outcomes

        text = "The session refreshed my knowledge of sepsis screening. Lunch was provided."

        assert extract_learning_outcomes(text) == ["The session refreshed my knowledge of sepsis screening"]

    def test_at_most_three(self):
        from cpd_core.transcription.text_analysis import extract_learning_outcomes

        text = ". ".join(f"I learned technique number {i} in detail" for i in range(6))

        assert len(extract_learning_outcomes(text)) == 3

    def test_empty_text(self):
        from cpd_core.transcription.text_analysis import extract_learning_outcomes

        assert extract_learning_outcomes("") == []


class TestSummary:
    """Test summary generation"""

    def test_joins_sentences_within_limit(self):
        from cpd_core.transcription.text_analysis import generate_summary

        text = "Attended the tissue viability day. Covered pressure ulcer grading. Too long to fit in here."

        assert generate_summary(text, 70) == "Attended the tissue viability day. Covered pressure ulcer grading"

    def test_truncates_long_first_sentence(self):
        from cpd_core.transcription.text_analysis import generate_summary

        summary = generate_summary("A" * 30 + " " + "B" * 30 + ".", 20)

        assert summary == "A" * 17 + "..."

    def test_no_qualifying_sentences(self):
        from cpd_core.transcription.text_analysis import generate_summary

        assert generate_summary("Short. Tiny.", 5) == "Short"


class TestMedicalTerms:
    """Test vocabulary helpers"""

    def test_detect_sorted_unique(self):
        from cpd_core.transcription.text_analysis import detect_medical_terms

        terms = detect_medical_terms("Wound care and hand hygiene for every patient, every patient.")

        assert terms == sorted(set(terms))
        assert {"wound care", "hand hygiene", "patient"} <= set(terms)

    def test_correct_whole_words_only(self):
        from cpd_core.transcription.text_analysis import correct_medical_terms

        assert correct_medical_terms("Good higene and Assesment") == "Good hygiene and assessment"

    def test_validate_transcript(self):
        from cpd_core.transcription.text_analysis import validate_transcript

        good = validate_transcript(
            "I learned new wound care techniques. The patient assessment was thorough."
        )
        bad = validate_transcript("ok")

        assert good.is_valid
        assert not bad.is_valid
        assert "Transcript is too short" in bad.issues
