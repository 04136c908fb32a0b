from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

UNKNOWN_SPEAKER_NAME = "Unknown"


def normalize_identifier(value: Any) -> str:
    """Lower-cased, trimmed comparison key for names and emails.

    Anything that is not a non-empty string collapses to ``""``, which callers
    must never use as a lookup key.
    """
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


@dataclass(frozen=True)
class ThresholdConfig:
    min_words: float = 20
    min_duration_sec: float = 60
    min_questions: float = 1


@dataclass(frozen=True)
class SpeakerMetric:
    display_name: str
    name_key: str = ""
    email_key: str = ""
    word_count: int = 0
    duration_sec: float | None = None
    question_count: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SpeakerMetric:
        raw_name = payload.get("name")
        raw_email = payload.get("user_email")
        name = raw_name if isinstance(raw_name, str) else ""
        email = raw_email if isinstance(raw_email, str) else ""
        return cls(
            display_name=name or email or UNKNOWN_SPEAKER_NAME,
            name_key=normalize_identifier(name),
            email_key=normalize_identifier(email),
            word_count=_to_count(payload.get("word_count")),
            duration_sec=_to_duration(payload.get("duration_sec")),
            question_count=_to_count(payload.get("questions")),
        )


@dataclass(frozen=True)
class ActivityScore:
    attended: bool
    confidence: float
    reason: str


@dataclass(frozen=True)
class AttendanceRow:
    person: str
    attended: bool
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "person": self.person,
            "attended": self.attended,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class MeetingAnalytics:
    transcript_id: str
    title: str = ""
    date: str = ""
    duration: float | None = None
    transcript_url: str = ""
    participants: list[str] = field(default_factory=list)
    speaker_metrics: list[SpeakerMetric] = field(default_factory=list)

    @classmethod
    def from_transcript(
        cls,
        transcript: Mapping[str, Any],
        *,
        transcript_id: str,
    ) -> MeetingAnalytics:
        raw_participants = transcript.get("participants")
        participants: list[str] = []
        if isinstance(raw_participants, list):
            participants = [
                str(participant)
                for participant in raw_participants
                if participant is not None
            ]

        speaker_metrics: list[SpeakerMetric] = []
        analytics = transcript.get("analytics")
        if isinstance(analytics, Mapping):
            raw_speakers = analytics.get("speakers")
            if isinstance(raw_speakers, list):
                speaker_metrics = [
                    SpeakerMetric.from_payload(raw_speaker)
                    for raw_speaker in raw_speakers
                    if isinstance(raw_speaker, Mapping)
                ]

        return cls(
            transcript_id=_to_text(transcript.get("id")) or transcript_id,
            title=_to_text(transcript.get("title")) or "",
            date=_to_text(transcript.get("dateString")) or _to_date_text(transcript.get("date")),
            duration=_to_duration(transcript.get("duration")),
            transcript_url=_to_text(transcript.get("transcript_url")) or "",
            participants=participants,
            speaker_metrics=speaker_metrics,
        )


def _to_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _to_date_text(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, int | float):
        # Fireflies reports dates as epoch milliseconds.
        return str(int(value))
    return _to_text(value) or ""


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        parsed_value = float(value)
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            parsed_value = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if parsed_value != parsed_value or parsed_value < 0:
        return None
    return parsed_value


def _to_count(value: Any) -> int:
    parsed_value = _to_number(value)
    if parsed_value is None or parsed_value == float("inf"):
        return 0
    return int(parsed_value)


def _to_duration(value: Any) -> float | None:
    parsed_value = _to_number(value)
    if parsed_value is None or parsed_value == float("inf"):
        return None
    if parsed_value.is_integer():
        return int(parsed_value)
    return parsed_value
