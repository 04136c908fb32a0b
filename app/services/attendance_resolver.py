from __future__ import annotations

from collections.abc import Iterable, Sequence

from app.services.attendance_models import (
    ActivityScore,
    AttendanceRow,
    SpeakerMetric,
    ThresholdConfig,
    normalize_identifier,
)

NO_SPEECH_REASON = "No detectable speech"
SILENT_PARTICIPANT_REASON = "Present in participant list but no speech/activity detected"
ANALYTICS_UNAVAILABLE_REASON = "Analytics unavailable; cannot confirm activity"
SILENT_PARTICIPANT_CONFIDENCE = 0.5
ANALYTICS_UNAVAILABLE_CONFIDENCE = 0.4

_MIN_CONFIDENCE = 0.1
_MAX_CONFIDENCE = 1.0
_WORDS_WEIGHT = 0.4
_DURATION_WEIGHT = 0.4
_QUESTIONS_WEIGHT = 0.2


def is_active(metric: SpeakerMetric, thresholds: ThresholdConfig) -> bool:
    words = metric.word_count or 0
    duration = metric.duration_sec or 0
    questions = metric.question_count or 0
    return (
        words >= thresholds.min_words
        or duration >= thresholds.min_duration_sec
        or questions >= thresholds.min_questions
    )


def score_activity(metric: SpeakerMetric, thresholds: ThresholdConfig) -> ActivityScore:
    """Score one speaker against the activity thresholds.

    Each signal contributes up to its weight once it reaches twice its
    threshold. A zero threshold saturates the signal as soon as any activity
    is measured and contributes nothing otherwise.
    """
    words = metric.word_count or 0
    duration = metric.duration_sec or 0
    questions = metric.question_count or 0

    score = 0.0
    score += _partial_score(words, thresholds.min_words) * _WORDS_WEIGHT
    score += _partial_score(duration, thresholds.min_duration_sec) * _DURATION_WEIGHT
    score += _partial_score(questions, thresholds.min_questions) * _QUESTIONS_WEIGHT
    score = max(_MIN_CONFIDENCE, min(_MAX_CONFIDENCE, score))

    reasons: list[str] = []
    if words:
        reasons.append(f"{_format_number(words)} words")
    if duration:
        reasons.append(f"{_format_number(duration)}s spoken")
    if questions:
        reasons.append(f"{_format_number(questions)} questions")

    return ActivityScore(
        attended=is_active(metric, thresholds),
        confidence=score,
        reason="; ".join(reasons) if reasons else NO_SPEECH_REASON,
    )


def resolve_attendance(
    speaker_metrics: Sequence[SpeakerMetric],
    participants: Iterable[str],
    thresholds: ThresholdConfig,
) -> list[AttendanceRow]:
    participant_list = list(participants or [])

    if not speaker_metrics:
        return _build_fallback_rows(participant_list)

    metrics_by_key: dict[str, SpeakerMetric] = {}
    for metric in speaker_metrics:
        if metric.name_key:
            metrics_by_key[f"n:{metric.name_key}"] = metric
        if metric.email_key:
            metrics_by_key[f"e:{metric.email_key}"] = metric

    rows: list[AttendanceRow] = []
    emitted_names: set[str] = set()

    # Known limitation: rows are deduplicated by display name, so distinct
    # speakers sharing a label (e.g. several "Unknown") collapse into one row.
    # Existing sheets depend on these row counts.
    for metric in speaker_metrics:
        if metric.display_name in emitted_names:
            continue
        if _is_superseded(metric, metrics_by_key):
            continue
        activity = score_activity(metric, thresholds)
        rows.append(
            AttendanceRow(
                person=metric.display_name,
                attended=activity.attended,
                confidence=activity.confidence,
                reason=activity.reason,
            ),
        )
        emitted_names.add(metric.display_name)

    emitted_participants: set[str] = set()
    for participant in participant_list:
        participant_key = normalize_identifier(participant)
        if f"e:{participant_key}" in metrics_by_key:
            continue
        if participant_key in emitted_participants:
            continue
        emitted_participants.add(participant_key)
        rows.append(
            AttendanceRow(
                person=participant,
                attended=False,
                confidence=SILENT_PARTICIPANT_CONFIDENCE,
                reason=SILENT_PARTICIPANT_REASON,
            ),
        )

    return rows


def _build_fallback_rows(participants: list[str]) -> list[AttendanceRow]:
    rows: list[AttendanceRow] = []
    emitted_participants: set[str] = set()
    for participant in participants:
        participant_key = normalize_identifier(participant)
        if participant_key in emitted_participants:
            continue
        emitted_participants.add(participant_key)
        rows.append(
            AttendanceRow(
                person=participant,
                attended=False,
                confidence=ANALYTICS_UNAVAILABLE_CONFIDENCE,
                reason=ANALYTICS_UNAVAILABLE_REASON,
            ),
        )
    return rows


def _is_superseded(metric: SpeakerMetric, metrics_by_key: dict[str, SpeakerMetric]) -> bool:
    # A later speaker with the same normalized key replaces this one in the index.
    keys = []
    if metric.name_key:
        keys.append(f"n:{metric.name_key}")
    if metric.email_key:
        keys.append(f"e:{metric.email_key}")
    if not keys:
        return False
    return all(metrics_by_key.get(key) is not metric for key in keys)


def _partial_score(value: float, threshold: float) -> float:
    if threshold <= 0:
        return 1.0 if value > 0 else 0.0
    return min(value / (threshold * 2), 1.0)


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
