"""
Time and day checks for schedule candidates.

Karaoke nights start in the evening. A start hour between 06:00 and 11:59 is
treated as a PM value that lost its suffix and is shifted by twelve hours.
Spans that start in the evening and end by 06:00 are normal overnight shows.
Everything else that looks odd is reported as an issue but left alone.
"""
import logging
import re
from typing import List, Optional, Sequence, Tuple

from dateutil import parser as dateutil_parser

from schedule_scrapers.models import ScheduleRecordCandidate, ValidationSummary

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DAY_ABBREVIATIONS = {
    "mon": "monday",
    "tue": "tuesday", "tues": "tuesday",
    "wed": "wednesday", "weds": "wednesday",
    "th": "thursday", "thu": "thursday", "thur": "thursday", "thurs": "thursday",
    "fri": "friday",
    "sat": "saturday",
    "sun": "sunday",
}

AM_PM_CORRECTION_CONFIDENCE = 0.9
FLAGGED_CONFIDENCE_CAP = 0.6
EVENING_START_MINUTES = 18 * 60
EARLY_MORNING_END_MINUTES = 6 * 60
MIN_DURATION_MINUTES = 60
MAX_DURATION_MINUTES = 8 * 60

CATEGORY_AM_PM = "am_pm"
CATEGORY_IMPOSSIBLE_RANGE = "impossible_range"
CATEGORY_DURATION = "duration"
CATEGORY_OTHER = "other"

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")
_TWELVE_HOUR_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m?\.?$", re.IGNORECASE)
_BARE_HOUR_RE = re.compile(r"^(\d{1,2})$")
_DAY_SPLIT_RE = re.compile(r"\s*(?:\+|/|,|&|\band\b)\s*", re.IGNORECASE)


def parse_hhmm(value: Optional[str]) -> Optional[Tuple[int, int]]:
    if not value:
        return None
    match = _HHMM_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def to_24h(value: Optional[str]) -> Optional[str]:
    """
    Normalize a time token to HH:MM.

    Accepts 24-hour values ("21:00"), 12-hour values ("9pm", "9:30 p.m.",
    "12am") and the words noon/midnight. A bare hour ("8") becomes "08:00"
    and is left for the validator to judge. Returns None when the token is
    not a time.
    """
    if value is None:
        return None
    token = value.strip().lower()
    if not token:
        return None
    if token == "midnight":
        return "00:00"
    if token == "noon":
        return "12:00"

    parsed = parse_hhmm(token)
    if parsed:
        return format_hhmm(*parsed)

    match = _TWELVE_HOUR_RE.match(token)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        hour = hour % 12
        if match.group(3).lower() == "p":
            hour += 12
        return format_hhmm(hour, minute)

    match = _BARE_HOUR_RE.match(token)
    if match and int(match.group(1)) <= 23:
        return format_hhmm(int(match.group(1)), 0)
    return None


def split_time_range(value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "9pm-2am" / "8 - 12am" / "21:00 to 02:00" into normalized start and end."""
    if not value:
        return None, None
    parts = re.split(r"\s*(?:-|\u2013|\u2014|\bto\b|\buntil\b|\btil\b)\s*", value.strip(), maxsplit=1, flags=re.IGNORECASE)
    start = to_24h(parts[0])
    end = to_24h(parts[1]) if len(parts) > 1 else None
    return start, end


def expand_day_token(token: str) -> Optional[str]:
    """Map a single day token ("TH", "Thurs", "fridays") to a weekday name, or None."""
    cleaned = re.sub(r"[^a-z]", "", token.lower())
    if cleaned.startswith("every"):
        cleaned = cleaned[len("every"):]
    if cleaned in WEEKDAYS:
        return cleaned
    if cleaned.endswith("s") and cleaned[:-1] in WEEKDAYS:
        return cleaned[:-1]
    return DAY_ABBREVIATIONS.get(cleaned)


def split_day_tokens(value: Optional[str]) -> List[str]:
    """Expand "TH+SAT" or "Thursday & Saturday" into ["thursday", "saturday"]. Unknown tokens are kept lower-cased."""
    if not value or not value.strip():
        return []
    days = []
    for part in _DAY_SPLIT_RE.split(value.strip()):
        if not part:
            continue
        day = expand_day_token(part) or part.strip().lower()
        if day not in days:
            days.append(day)
    return days


def _minutes(hhmm: Tuple[int, int]) -> int:
    return hhmm[0] * 60 + hhmm[1]


def _weekday_from_date(token: str) -> Optional[str]:
    if not any(ch.isdigit() for ch in token):
        return None
    try:
        parsed = dateutil_parser.parse(token, fuzzy=False)
    except (ValueError, OverflowError):
        return None
    return WEEKDAYS[parsed.weekday()]


class TimeDayValidator:
    def validate(self, candidate: ScheduleRecordCandidate) -> Tuple[ScheduleRecordCandidate, List[str]]:
        """Return a corrected copy of the candidate and the issues found for it."""
        corrected, findings = self._evaluate(candidate)
        return corrected, [message for _, message in findings]

    def validate_all(self, candidates: Sequence[ScheduleRecordCandidate]) -> Tuple[List[ScheduleRecordCandidate], ValidationSummary]:
        summary = ValidationSummary(total=len(candidates))
        results = []
        for candidate in candidates:
            corrected, findings = self._evaluate(candidate)
            results.append(corrected)
            categories = {category for category, _ in findings}
            if CATEGORY_AM_PM in categories:
                summary.am_pm_errors += 1
            if (corrected.start_time, corrected.end_time) != (candidate.start_time, candidate.end_time):
                summary.corrected += 1
            if CATEGORY_IMPOSSIBLE_RANGE in categories:
                summary.impossible_ranges += 1
            if CATEGORY_DURATION in categories:
                summary.duration_issues += 1
            if CATEGORY_OTHER in categories:
                summary.other_issues += 1
            if corrected.overnight:
                summary.overnight_spans += 1
        logger.info(
            f"Validated {summary.total} candidate(s): {summary.corrected} corrected, "
            f"{summary.am_pm_errors} AM/PM, {summary.impossible_ranges} impossible ranges, "
            f"{summary.duration_issues} duration, {summary.other_issues} other."
        )
        return results, summary

    def _evaluate(self, candidate: ScheduleRecordCandidate) -> Tuple[ScheduleRecordCandidate, List[Tuple[str, str]]]:
        findings: List[Tuple[str, str]] = []
        flagged = False
        confidence = candidate.confidence

        findings.extend(self._check_day(candidate.day))

        start = parse_hhmm(candidate.start_time)
        end = parse_hhmm(candidate.end_time) if candidate.end_time else None
        if start is None:
            findings.append((CATEGORY_OTHER, f"Start time {candidate.start_time!r} is not a valid HH:MM time"))
        if candidate.end_time and end is None:
            findings.append((CATEGORY_OTHER, f"End time {candidate.end_time!r} is not a valid HH:MM time"))
            flagged = True
        if start is None:
            return self._finish(candidate, findings, candidate.start_time, candidate.end_time, min(confidence, FLAGGED_CONFIDENCE_CAP), False)

        new_start, new_end = start, end
        if 6 <= start[0] < 12:
            new_start = (start[0] + 12, start[1])
            if end is not None and 6 <= end[0] < 18:
                new_end = ((end[0] + 12) % 24, end[1])
            before = self._window(start, end)
            after = self._window(new_start, new_end)
            findings.append((
                CATEGORY_AM_PM,
                f"Start time {format_hhmm(*start)} appears to be AM instead of PM - karaoke rarely starts before 6 PM; "
                f"corrected {before} to {after}",
            ))
            confidence = max(confidence, AM_PM_CORRECTION_CONFIDENCE)
        elif 12 <= start[0] < 18:
            findings.append((CATEGORY_OTHER, f"Start time {format_hhmm(*start)} is unusually early for karaoke; left unchanged"))
            flagged = True

        overnight = False
        if new_end is not None:
            start_min, end_min = _minutes(new_start), _minutes(new_end)
            overnight = start_min >= EVENING_START_MINUTES and end_min <= EARLY_MORNING_END_MINUTES
            duration = (end_min - start_min) % (24 * 60)

            if not overnight and start_min > end_min and end_min > EARLY_MORNING_END_MINUTES:
                findings.append((
                    CATEGORY_IMPOSSIBLE_RANGE,
                    f"Start time {format_hhmm(*new_start)} is after end time {format_hhmm(*new_end)}",
                ))
                flagged = True
            elif start_min >= EVENING_START_MINUTES and end_min >= EVENING_START_MINUTES and 0 < duration < MIN_DURATION_MINUTES:
                findings.append((CATEGORY_DURATION, f"Show is only {duration} minutes long ({self._window(new_start, new_end)})"))
                flagged = True
            elif duration > MAX_DURATION_MINUTES:
                findings.append((
                    CATEGORY_DURATION,
                    f"Show lasts {duration // 60}h{duration % 60:02d}m ({self._window(new_start, new_end)}), longer than 8 hours",
                ))
                flagged = True

        if flagged:
            confidence = min(confidence, FLAGGED_CONFIDENCE_CAP)

        return self._finish(
            candidate,
            findings,
            format_hhmm(*new_start),
            format_hhmm(*new_end) if new_end is not None else candidate.end_time,
            confidence,
            overnight,
        )

    @staticmethod
    def _check_day(day: str) -> List[Tuple[str, str]]:
        if day in WEEKDAYS:
            return []
        weekday = _weekday_from_date(day)
        if weekday:
            return [(CATEGORY_OTHER, f"Day {day!r} is a date, not a weekday; it falls on a {weekday}")]
        return [(CATEGORY_OTHER, f"Day {day!r} is not a recognised weekday")]

    @staticmethod
    def _window(start: Tuple[int, int], end: Optional[Tuple[int, int]]) -> str:
        return f"{format_hhmm(*start)}-{format_hhmm(*end)}" if end is not None else format_hhmm(*start)

    @staticmethod
    def _finish(candidate, findings, start_time, end_time, confidence, overnight):
        issues = [message for _, message in findings]
        corrected = candidate.model_copy(update={
            "start_time": start_time,
            "end_time": end_time,
            "confidence": round(confidence, 3),
            "issues": list(candidate.issues) + issues,
            "overnight": overnight,
        })
        return corrected, findings
