"""Date extraction — finds a single future calendar date in free text.

Recognizers are tried most-specific first. Only the first match of each
recognizer is considered; a match that does not parse to a real calendar
date, or that is not strictly after the reference date, hands over to the
next recognizer.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone

logger = logging.getLogger("accountability.engine.dates")

PREPOSITION = r"\b(?:on|by|until|before)\s+"

# (name, confidence, pattern); group 1 is the date text
DATE_RECOGNIZERS: list[tuple[str, float, re.Pattern]] = [
    ("iso", 0.95, re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")),
    ("iso_with_preposition", 0.90, re.compile(PREPOSITION + r"(\d{4}-\d{2}-\d{2})\b", re.IGNORECASE)),
    ("natural", 0.80, re.compile(PREPOSITION + r"([A-Za-z]+\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})\b", re.IGNORECASE)),
    ("us_slash", 0.70, re.compile(PREPOSITION + r"(\d{1,2}/\d{1,2}/\d{4})\b", re.IGNORECASE)),
    ("us_dash", 0.70, re.compile(PREPOSITION + r"(\d{1,2}-\d{1,2}-\d{4})\b", re.IGNORECASE)),
]

_NATURAL_FORMATS = ("%B %d %Y", "%b %d %Y")
_ORDINAL_SUFFIX = re.compile(r"(\d)(?:st|nd|rd|th)\b", re.IGNORECASE)


@dataclass(frozen=True)
class DateMatch:
    date_iso: str
    matched_span: str
    confidence: float


def utc_today() -> date:
    """Current calendar date in UTC."""
    return datetime.now(timezone.utc).date()


def _parse_candidate(kind: str, raw: str) -> date | None:
    """Turn a recognizer's captured text into a date, or None if it is not a real day."""
    try:
        if kind in ("iso", "iso_with_preposition"):
            return date.fromisoformat(raw)
        if kind == "natural":
            cleaned = raw.replace(",", " ").replace(".", " ")
            cleaned = _ORDINAL_SUFFIX.sub(r"\1", " ".join(cleaned.split()))
            cleaned = re.sub(r"^sept\b", "Sep", cleaned, flags=re.IGNORECASE)
            for fmt in _NATURAL_FORMATS:
                try:
                    return datetime.strptime(cleaned, fmt).date()
                except ValueError:
                    continue
            return None
        separator = "/" if kind == "us_slash" else "-"
        month, day, year = (int(part) for part in raw.split(separator))
        return date(year, month, day)
    except ValueError:
        return None


def extract_date(text: str, reference_date: date | None = None) -> DateMatch | None:
    """Return the first future date found in text, or None.

    reference_date defaults to today's UTC date. A date equal to the
    reference date is not in the future and is rejected.
    """
    if not text:
        return None
    today = reference_date or utc_today()

    for kind, confidence, pattern in DATE_RECOGNIZERS:
        match = pattern.search(text)
        if not match:
            continue
        parsed = _parse_candidate(kind, match.group(1))
        if parsed is None:
            logger.debug(f"Rejected unparseable {kind} date {match.group(1)!r}")
            continue
        if parsed <= today:
            logger.debug(f"Rejected {kind} date {parsed.isoformat()}: not after {today.isoformat()}")
            continue
        return DateMatch(
            date_iso=parsed.isoformat(),
            matched_span=match.group(0),
            confidence=confidence,
        )

    return None


def date_tool_result(text: str, current_date_iso: str) -> dict:
    """Run the extractor with the LLM tool's wire contract.

    Input mirrors the tool's declared arguments ({text, currentDateIso});
    output is {hasDate, dateIso?, confidence, matchedSpan?}.
    """
    reference = date.fromisoformat(current_date_iso)
    found = extract_date(text, reference)
    if found is None:
        return {"hasDate": False, "confidence": 0}
    return {
        "hasDate": True,
        "dateIso": found.date_iso,
        "confidence": found.confidence,
        "matchedSpan": found.matched_span,
    }
