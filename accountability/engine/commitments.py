"""Commitment analysis — decides whether a chat message commits to something on a future date.

Two strategies share one interface: an LLM strategy that is given the date
extractor as a callable tool, and a deterministic keyword + pattern
strategy. CommitmentAnalyzer tries the LLM strategy first when one is
configured and falls back to the deterministic strategy on any failure.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from accountability.engine.dates import date_tool_result, extract_date, utc_today
from accountability.engine.llm import LLMClient, ToolCompletion

logger = logging.getLogger("accountability.engine.commitments")

COMMITMENT_KEYWORDS = [
    "commit", "promise", "will", "going to", "plan to", "intend to",
    "goal", "target", "deadline", "schedule", "appointment", "reminder",
]

# Phrases that introduce the committed action; the capture stops at the
# first temporal/prepositional boundary or the end of the message.
_BOUNDARY = r"(?:\s+(?:on|by|in|at)\b|\s*$)"
COMMITMENT_PHRASES: list[re.Pattern] = [
    re.compile(r"\bI will (.+?)" + _BOUNDARY, re.IGNORECASE),
    re.compile(r"\bMy goal is to (.+?)" + _BOUNDARY, re.IGNORECASE),
    re.compile(r"\bI plan to (.+?)" + _BOUNDARY, re.IGNORECASE),
    re.compile(r"\bI(?:'|’)m going to (.+?)" + _BOUNDARY, re.IGNORECASE),
]

ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

DATE_TOOL_NAME = "parseCommitmentDate"

PARSE_DATE_TOOL = {
    "type": "function",
    "function": {
        "name": DATE_TOOL_NAME,
        "description": "Extract and validate future commitment dates from natural language text",
        "parameters": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The message text to analyze for dates"},
                "currentDateIso": {
                    "type": "string",
                    "description": "Current date in YYYY-MM-DD format for comparison",
                },
            },
            "required": ["text", "currentDateIso"],
        },
    },
}

COMMITMENT_PROMPT = """You are an assistant that analyzes therapy chat messages to identify future-dated commitments.

Decide whether the message contains a commitment for a future date. You have access to the parseCommitmentDate tool, which extracts and validates dates.

Rules:
1. The message must contain BOTH an actionable commitment AND a specific future date.
2. Vague temporal references such as "soon", "later" or "next week" do not count.
3. When you find a commitment with a specific future date, call parseCommitmentDate to validate the date, then answer with one sentence of the form:
   "Found a commitment with a specific future date: YYYY-MM-DD."
4. Otherwise answer exactly: "None found."
"""

# Used when the verdict names a date the tool never confirmed
VERDICT_CONFIDENCE = 0.85


@dataclass(frozen=True)
class Commitment:
    date_iso: str
    text: str
    confidence: float


@dataclass(frozen=True)
class Analysis:
    has_commitment: bool
    commitment: Commitment | None = None
    strategy: str | None = None


NO_COMMITMENT = Analysis(has_commitment=False)


class CommitmentStrategy(Protocol):
    name: str

    async def analyze(self, text: str, reference_date: date) -> Analysis:
        ...


def extract_commitment_text(message: str) -> str:
    """Pull the committed action out of the message, or return the whole trimmed message."""
    for pattern in COMMITMENT_PHRASES:
        match = pattern.search(message)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return message.strip()


def has_commitment_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in COMMITMENT_KEYWORDS)


def _future_date(date_iso: str, reference_date: date) -> bool:
    try:
        return date.fromisoformat(date_iso) > reference_date
    except ValueError:
        return False


class FallbackStrategy:
    """Keyword gate followed by the deterministic date extractor."""

    name = "fallback"

    async def analyze(self, text: str, reference_date: date) -> Analysis:
        if not has_commitment_keyword(text):
            return NO_COMMITMENT

        found = extract_date(text, reference_date)
        if found is None:
            return NO_COMMITMENT

        return Analysis(
            has_commitment=True,
            commitment=Commitment(date_iso=found.date_iso, text=text.strip(), confidence=found.confidence),
            strategy=self.name,
        )


class AIStrategy:
    """LLM judgement, constrained by the date extractor exposed as a tool."""

    name = "ai"

    def __init__(self, llm: LLMClient, timeout: float = 20.0):
        self.llm = llm
        self.timeout = timeout

    async def analyze(self, text: str, reference_date: date) -> Analysis:
        today_iso = reference_date.isoformat()

        def parse_date_tool(arguments: dict) -> dict:
            # The reference date is ours, never the model's
            return date_tool_result(str(arguments.get("text") or text), today_iso)

        completion = await asyncio.wait_for(
            self.llm.complete_with_tools(
                COMMITMENT_PROMPT,
                f'Message to analyze: "{text}"\n\nCurrent date for reference: {today_iso}',
                tools=[PARSE_DATE_TOOL],
                handlers={DATE_TOOL_NAME: parse_date_tool},
            ),
            timeout=self.timeout,
        )
        logger.info(f"LLM verdict: {completion.text!r} ({len(completion.tool_invocations)} tool call(s))")
        return self.interpret(text, completion, reference_date)

    def interpret(self, text: str, completion: ToolCompletion, reference_date: date) -> Analysis:
        """Read a commitment out of the model's verdict, then out of its tool calls."""
        verdict = completion.text or ""
        lowered = verdict.lower()

        # The model's refusal wins over anything its tool calls found
        if "none found" in lowered or "no commitment" in lowered:
            return NO_COMMITMENT

        if "commitment" in lowered and "specific future date" in lowered:
            match = ISO_DATE.search(verdict)
            if match:
                date_iso = match.group(1)
                if not _future_date(date_iso, reference_date):
                    logger.warning(f"Commitment date {date_iso} is not in the future")
                    return NO_COMMITMENT
                return self._commitment(text, date_iso, self._tool_confidence(completion, date_iso))

        for invocation in completion.tool_invocations:
            if invocation.name != DATE_TOOL_NAME or not invocation.output:
                continue
            output = invocation.output
            date_iso = output.get("dateIso")
            if output.get("hasDate") and date_iso:
                if not _future_date(date_iso, reference_date):
                    logger.warning(f"Commitment date {date_iso} is not in the future")
                    return NO_COMMITMENT
                return self._commitment(text, date_iso, float(output.get("confidence", VERDICT_CONFIDENCE)))

        return NO_COMMITMENT

    @staticmethod
    def _tool_confidence(completion: ToolCompletion, date_iso: str) -> float:
        for invocation in completion.tool_invocations:
            output = invocation.output or {}
            if output.get("dateIso") == date_iso:
                return float(output.get("confidence", VERDICT_CONFIDENCE))
        return VERDICT_CONFIDENCE

    def _commitment(self, text: str, date_iso: str, confidence: float) -> Analysis:
        commitment_text = extract_commitment_text(text)
        logger.info(f"Extracted commitment: {commitment_text!r} for date: {date_iso}")
        return Analysis(
            has_commitment=True,
            commitment=Commitment(date_iso=date_iso, text=commitment_text, confidence=confidence),
            strategy=self.name,
        )


class CommitmentAnalyzer:
    """Fixed try/fallback chain over the two strategies."""

    def __init__(self, primary: CommitmentStrategy | None = None, fallback: CommitmentStrategy | None = None):
        self.primary = primary
        self.fallback = fallback or FallbackStrategy()

    async def analyze(self, text: str, reference_date: date | None = None) -> Analysis:
        reference_date = reference_date or utc_today()
        if self.primary is not None:
            try:
                return await self.primary.analyze(text, reference_date)
            except Exception as e:
                logger.warning(f"{self.primary.name} analysis failed, falling back to pattern matching: {e!r}")
        return await self.fallback.analyze(text, reference_date)


def build_analyzer(llm: LLMClient | None, ai_enabled: bool, timeout: float = 20.0) -> CommitmentAnalyzer:
    """Analyzer with the LLM strategy in front when it is enabled and a client exists."""
    if ai_enabled and llm is not None and llm.available():
        return CommitmentAnalyzer(primary=AIStrategy(llm, timeout=timeout))
    return CommitmentAnalyzer()
