"""Message pipeline — filter, analyze, store, schedule.

One call of PipelineOrchestrator.process handles one inbound message event
and returns the terminal state it reached. The orchestrator keeps no state
between calls; redelivered events are made harmless by the repository's
conditional insert, not by anything here.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from accountability.db.reminders import ReminderRepository, new_reminder
from accountability.engine.commitments import CommitmentAnalyzer
from accountability.tasks.scheduler import InvalidReminderDate, NotificationScheduler, SchedulingError

logger = logging.getLogger("accountability.engine.pipeline")

RECEIVED = "RECEIVED"
FILTERED_OUT = "FILTERED_OUT"
ANALYZED = "ANALYZED"
NO_COMMITMENT = "NO_COMMITMENT"
COMMITMENT_FOUND = "COMMITMENT_FOUND"
REMINDER_EXISTING = "REMINDER_EXISTING"
REMINDER_CREATED = "REMINDER_CREATED"
NOTIFICATION_SCHEDULED = "NOTIFICATION_SCHEDULED"
NOTIFICATION_FAILED = "NOTIFICATION_FAILED"

STATES = {
    RECEIVED, FILTERED_OUT, ANALYZED, NO_COMMITMENT, COMMITMENT_FOUND,
    REMINDER_EXISTING, REMINDER_CREATED, NOTIFICATION_SCHEDULED, NOTIFICATION_FAILED,
}
TERMINAL_STATES = {
    FILTERED_OUT, NO_COMMITMENT, REMINDER_EXISTING, REMINDER_CREATED,
    NOTIFICATION_SCHEDULED, NOTIFICATION_FAILED,
}

ELIGIBLE_ROLE = "user"


@dataclass(frozen=True)
class InboundMessage:
    id: str
    session_id: str
    user_id: str
    content: str
    created_at: datetime
    role: str

    @classmethod
    def from_event(cls, session_id: str, message_id: str, data: dict) -> "InboundMessage":
        """Build a message from a message-created event document."""
        return cls(
            id=message_id,
            session_id=session_id,
            user_id=data.get("userId") or "",
            content=data.get("content") or "",
            created_at=data.get("timestamp") or datetime.now(timezone.utc),
            role=data.get("type") or "",
        )


@dataclass
class PipelineOutcome:
    state: str
    history: list[str] = field(default_factory=list)
    reminder_id: str | None = None
    task_id: str | None = None
    date_iso: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class PipelineOrchestrator:
    def __init__(
        self,
        analyzer: CommitmentAnalyzer,
        repository: ReminderRepository,
        scheduler: NotificationScheduler | None = None,
        skip_scheduling: bool = False,
    ):
        self.analyzer = analyzer
        self.repository = repository
        self.scheduler = scheduler
        self.skip_scheduling = skip_scheduling

    async def process(self, message: InboundMessage, reference_date: date | None = None) -> PipelineOutcome:
        """Run one message through the pipeline.

        Analyzer and repository exceptions propagate so the event source
        redelivers the event. Scheduling problems do not: the reminder is
        kept and the outcome is NOTIFICATION_FAILED.
        """
        outcome = PipelineOutcome(state=RECEIVED, history=[RECEIVED])

        def move(state: str) -> PipelineOutcome:
            outcome.state = state
            outcome.history.append(state)
            return outcome

        if message.role != ELIGIBLE_ROLE:
            logger.info(f"Skipping non-user message {message.id}")
            return move(FILTERED_OUT)
        if not message.content.strip() or not message.user_id:
            logger.info(f"Skipping message {message.id}: missing content or userId")
            return move(FILTERED_OUT)

        logger.info(f"Processing user message {message.id} from session {message.session_id}")
        analysis = await self.analyzer.analyze(message.content, reference_date)
        move(ANALYZED)

        if not analysis.has_commitment or analysis.commitment is None:
            logger.info(f"No commitment found in message {message.id}")
            return move(NO_COMMITMENT)

        commitment = analysis.commitment
        outcome.date_iso = commitment.date_iso
        move(COMMITMENT_FOUND)

        reminder, created = await self.repository.upsert(new_reminder(
            user_id=message.user_id,
            date_iso=commitment.date_iso,
            text=commitment.text,
            source_message_id=message.id,
            source_session_id=message.session_id,
        ))
        outcome.reminder_id = reminder.id

        if not created:
            logger.info(f"Reminder already exists for commitment: {commitment.text!r}")
            return move(REMINDER_EXISTING)

        move(REMINDER_CREATED)

        if self.skip_scheduling or self.scheduler is None:
            logger.info(f"Skipping notification scheduling for reminder {reminder.id} (scheduling disabled)")
            return outcome

        try:
            task_id = await self.scheduler.schedule(reminder)
        except InvalidReminderDate as e:
            logger.error(f"Reminder {reminder.id} has an unschedulable date: {e}")
            outcome.error = str(e)
            return move(NOTIFICATION_FAILED)
        except SchedulingError as e:
            logger.warning(f"Failed to schedule notification for reminder {reminder.id}: {e}")
            outcome.error = str(e)
            return move(NOTIFICATION_FAILED)

        await self.repository.attach_task(reminder.id, task_id)
        outcome.task_id = task_id
        logger.info(
            f"Successfully processed commitment for user {message.user_id}: "
            f"{commitment.text!r} on {commitment.date_iso}"
        )
        return move(NOTIFICATION_SCHEDULED)
