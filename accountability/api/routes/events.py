"""Inbound message events — one call per created chat message, delivered at least once."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from accountability.api.dependencies import get_orchestrator, verify_api_key
from accountability.api.schemas import MessageEvent, PipelineOutcomeOut
from accountability.engine.pipeline import FILTERED_OUT, RECEIVED, InboundMessage, PipelineOrchestrator

logger = logging.getLogger("accountability.api.events")

router = APIRouter(prefix="/api/events", tags=["events"])


@router.post("/messages", response_model=PipelineOutcomeOut)
async def message_created(
    event: MessageEvent,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    _auth: None = Depends(verify_api_key),
) -> dict:
    """Run the commitment pipeline for a new message.

    Every terminal outcome answers 200, including filtered messages and
    duplicates. Storage or analysis failures answer 500 so the event source
    retries the whole event.
    """
    if event.data is None:
        logger.warning(f"No data found for message {event.messageId}")
        return {"state": FILTERED_OUT, "history": [RECEIVED, FILTERED_OUT]}

    message = InboundMessage.from_event(event.sessionId, event.messageId, event.data.model_dump())
    try:
        outcome = await orchestrator.process(message)
    except Exception as e:
        logger.error(f"Error processing message {event.messageId}: {e!r}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Message processing failed; retry the event",
        )
    return outcome.to_dict()
