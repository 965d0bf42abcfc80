"""Chat API endpoints.

This module provides endpoints for running the current conversation through
the orchestrator, either returning the complete result or streaming each
appended message via SSE.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from toolrelay.agents import AgentContext, MessageAppended, RunFinished
from toolrelay.conversation import UserMessage
from toolrelay.dependencies import get_context
from toolrelay.exceptions import GenerationError
from toolrelay.models.chat import (
    ChatRequest,
    ChatResponse,
    DoneEvent,
    ErrorEvent,
    MessageListResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _ensure_idle(context: AgentContext) -> None:
    """Reject the request if a run is already in progress.

    Raises:
        HTTPException: 409 if the conversation is busy
    """
    if context.conversation_lock.locked():
        raise HTTPException(
            status_code=409,
            detail={
                "error": {
                    "code": "conversation_busy",
                    "message": "A conversation run is already in progress",
                    "details": {},
                }
            },
        )


def _lock_releaser(lock: asyncio.Lock) -> Callable[[], Awaitable[None]]:
    """Create a callback releasing an acquired lock at most once.

    Both the event generator and the response's background task release the
    lock of a streamed run; whichever runs first wins.
    """
    released = False

    async def release() -> None:
        nonlocal released
        if not released:
            released = True
            lock.release()

    return release


@router.post("", response_model=ChatResponse)
async def chat(
    request_body: ChatRequest,
    context: AgentContext = Depends(get_context),
) -> ChatResponse:
    """Send a message and run the conversation to completion.

    Args:
        request_body: Chat request containing the user message
        context: Injected agent context

    Returns:
        ChatResponse with the final message and every appended message

    Raises:
        HTTPException: 409 if a run is in progress, 502 if generation fails
    """
    _ensure_idle(context)

    async with context.conversation_lock:
        context.conversation.append(UserMessage(content=request_body.message))
        logger.info(f"Running conversation with {len(context.conversation)} messages")

        try:
            result = await context.orchestrator.run(context.conversation)
        except GenerationError as e:
            logger.error(f"Generation failed: {e}")
            raise HTTPException(
                status_code=502,
                detail={
                    "error": {
                        "code": "generation_error",
                        "message": f"Failed to generate response: {e}",
                        "details": {},
                    }
                },
            )

    logger.info(f"Run finished: {result.stop_reason.value} after {result.rounds} rounds")
    return ChatResponse.from_result(result)


@router.post("/stream")
async def chat_streaming(
    request_body: ChatRequest,
    context: AgentContext = Depends(get_context),
) -> EventSourceResponse:
    """Stream a conversation run via Server-Sent Events (SSE).

    Args:
        request_body: Chat request containing the user message
        context: Injected agent context

    Returns:
        EventSourceResponse with SSE events

    SSE Events:
        - message: Each message appended to the conversation, in order
        - done: The run finished (stop reason and round count)
        - error: Generation failed; no done event follows

    Raises:
        HTTPException: 409 if a run is in progress
    """
    _ensure_idle(context)
    # Held until the stream ends, so a second request sees the run as busy
    await context.conversation_lock.acquire()
    release = _lock_releaser(context.conversation_lock)

    async def event_generator():
        """Generate SSE events from the orchestrator's run events."""
        context.conversation.append(UserMessage(content=request_body.message))
        logger.info(f"Starting streamed run with {len(context.conversation)} messages")

        run = context.orchestrator.run_iter(context.conversation)
        try:
            async for event in run:
                if isinstance(event, MessageAppended):
                    yield {
                        "event": "message",
                        "data": MessageResponse.from_message(event.message).model_dump_json(),
                    }
                elif isinstance(event, RunFinished):
                    done_event = DoneEvent(
                        stop_reason=event.result.stop_reason.value,
                        rounds=event.result.rounds,
                    )
                    yield {
                        "event": "done",
                        "data": done_event.model_dump_json(),
                    }

        except GenerationError as e:
            logger.error(f"Generation failed during streamed run: {e}")
            error_event = ErrorEvent(
                code="generation_error",
                message=f"Failed to generate response: {e}",
            )
            yield {
                "event": "error",
                "data": error_event.model_dump_json(),
            }
        finally:
            await run.aclose()
            await release()

    stream = event_generator()

    async def finish() -> None:
        # Also covers disconnects, where the generator may be left suspended
        await stream.aclose()
        await release()

    return EventSourceResponse(stream, background=BackgroundTask(finish))


@router.get("/messages", response_model=MessageListResponse)
async def get_messages(context: AgentContext = Depends(get_context)) -> MessageListResponse:
    """Get every message of the current conversation in append order."""
    messages = [MessageResponse.from_message(m) for m in context.conversation.render()]
    return MessageListResponse(messages=messages, count=len(messages))


@router.delete("", status_code=204)
async def reset_conversation(context: AgentContext = Depends(get_context)) -> None:
    """Discard the current conversation and start a fresh one.

    Raises:
        HTTPException: 409 if a run is in progress
    """
    _ensure_idle(context)
    context.new_conversation()
