from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from meetai.core.errors import NotFoundError, UpstreamError, ValidationError
from meetai.jobs.meetings import MeetingJobEnqueuer
from meetai.logging_utils import get_logger
from meetai.models import Agent, Meeting, MeetingStatus
from meetai.models.meeting import NOT_STARTABLE
from meetai.services.avatar import avatar_uri
from meetai.services.chat import ChatGateway
from meetai.services.llm import LLMService
from meetai.services.video import DEFAULT_CALL_TYPE, VideoGateway, parse_call_cid
from meetai.webhooks.events import EventKind, custom_meeting_id, nested_str

log = get_logger(__name__)

OK: dict[str, str] = {"status": "ok"}
CHAT_CONTEXT_MESSAGES = 5

Payload = Mapping[str, Any]
Handler = Callable[[Payload], Awaitable[dict[str, Any]]]


def post_meeting_instructions(summary: str | None, agent_instructions: str) -> str:
    return f"""
You are an AI assistant helping the user revisit a recently completed meeting.
Below is a summary of the meeting, generated from the transcript:

{summary or ""}

The following are your original instructions from the live meeting assistant. Please continue to follow these behavioral guidelines as you assist the user:

{agent_instructions}

The user may ask questions about the meeting, request clarifications, or ask for follow-up actions.
Always base your responses on the meeting summary above.

You also have access to the recent conversation history between you and the user. Use the context of previous messages to provide relevant, coherent, and helpful responses. If the user's question refers to something discussed earlier, make sure to take that into account and maintain continuity in the conversation.

If the summary does not contain enough information to answer a question, politely let the user know.

Be concise, helpful, and focus on providing accurate information from the meeting and the ongoing conversation.
""".strip()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebhookDispatcher:
    """
    Applies one verified provider event.

    Each handler either returns a JSON body for a 200 or raises an ``AppError``
    (400/402/404/500). Status transitions are conditional UPDATEs, so a
    duplicate event finds zero matching rows instead of applying twice.
    """

    def __init__(
        self,
        db: Session,
        video: VideoGateway,
        chat: Callable[[], ChatGateway],
        llm: Callable[[], LLMService],
        enqueue_processing: MeetingJobEnqueuer,
    ) -> None:
        self.db = db
        self.video = video
        self._chat = chat
        self._llm = llm
        self._enqueue_processing = enqueue_processing
        self._handlers: dict[EventKind, Handler] = {
            EventKind.SESSION_STARTED: self._on_session_started,
            EventKind.SESSION_PARTICIPANT_LEFT: self._on_participant_left,
            EventKind.SESSION_ENDED: self._on_session_ended,
            EventKind.TRANSCRIPTION_READY: self._on_transcription_ready,
            EventKind.RECORDING_READY: self._on_recording_ready,
            EventKind.MESSAGE_NEW: self._on_message_new,
        }

    async def dispatch(self, payload: Payload) -> dict[str, Any]:
        kind = EventKind.parse(payload.get("type"))
        if kind is None:
            log.info("webhook event ignored", extra={"event_type": payload.get("type")})
            return OK
        return await self._handlers[kind](payload)

    # ------------------------------------------------------------------
    # call lifecycle
    # ------------------------------------------------------------------

    async def _on_session_started(self, payload: Payload) -> dict[str, Any]:
        meeting_id = custom_meeting_id(payload)
        if not meeting_id:
            raise ValidationError("Missing meetingId")

        agent_id, instructions = await run_in_threadpool(self._activate, meeting_id)
        log.info("meeting activated", extra={"meeting_id": meeting_id, "agent_id": agent_id})
        await self.video.connect_agent(DEFAULT_CALL_TYPE, meeting_id, agent_id, instructions)
        return OK

    def _activate(self, meeting_id: str) -> tuple[str, str]:
        meeting = self.db.execute(
            select(Meeting).where(Meeting.id == meeting_id, Meeting.status.not_in(NOT_STARTABLE))
        ).scalar_one_or_none()
        if meeting is None:
            raise NotFoundError("Meeting not found")

        agent = self.db.get(Agent, meeting.agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        agent_id, instructions = agent.id, agent.instructions

        result = self.db.execute(
            update(Meeting)
            .where(Meeting.id == meeting_id, Meeting.status.not_in(NOT_STARTABLE))
            .values(status=MeetingStatus.active.value, started_at=_now())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            # lost the race against a duplicate event
            raise NotFoundError("Meeting not found")
        return agent_id, instructions

    async def _on_participant_left(self, payload: Payload) -> dict[str, Any]:
        parsed = parse_call_cid(nested_str(payload, "call_cid"))
        if parsed is None:
            raise ValidationError("Missing meetingId")
        call_type, call_id = parsed
        await self.video.end_call(call_type, call_id)
        log.info("call ended after participant left", extra={"meeting_id": call_id})
        return OK

    async def _on_session_ended(self, payload: Payload) -> dict[str, Any]:
        meeting_id = custom_meeting_id(payload)
        if not meeting_id:
            raise ValidationError("Missing meetingId")

        transitioned = await run_in_threadpool(self._mark_processing, meeting_id)
        log.info(
            "meeting session ended",
            extra={"meeting_id": meeting_id, "transitioned": transitioned},
        )
        await self.video.disconnect_agent(DEFAULT_CALL_TYPE, meeting_id)
        return OK

    def _mark_processing(self, meeting_id: str) -> bool:
        result = self.db.execute(
            update(Meeting)
            .where(Meeting.id == meeting_id, Meeting.status == MeetingStatus.active.value)
            .values(status=MeetingStatus.processing.value, ended_at=_now())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return bool(result.rowcount)

    async def _on_transcription_ready(self, payload: Payload) -> dict[str, Any]:
        parsed = parse_call_cid(nested_str(payload, "call_cid"))
        url = nested_str(payload, "call_transcription", "url")
        if parsed is None or not url:
            raise ValidationError("Missing meetingId or transcription url")
        meeting_id = parsed[1]

        await run_in_threadpool(self._set_url, meeting_id, transcript_url=url)
        try:
            await run_in_threadpool(self._enqueue_processing, meeting_id, url)
        except Exception as exc:
            log.exception("enqueue process_meeting failed", extra={"meeting_id": meeting_id})
            raise UpstreamError("Failed to enqueue meeting processing", details=str(exc)) from exc
        return OK

    async def _on_recording_ready(self, payload: Payload) -> dict[str, Any]:
        parsed = parse_call_cid(nested_str(payload, "call_cid"))
        url = nested_str(payload, "call_recording", "url")
        if parsed is None or not url:
            raise ValidationError("Missing meetingId or recording url")
        await run_in_threadpool(self._set_url, parsed[1], recording_url=url)
        return OK

    def _set_url(self, meeting_id: str, **values: str) -> None:
        result = self.db.execute(
            update(Meeting)
            .where(Meeting.id == meeting_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            raise NotFoundError("Meeting not found")
        log.info("meeting artifact stored", extra={"meeting_id": meeting_id, "fields": sorted(values)})

    # ------------------------------------------------------------------
    # post-meeting chat
    # ------------------------------------------------------------------

    async def _on_message_new(self, payload: Payload) -> dict[str, Any]:
        user_id = nested_str(payload, "user", "id")
        channel_id = nested_str(payload, "channel_id")
        text = nested_str(payload, "message", "text")
        if not user_id or not channel_id or not text:
            raise ValidationError("Missing required fields")

        meeting, agent = await run_in_threadpool(self._completed_meeting, channel_id)
        if user_id == agent.id:
            # the agent's own reply echoing back
            return OK

        chat = self._chat()
        try:
            history = await run_in_threadpool(chat.recent_messages, channel_id)
        except Exception as exc:
            raise UpstreamError("Failed to read chat history", details=str(exc)) from exc

        context = [
            {
                "role": "assistant" if msg.user_id == agent.id else "user",
                "content": msg.text,
            }
            for msg in history
            if msg.text and msg.text.strip()
        ][-CHAT_CONTEXT_MESSAGES:]

        messages = [
            {"role": "system", "content": post_meeting_instructions(meeting.summary, agent.instructions)},
            *context,
            {"role": "user", "content": text},
        ]
        reply = await run_in_threadpool(self._llm().complete, messages)
        if not reply:
            raise ValidationError("No response from LLM")

        image = avatar_uri(agent.name, "botttsNeutral")
        try:
            await run_in_threadpool(chat.upsert_user, agent.id, agent.name, image)
            await run_in_threadpool(chat.send_message, channel_id, reply, agent.id)
        except Exception as exc:
            raise UpstreamError("Failed to post chat reply", details=str(exc)) from exc

        log.info("chat reply posted", extra={"meeting_id": channel_id, "agent_id": agent.id})
        return OK

    def _completed_meeting(self, meeting_id: str) -> tuple[Meeting, Agent]:
        meeting = self.db.execute(
            select(Meeting).where(
                Meeting.id == meeting_id, Meeting.status == MeetingStatus.completed.value
            )
        ).scalar_one_or_none()
        if meeting is None:
            raise NotFoundError("Meeting not found")

        agent = self.db.get(Agent, meeting.agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        return meeting, agent
