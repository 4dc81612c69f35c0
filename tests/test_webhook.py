from __future__ import annotations

import asyncio

from conftest import STREAM_SECRET, load_meeting, make_agent, make_meeting, sign_body

from meetai.core.errors import UpstreamError
from meetai.services.chat import ChannelMessage
from meetai.services.llm import classify_error
from meetai.webhooks import WebhookDispatcher


def _started(meeting_id: str) -> dict:
    return {"type": "call.session_started", "call": {"custom": {"meetingId": meeting_id}}}


def _ended(meeting_id: str) -> dict:
    return {"type": "call.session_ended", "call": {"custom": {"meetingId": meeting_id}}}


def _transcription(meeting_id: str, url: str = "https://cdn.example/t.jsonl") -> dict:
    return {
        "type": "call.transcription_ready",
        "call_cid": f"default:{meeting_id}",
        "call_transcription": {"url": url},
    }


def _message(channel_id: str, user_id: str, text: str) -> dict:
    return {
        "type": "message.new",
        "user": {"id": user_id},
        "channel_id": channel_id,
        "message": {"text": text},
    }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def test_missing_headers_is_400(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)

    r = send_event(_started(meeting.id), signature="")
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"

    r = send_event(_started(meeting.id), api_key=None)
    assert r.status_code == 400


def test_bad_signature_is_401_and_changes_nothing(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)

    r = send_event(_started(meeting.id), signature="0" * 64)
    assert r.status_code == 401
    assert r.json()["error"] == "AuthError"

    assert load_meeting(meeting.id).status == "upcoming"
    assert fakes.video.connected == []


def test_wrong_api_key_is_401(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)

    r = send_event(_started(meeting.id), api_key="someone-else")
    assert r.status_code == 401
    assert load_meeting(meeting.id).status == "upcoming"


def test_non_ascii_signature_is_401(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)

    # header bytes arrive latin-1 decoded, so this is a non-ASCII str server side
    r = send_event(_started(meeting.id), signature=b"\xe9" * 64)
    assert r.status_code == 401
    assert r.json()["error"] == "AuthError"

    assert load_meeting(meeting.id).status == "upcoming"
    assert fakes.video.connected == []


def test_signature_covers_raw_body(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)
    sig = sign_body(STREAM_SECRET, b'{"type": "call.session_ended"}')
    # same JSON, different bytes
    r = send_event(None, raw=b'{"type":"call.session_ended"}', signature=sig)
    assert r.status_code == 401
    assert load_meeting(meeting.id).status == "upcoming"


def test_invalid_json_is_400(send_event, fakes):
    assert send_event(None, raw=b"not json").status_code == 400
    assert send_event(None, raw=b"[1, 2]").status_code == 400


def test_unknown_event_type_is_acknowledged(send_event, fakes):
    r = send_event({"type": "call.member_added", "call_cid": "default:x"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# call.session_started
# ---------------------------------------------------------------------------


def test_session_started_activates_and_connects_agent(send_event, fakes):
    agent = make_agent(instructions="Quiz the user on chapter 3.")
    meeting = make_meeting(agent.id)

    r = send_event(_started(meeting.id))
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "ok"}

    stored = load_meeting(meeting.id)
    assert stored.status == "active"
    assert stored.started_at is not None
    assert fakes.video.connected == [("default", meeting.id, agent.id, "Quiz the user on chapter 3.")]


def test_session_started_missing_meeting_id_is_400(send_event, fakes):
    r = send_event({"type": "call.session_started", "call": {"custom": {}}})
    assert r.status_code == 400


def test_session_started_for_active_meeting_is_404(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="active")

    r = send_event(_started(meeting.id))
    assert r.status_code == 404
    assert fakes.video.connected == []
    assert load_meeting(meeting.id).status == "active"


def test_duplicate_session_started_activates_once(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)

    assert send_event(_started(meeting.id)).status_code == 200
    assert send_event(_started(meeting.id)).status_code == 404
    assert len(fakes.video.connected) == 1


def test_session_started_unknown_meeting_is_404(send_event, fakes):
    r = send_event(_started("does-not-exist"))
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"


def test_session_started_quota_error_is_402(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)
    fakes.video.connect_error = classify_error(
        RuntimeError("You exceeded your current quota"), "OpenAI integration"
    )

    r = send_event(_started(meeting.id))
    assert r.status_code == 402
    assert r.json()["error"] == "QuotaError"


def test_session_started_other_connect_failure_is_500(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)
    fakes.video.connect_error = classify_error(RuntimeError("socket closed"), "OpenAI integration")

    r = send_event(_started(meeting.id))
    assert r.status_code == 500
    assert r.json()["message"] == "OpenAI integration failed"


def test_unexpected_exception_is_500(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id)
    fakes.video.connect_error = KeyError("boom")

    r = send_event(_started(meeting.id))
    assert r.status_code == 500
    assert r.json()["message"] == "Webhook processing failed"


# ---------------------------------------------------------------------------
# participant left / session ended
# ---------------------------------------------------------------------------


def test_participant_left_ends_call(send_event, fakes):
    r = send_event({"type": "call.session_participant_left", "call_cid": "default:abc"})
    assert r.status_code == 200
    assert fakes.video.ended == [("default", "abc")]


def test_participant_left_bad_cid_is_400(send_event, fakes):
    r = send_event({"type": "call.session_participant_left", "call_cid": "abc"})
    assert r.status_code == 400
    assert fakes.video.ended == []


def test_participant_left_end_failure_is_500(send_event, fakes):
    fakes.video.end_error = UpstreamError("Ending call failed")
    r = send_event({"type": "call.session_participant_left", "call_cid": "default:abc"})
    assert r.status_code == 500


def test_session_ended_moves_active_to_processing(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="active")

    assert send_event(_ended(meeting.id)).status_code == 200
    stored = load_meeting(meeting.id)
    assert stored.status == "processing"
    assert stored.ended_at is not None
    assert fakes.video.disconnected == [("default", meeting.id)]


def _record_thread(monkeypatch, name: str) -> list:
    """Wrap a dispatcher DB helper and note whether it ran on the event loop."""
    seen: list = []
    real = getattr(WebhookDispatcher, name)

    def spy(self, *args, **kwargs):
        try:
            asyncio.get_running_loop()
            seen.append("loop")
        except RuntimeError:
            seen.append("worker")
        return real(self, *args, **kwargs)

    monkeypatch.setattr(WebhookDispatcher, name, spy)
    return seen


def test_database_work_runs_off_the_event_loop(send_event, fakes, monkeypatch):
    agent = make_agent()
    meeting = make_meeting(agent.id)
    activated = _record_thread(monkeypatch, "_activate")
    ended = _record_thread(monkeypatch, "_mark_processing")

    assert send_event(_started(meeting.id)).status_code == 200
    assert send_event(_ended(meeting.id)).status_code == 200

    assert activated == ["worker"]
    assert ended == ["worker"]
    assert load_meeting(meeting.id).status == "processing"


def test_session_ended_is_noop_when_not_active(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="completed")

    assert send_event(_ended(meeting.id)).status_code == 200
    stored = load_meeting(meeting.id)
    assert stored.status == "completed"
    assert stored.ended_at is None


# ---------------------------------------------------------------------------
# transcription / recording
# ---------------------------------------------------------------------------


def test_transcription_ready_stores_url_and_enqueues(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="processing")

    r = send_event(_transcription(meeting.id, "https://cdn.example/a.jsonl"))
    assert r.status_code == 200
    assert load_meeting(meeting.id).transcript_url == "https://cdn.example/a.jsonl"
    assert fakes.enqueue.calls == [(meeting.id, "https://cdn.example/a.jsonl")]


def test_transcription_ready_unknown_meeting_is_404_and_not_enqueued(send_event, fakes):
    r = send_event(_transcription("ghost"))
    assert r.status_code == 404
    assert fakes.enqueue.calls == []


def test_transcription_ready_missing_url_is_400(send_event, fakes):
    r = send_event({"type": "call.transcription_ready", "call_cid": "default:x"})
    assert r.status_code == 400


def test_transcription_ready_enqueue_failure_is_500(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="processing")
    fakes.enqueue.error = ConnectionError("redis down")

    r = send_event(_transcription(meeting.id))
    assert r.status_code == 500
    assert r.json()["error"] == "UpstreamError"


def test_recording_ready_stores_url(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="processing")

    r = send_event(
        {
            "type": "call.recording_ready",
            "call_cid": f"default:{meeting.id}",
            "call_recording": {"url": "https://cdn.example/r.mp4"},
        }
    )
    assert r.status_code == 200
    assert load_meeting(meeting.id).recording_url == "https://cdn.example/r.mp4"


def test_recording_ready_unknown_meeting_is_404(send_event, fakes):
    r = send_event(
        {
            "type": "call.recording_ready",
            "call_cid": "default:ghost",
            "call_recording": {"url": "https://cdn.example/r.mp4"},
        }
    )
    assert r.status_code == 404


# ---------------------------------------------------------------------------
# message.new
# ---------------------------------------------------------------------------


def test_message_new_replies_as_agent(send_event, fakes):
    agent = make_agent(name="Coach", instructions="Be upbeat.")
    meeting = make_meeting(agent.id, status="completed", summary="We agreed to ship Friday.")
    fakes.chat.messages = [
        ChannelMessage(text="too old", user_id="u1"),
        ChannelMessage(text="first", user_id="u1"),
        ChannelMessage(text="", user_id="u1"),
        ChannelMessage(text="reply one", user_id=agent.id),
        ChannelMessage(text="second", user_id="u1"),
        ChannelMessage(text="   ", user_id="u1"),
        ChannelMessage(text="reply two", user_id=agent.id),
        ChannelMessage(text="third", user_id="u1"),
    ]

    r = send_event(_message(meeting.id, "u1", "When do we ship?"))
    assert r.status_code == 200, r.text

    messages = fakes.llm.calls[0]["messages"]
    assert messages[0]["role"] == "system"
    assert "We agreed to ship Friday." in messages[0]["content"]
    assert "Be upbeat." in messages[0]["content"]
    # last five non-empty channel messages, then the new one
    assert messages[1:] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "reply one"},
        {"role": "user", "content": "second"},
        {"role": "assistant", "content": "reply two"},
        {"role": "user", "content": "third"},
        {"role": "user", "content": "When do we ship?"},
    ]

    assert fakes.chat.sent == [(meeting.id, fakes.llm.reply, agent.id)]
    user_id, name, image = fakes.chat.users[0]
    assert (user_id, name) == (agent.id, "Coach")
    assert image.startswith("https://api.dicebear.com/")


def test_message_new_from_agent_is_ignored(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="completed")

    r = send_event(_message(meeting.id, agent.id, "echo"))
    assert r.status_code == 200
    assert fakes.llm.calls == []
    assert fakes.chat.sent == []


def test_message_new_requires_completed_meeting(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="active")

    r = send_event(_message(meeting.id, "u1", "hi"))
    assert r.status_code == 404
    assert fakes.llm.calls == []


def test_message_new_missing_fields_is_400(send_event, fakes):
    r = send_event({"type": "message.new", "channel_id": "x", "message": {"text": "hi"}})
    assert r.status_code == 400


def test_message_new_empty_llm_reply_is_400(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="completed")
    fakes.llm.reply = ""

    r = send_event(_message(meeting.id, "u1", "hi"))
    assert r.status_code == 400
    assert r.json()["message"] == "No response from LLM"
    assert fakes.chat.sent == []


def test_message_new_quota_is_402(send_event, fakes):
    agent = make_agent()
    meeting = make_meeting(agent.id, status="completed")
    fakes.llm.error = classify_error(RuntimeError("insufficient quota"), "LLM completion")

    r = send_event(_message(meeting.id, "u1", "hi"))
    assert r.status_code == 402


def test_webhook_events_are_counted(client, send_event, fakes):
    send_event({"type": "call.member_added"})
    body = client.get("/metrics-prom").text
    assert 'webhook_events_total{kind="other",status="200"}' in body
