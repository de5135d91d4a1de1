import json
from datetime import date, datetime
from types import SimpleNamespace

import httpx
import openai
import pytest

from bucketlistt import chat
from bucketlistt.sessions import ANONYMOUS, AuthSession
from conftest import make_booking


class FakeCompletions:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def groq(app, monkeypatch):
    def install(reply=None, error=None):
        completions = FakeCompletions(reply, error)
        client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
        monkeypatch.setattr(chat, "get_groq_client", lambda: client)
        return completions
    return install


def api_error(error_class, status_code, body):
    response = httpx.Response(status_code, request=httpx.Request("POST", chat.GROQ_BASE_URL + "/chat/completions"))
    return error_class(f"Error code: {status_code}", response=response, body=body)


def test_context_string_for_anonymous_visitor():
    text = chat.build_context_string({"session": False, "user": None, "system_time": "2025-06-01T08:00:00+00:00"})
    assert text.startswith("CONTEXT VARIABLES:\n\n- session: false\n")
    assert "- user: null (not logged in)" in text
    assert "- system_time: 2025-06-01T08:00:00+00:00" in text
    assert chat.build_context_string(None) == "No context provided."


def test_context_string_caps_and_trims():
    context = {
        "session": True,
        "user": {"id": 7, "name": None, "email": "asha@example.com"},
        "available_destinations": [{"id": i, "name": f"D{i}", "extra": "x"} for i in range(8)],
        "available_activities": [
            {"id": i, "title": "Rishikesh Rafting - Grade 3", "short_description": "r" * 120}
            for i in range(25)
        ],
        "user_bookings": [{"id": i, "status": "confirmed", "vendor": "hidden"} for i in range(9)],
    }
    text = chat.build_context_string(context)
    lines = {line.split(":", 1)[0]: line.split(": ", 1)[1] for line in text.splitlines() if line.startswith("- ")}

    assert lines["- user"] == '{ id: "7", name: "N/A", email: "asha@example.com" }'
    assert json.loads(lines["- available_destinations"]) == [{"id": i, "name": f"D{i}"} for i in range(5)]

    activities = json.loads(lines["- available_activities"])
    assert len(activities) == 20
    assert activities[0]["activity_name"] == "Grade 3"
    assert activities[0]["experience_title"] == "Rishikesh Rafting"
    assert activities[0]["short_description"] == "r" * 80 + "..."
    assert "duration" not in activities[0]

    user_bookings = json.loads(lines["- user_bookings"])
    assert len(user_bookings) == 5
    assert "vendor" not in user_bookings[0]


def test_assemble_context_for_vendor(app, customer, vendor, slot, activity):
    vendor.profile.company_name = "Jumpin Heights"
    make_booking(customer, slot, date(2025, 6, 1), 2)
    now = datetime(2025, 6, 1, 6, 30)

    context = chat.assemble_context(AuthSession(user_id=vendor.id, email=vendor.email, roles=["vendor"]), now=now)
    assert context["session"] is True
    assert context["user"]["name"] == "vendor"
    assert context["available_destinations"] == [{"id": 1, "name": "Rishikesh"}]
    assert context["available_activities"][0]["title"] == "Rishikesh Bungy - Himalayan Bungy – 117m"
    assert context["available_activities"][0]["price_range"] == "₹3500"
    assert [b["time"] for b in context["today_bookings"]] == ["10:00 AM"]
    assert context["vendor_info"]["company_name"] == "Jumpin Heights"


def test_assemble_context_anonymous(app, activity):
    context = chat.assemble_context(ANONYMOUS)
    assert context["session"] is False
    assert context["user"] is None
    assert "user_bookings" not in context
    assert len(context["available_activities"]) == 1


def test_groq_client_points_at_groq(app):
    client = chat.get_groq_client()
    assert client.api_key == "gsk_test"
    assert str(client.base_url).rstrip("/") == chat.GROQ_BASE_URL
    assert chat.get_groq_client() is client


def test_ask_assistant_parses_json_reply(app, groq):
    completions = groq(json.dumps({
        "assistant_message": "Here are rafting trips 🚣",
        "ui_payload": {"type": "list", "items": [{"id": 1}]},
    }))
    reply = chat.ask_assistant("  rafting in rishikesh? ", {"session": False})

    assert reply["assistant_message"] == "Here are rafting trips 🚣"
    assert reply["ui_payload"]["type"] == "list"
    (call,) = completions.calls
    assert call["response_format"] == {"type": "json_object"}
    assert call["model"] == app.config["GROQ_MODEL"]
    assert call["messages"][1] == {"role": "user", "content": "rafting in rishikesh?"}
    assert "- session: false" in call["messages"][0]["content"]


def test_ask_assistant_falls_back_to_raw_text(app, groq):
    groq("Just plain words")
    assert chat.ask_assistant("hi", None)["assistant_message"] == "Just plain words"


def test_rate_limit_is_explained(app, groq):
    groq(error=api_error(openai.RateLimitError, 429, {
        "code": "rate_limit_exceeded", "message": "Please try again in 7.2s.",
    }))
    reply = chat.ask_assistant("hi", None)
    assert reply["error"] is True
    assert reply["assistant_message"] == "Rate limit exceeded. Please wait 8 seconds before trying again."


def test_token_limit_points_to_support(app, groq):
    groq(error=api_error(openai.BadRequestError, 400, {"code": "context_length_exceeded", "message": "Too long"}))
    reply = chat.ask_assistant("hi", None)
    assert "+91 8511838237" in reply["assistant_message"]


def test_connection_failure_gives_generic_reply(app, groq):
    request = httpx.Request("POST", chat.GROQ_BASE_URL + "/chat/completions")
    groq(error=openai.APIConnectionError(request=request))
    reply = chat.ask_assistant("hi", None)
    assert reply == {"assistant_message": chat.GENERIC_ERROR, "error": True}
