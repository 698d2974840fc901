import asyncio

import pytest

from gnosis.chat import ai_service
from gnosis.chat.router import chat_preview, chat_title


@pytest.fixture
def gemini(monkeypatch):
    prompts = []

    async def fake_generate(prompt):
        prompts.append(prompt)
        return "Here is a hint."

    monkeypatch.setattr(ai_service, "generate_gemini_text", fake_generate)
    return prompts


def test_chat_title_truncates_long_messages():
    assert chat_title("short") == "short"
    assert chat_title("x" * 60) == "x" * 50 + "..."


def test_chat_preview():
    assert chat_preview([]) == "No messages"
    assert chat_preview([{"content": "line one\n\nline   two"}]) == "line one line two"
    assert chat_preview([{"content": "y" * 400}]).endswith("...")


def test_build_prompt_keeps_last_ten_messages():
    history = [{"role": "user", "content": f"m{i}"} for i in range(15)]
    prompt = ai_service.build_prompt("latest", history)
    assert prompt.startswith(ai_service.SYSTEM_PERSONA)
    assert "Current user message: latest" in prompt
    assert "User: m5" in prompt
    assert "User: m4\n" not in prompt


def test_tutor_reply_falls_back_when_provider_fails(monkeypatch):
    async def broken(prompt):
        raise RuntimeError("quota exceeded")

    monkeypatch.setattr(ai_service, "generate_gemini_text", broken)
    assert asyncio.run(ai_service.tutor_reply("hi")) == ai_service.FALLBACK_REPLY


def test_new_chat_and_follow_up(client, as_student, gemini):
    created = client.post("/api/chat/new", json={"message": "  What is a prime number?  "})
    assert created.status_code == 201
    chat = created.json()["data"]["chat"]
    assert chat["title"] == "What is a prime number?"
    assert [m["role"] for m in chat["messages"]] == ["user", "assistant"]
    assert chat["messages"][1]["content"] == "Here is a hint."

    reply = client.post(f"/api/chat/{chat['id']}/message", json={"message": "Is 9 prime?"})
    assert reply.status_code == 200
    assert len(reply.json()["data"]["chat"]["messages"]) == 4
    assert "User: What is a prime number?" in gemini[-1]

    recent = client.get("/api/chat/recent").json()["data"]
    assert recent["total"] == 1
    assert recent["chats"][0]["messageCount"] == 4


def test_empty_message_is_rejected(client, as_student, gemini):
    response = client.post("/api/chat/new", json={"message": "   "})
    assert response.status_code == 400
    assert gemini == []


def test_deleted_chat_is_hidden(client, as_student, gemini):
    chat = client.post("/api/chat/new", json={"message": "hello"}).json()["data"]["chat"]
    assert client.delete(f"/api/chat/{chat['id']}").status_code == 200
    assert client.get(f"/api/chat/{chat['id']}").status_code == 404


def test_chat_of_other_user_is_not_found(client, auth, admin, student, gemini):
    auth["user"] = student
    chat = client.post("/api/chat/new", json={"message": "hello"}).json()["data"]["chat"]
    auth["user"] = admin
    assert client.get(f"/api/chat/{chat['id']}").status_code == 404
