from healthmate import config
from healthmate.chat import AI_UNAVAILABLE
from conftest import auth_headers


def send(client, token, message):
    return client.post("/api/chat/message", json={"message": message}, headers=auth_headers(token))


def history(client, token):
    return client.get("/api/chat/history", headers=auth_headers(token)).json()["data"]


def test_send_and_history(client, user_token, fake_ai):
    res = send(client, user_token, "  Is 120/80 normal?  ")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["userMessage"]["sender"] == "user"
    assert data["userMessage"]["text"] == "Is 120/80 normal?"
    assert data["aiMessage"]["sender"] == "ai"
    assert data["aiMessage"]["text"] == "echo: Is 120/80 normal?"

    msgs = history(client, user_token)["messages"]
    assert [m["sender"] for m in msgs] == ["user", "ai"]


def test_prior_turns_are_passed_as_context(client, user_token, fake_ai):
    send(client, user_token, "first")
    send(client, user_token, "second")
    _, message, prior = fake_ai.calls[-1]
    assert message == "second"
    assert [m["text"] for m in prior] == ["first", "echo: first"]


def test_empty_message_rejected(client, user_token):
    assert send(client, user_token, "   ").status_code == 400
    assert client.post("/api/chat/message", json={"message": 42}, headers=auth_headers(user_token)).status_code == 400


def test_ai_failure_falls_back(client, user_token, fake_ai):
    fake_ai.fail = True
    res = send(client, user_token, "hello")
    assert res.status_code == 200
    assert res.json()["data"]["aiMessage"]["text"] == AI_UNAVAILABLE
    assert len(history(client, user_token)["messages"]) == 2


def test_history_is_capped(client, user_token):
    for i in range(26):
        send(client, user_token, f"msg {i}")
    msgs = history(client, user_token)["messages"]
    assert len(msgs) == config.CHAT_HISTORY_LIMIT
    # 52 messages were written; the oldest user/ai pair is gone
    assert msgs[0]["text"] == "msg 1"
    assert msgs[-1]["text"] == "echo: msg 25"


def test_empty_history_and_clear(client, user_token):
    assert history(client, user_token)["messages"] == []
    cleared = client.delete("/api/chat/history", headers=auth_headers(user_token))
    assert cleared.json()["message"] == "No chat history to clear"

    send(client, user_token, "hi")
    res = client.delete("/api/chat/history", headers=auth_headers(user_token))
    assert res.json()["message"] == "Chat history cleared successfully"
    assert history(client, user_token)["messages"] == []
