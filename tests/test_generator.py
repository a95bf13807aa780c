import pytest
import requests

from promoapp.errors import GenerationError
from promoapp.generator import build_prompt, generate_coupon, parse_coupon_reply

REPLY = '{"eventName": "Coffee Fest", "reward": "Free latte", "purpose": "Launch week", "expirationDate": "2026-12-31"}'


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestParseCouponReply:

    def test_plain_json(self):
        assert parse_coupon_reply(REPLY) == {
            "eventName": "Coffee Fest",
            "reward": "Free latte",
            "purpose": "Launch week",
            "expirationDate": "2026-12-31",
        }

    def test_code_fence_and_chatter(self):
        text = "Sure! Here you go:\n```json\n" + REPLY + "\n```\n"
        assert parse_coupon_reply(text)["eventName"] == "Coffee Fest"

    def test_expiration_date_is_optional(self):
        coupon = parse_coupon_reply('{"eventName": "A", "reward": "B", "purpose": "C"}')
        assert "expirationDate" not in coupon

    @pytest.mark.parametrize("text", [
        "",
        "no json here",
        '{"eventName": "A", "reward": "B"}',
        '["eventName", "reward", "purpose"]',
    ])
    def test_unusable_replies(self, text):
        with pytest.raises(GenerationError):
            parse_coupon_reply(text)


def test_prompt_mentions_description_and_organiser():
    prompt = build_prompt("2 for 1 pizzas on Tuesday", "Luigi's")
    assert "2 for 1 pizzas on Tuesday" in prompt
    assert '"Luigi\'s"' in prompt


def test_generate_coupon_calls_chat_completions(app, mocker):
    post = mocker.patch("promoapp.generator.requests.post")
    post.return_value.json.return_value = completion(REPLY)

    coupon = generate_coupon("Free lattes during launch week", "Corner Cafe")

    assert coupon["reward"] == "Free latte"
    url = post.call_args[0][0]
    kwargs = post.call_args[1]
    assert url == "https://api.openai.test/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert kwargs["json"]["model"] == "gpt-4o-mini"
    assert kwargs["json"]["messages"][1]["content"].count("Free lattes during launch week") == 1


def test_generate_coupon_rejects_unexpected_shape(app, mocker):
    post = mocker.patch("promoapp.generator.requests.post")
    post.return_value.json.return_value = {"choices": []}

    with pytest.raises(GenerationError):
        generate_coupon("anything")


def test_generate_coupon_without_api_key(app):
    app.config["OPENAI_API_KEY"] = None

    with pytest.raises(GenerationError):
        generate_coupon("anything")


def test_generate_endpoint(client, mocker):
    post = mocker.patch("promoapp.generator.requests.post")
    post.return_value.json.return_value = completion(REPLY)

    response = client.post("/api/generate_coupon", json={"description": "Free lattes during launch week"})

    assert response.status_code == 200
    assert response.get_json()["eventName"] == "Coffee Fest"


def test_generate_endpoint_requires_description(client, app):
    response = client.post("/api/generate_coupon", json={"organiser_name": "Corner Cafe"})

    assert response.status_code == 400


def test_generate_endpoint_bad_reply(client, mocker):
    post = mocker.patch("promoapp.generator.requests.post")
    post.return_value.json.return_value = completion("I cannot help with that.")

    response = client.post("/api/generate_coupon", json={"description": "Free lattes"})

    assert response.status_code == 500
    assert response.get_json()["error"] == "Failed to parse AI response"


def test_generate_endpoint_upstream_failure(client, mocker):
    mocker.patch("promoapp.generator.requests.post", side_effect=requests.ConnectionError("down"))

    response = client.post("/api/generate_coupon", json={"description": "Free lattes"})

    assert response.status_code == 502


def test_generate_endpoint_rejects_non_string_description(client, mocker):
    post = mocker.patch("promoapp.generator.requests.post")

    response = client.post("/api/generate_coupon", json={"description": 123})

    assert response.status_code == 400
    post.assert_not_called()
