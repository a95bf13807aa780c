"""AI-assisted promotion drafting.

Turns a free-text description into the fields of a promotion by asking a
chat-completions model for a JSON object.
"""
import json
import logging
import re

import requests
from flask import current_app

from promoapp.errors import GenerationError

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = "You are a helpful assistant that generates coupon details in JSON format."

PROMPT_TEMPLATE = """
You are an AI assistant helping to create a promotional coupon based on a description.
Extract the following information from the description and format it in JSON:
- Event name (a catchy name for the promotion or event)
- Reward (what the customer gets, like a discount or free item)
- Purpose (why this promotion is happening)
- Expiration date (in YYYY-MM-DD format, if mentioned)

Make sure to create clear, concise, and professional content appropriate for a business coupon.
If the organizer name "{organiser_name}" is provided, consider it when creating the event name.

Description: {description}

Return ONLY a valid JSON object with the following keys: eventName, reward, purpose, expirationDate (optional).
The response must be parseable as JSON.
"""

REQUIRED_FIELDS = ("eventName", "reward", "purpose")

_FENCE_OPEN = re.compile(r"```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"```\s*$")
_JSON_OBJECT = re.compile(r"{[\s\S]*}")


def build_prompt(description, organiser_name=None):
    return PROMPT_TEMPLATE.format(description=description, organiser_name=organiser_name or "")


def parse_coupon_reply(text):
    """Pull the coupon fields out of a model reply.

    Tolerates Markdown code fences and chatter around the JSON object.
    """
    if not isinstance(text, str) or not text.strip():
        raise GenerationError("Empty reply from language model")

    cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text.strip()))
    match = _JSON_OBJECT.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise GenerationError("Reply is not valid JSON") from e

    if not isinstance(data, dict):
        raise GenerationError("Reply is not a JSON object")

    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise GenerationError(f"Missing required fields in the response: {', '.join(missing)}")

    coupon = {field: str(data[field]) for field in REQUIRED_FIELDS}
    if data.get("expirationDate"):
        coupon["expirationDate"] = str(data["expirationDate"])
    return coupon


def _reply_text(payload):
    try:
        return payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise GenerationError("Unexpected response shape from language model") from e


def generate_coupon(description, organiser_name=None):
    """Ask the language model for coupon fields.

    Raises ``requests.RequestException`` when the API call fails and
    ``GenerationError`` when the reply cannot be used.
    """
    api_key = current_app.config.get("OPENAI_API_KEY")
    if not api_key:
        raise GenerationError("OPENAI_API_KEY is not configured")

    url = f"{current_app.config['OPENAI_API_BASE']}/chat/completions"
    body = {
        "model": current_app.config["OPENAI_MODEL"],
        "messages": [
            {"role": "system", "content": SYSTEM_MESSAGE},
            {"role": "user", "content": build_prompt(description, organiser_name)},
        ],
    }

    response = requests.post(
        url,
        json=body,
        headers={"Authorization": f"Bearer {api_key}"},
        timeout=current_app.config["OPENAI_TIMEOUT"],
    )
    response.raise_for_status()

    try:
        payload = response.json()
    except ValueError as e:
        raise GenerationError("Language model returned a non-JSON body") from e

    text = _reply_text(payload)
    try:
        return parse_coupon_reply(text)
    except GenerationError:
        logger.error(f"Error parsing AI response, response was: {text!r}")
        raise
