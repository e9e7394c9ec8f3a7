# dbchat/responses.py
import json
from typing import Any


def load_json_object(text: str) -> dict | None:
    """Parses text as a JSON object; anything else (invalid JSON, lists, scalars) gives None."""
    if not text:
        return None
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_content(response: Any) -> str:
    """
    Pulls the assistant text out of a gateway response body. Supports
      {"choices": [{"message": {"content": ...}}]}   (also choices[0].text)
      {"message": {"content": ...}}                   (Ollama chat)
      {"content": ...}
    and returns "" when none of them match.
    """
    if not isinstance(response, dict):
        return ""

    choices = response.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        message = choice.get("message")
        if isinstance(message, dict) and message.get("content") is not None:
            return str(message["content"])
        if choice.get("text") is not None:
            return str(choice["text"])

    message = response.get("message")
    if isinstance(message, dict) and message.get("content") is not None:
        return str(message["content"])
    if response.get("content") is not None:
        return str(response["content"])
    return ""


def error_message(response: Any) -> str | None:
    """Message of a top-level "error" field, if the body carries one."""
    if not isinstance(response, dict) or response.get("error") is None:
        return None
    err = response["error"]
    if isinstance(err, dict):
        return str(err.get("message") or json.dumps(err))
    return str(err)
