# dbchat/llm.py

import logging

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import settings
from .errors import ModelGatewayError
from .prompt import SYSTEM_INSTR
from .responses import error_message, extract_content

logger = logging.getLogger(__name__)


class ModelGateway:
    """
    Blocking client for the chat-completions endpoint and the image-generation
    endpoint. Transport failures are retried with exponential backoff; an
    "error" field in any response body is raised as ModelGatewayError.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        image_url: str | None = None,
        image_model: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url or settings.llm_api_url
        self.api_key = settings.llm_api_key if api_key is None else api_key
        self.model = model or settings.llm_model
        self.image_url = image_url or settings.image_api_url
        self.image_model = image_model or settings.image_model
        self.max_attempts = max_attempts or settings.llm_max_attempts
        self.backoff = backoff
        self.client = httpx.Client(timeout=timeout or settings.llm_timeout, transport=transport)

    def close(self) -> None:
        self.client.close()

    def complete(self, prompt: str) -> dict:
        """Sends the fixed system instruction plus prompt, returns the raw response body."""
        payload = {
            "messages": [
                {"role": "system", "content": SYSTEM_INSTR},
                {"role": "user", "content": prompt},
            ],
            "model": self.model,
            "stream": False,
        }
        logger.info("Sending prompt to model gateway (%d chars)", len(prompt))
        body = self._post_json(self.api_url, payload)
        err = error_message(body)
        if err is not None:
            logger.error("Model gateway error: %s", err)
            raise ModelGatewayError(err or "Model gateway returned an empty error")
        return body

    def generate_text(self, prompt: str) -> str:
        return extract_content(self.complete(prompt))

    def generate_image(self, prompt: str) -> str:
        """Returns the base64 PNG from {"data": [{"b64_json": ...}]}."""
        payload = {"response_format": "b64_json", "prompt": prompt, "model": self.image_model}
        logger.info("Sending image generation prompt")
        body = self._post_json(self.image_url, payload)

        data = body.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict) and data[0].get("b64_json"):
            return data[0]["b64_json"]
        err = error_message(body)
        if err is not None:
            logger.warning("Image API error: %s", err)
            raise ModelGatewayError(err or "Image API returned an empty error")
        raise ModelGatewayError("No image found in response")

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _send(self, url: str, payload: dict) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=8),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning("Retrying model gateway call (attempt %d)", attempt.retry_state.attempt_number)
                return self.client.post(url, json=payload, headers=self._headers())

    def _post_json(self, url: str, payload: dict) -> dict:
        try:
            resp = self._send(url, payload)
        except httpx.TransportError as e:
            raise ModelGatewayError(f"Model gateway unreachable: {e}") from e
        logger.debug("Model gateway response code: %s", resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            raise ModelGatewayError(f"Model gateway returned HTTP {resp.status_code} with a non-JSON body") from None
        if not isinstance(body, dict):
            raise ModelGatewayError("Model gateway returned an unexpected response")
        if resp.is_error and error_message(body) is None:
            raise ModelGatewayError(f"Model gateway returned HTTP {resp.status_code}")
        return body
