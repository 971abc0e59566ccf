from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class ReasoningEngineError(RuntimeError):
    """The reasoning gateway failed or answered with something unusable."""

    status_code = 502
    public_message = "AI gateway error"


class RateLimitedError(ReasoningEngineError):
    status_code = 429
    public_message = "Rate limited. Try again shortly."


class PaymentRequiredError(ReasoningEngineError):
    status_code = 402
    public_message = "Payment required."


@dataclass
class ReasoningClient:
    """Thin client for an OpenAI-compatible ``/chat/completions`` gateway."""

    base_url: str
    api_key: str
    model: str
    timeout: float = 60.0

    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Return the assistant message of the first choice.

        The message may carry ``tool_calls``; without ``tools`` the gateway is
        asked for a plain answer.
        """
        if not self.api_key:
            raise RuntimeError("Reasoning API key must be configured")

        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(
                f"{self.base_url.rstrip('/')}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Reasoning gateway unreachable: %s", exc)
            raise ReasoningEngineError(str(exc)) from exc

        if response.status_code == 429:
            raise RateLimitedError(response.text)
        if response.status_code == 402:
            raise PaymentRequiredError(response.text)
        if response.status_code != 200:
            logger.error(
                "Reasoning gateway error",
                extra={"status": response.status_code, "body": response.text[:500]},
            )
            raise ReasoningEngineError(f"Gateway returned status {response.status_code}")

        try:
            body = response.json()
            message = body["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Malformed reasoning gateway response")
            raise ReasoningEngineError("Malformed gateway response") from exc
        return dict(message or {})
