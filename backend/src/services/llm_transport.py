"""OpenRouter chat-completions transport (streaming, one-shot, and tool sessions)."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from ..models.tools import ModelResponse, ToolInvocation, ToolResult
from .config import AppConfig, get_config
from .interfaces import IChatSession, IChatTransport

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the model provider is unreachable or returns an error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def build_user_content(text: str, image: Optional[str] = None) -> Union[str, List[Dict[str, Any]]]:
    """User message content, with an optional base64 JPEG attached."""
    if not image:
        return text
    return [
        {"type": "text", "text": text},
        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image}"}},
    ]


def parse_tool_calls(raw_calls: List[Dict[str, Any]]) -> List[ToolInvocation]:
    """Convert provider tool_calls into ToolInvocations, keeping their order."""
    invocations: List[ToolInvocation] = []
    for index, call in enumerate(raw_calls or []):
        function = call.get("function", {})
        arguments_str = function.get("arguments") or "{}"
        raw: Optional[str] = None
        try:
            arguments = json.loads(arguments_str) if isinstance(arguments_str, str) else dict(arguments_str)
        except (json.JSONDecodeError, TypeError, ValueError):
            arguments, raw = {}, str(arguments_str)
        if not isinstance(arguments, dict):
            arguments, raw = {}, str(arguments_str)
        invocations.append(
            ToolInvocation(
                id=call.get("id") or f"call_{index}",
                name=function.get("name", "unknown"),
                arguments=arguments,
                raw_arguments=raw,
            )
        )
    return invocations


class OpenRouterTransport(IChatTransport):
    """Talks to the OpenRouter chat completions API."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            config: Application config (loaded from the environment if None)
            http_transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.config = config or get_config()
        self._http_transport = http_transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.openrouter_base_url,
            timeout=self.config.request_timeout,
            transport=self._http_transport,
        )

    def _headers(self) -> Dict[str, str]:
        if not self.config.openrouter_api_key:
            raise TransportError("OpenRouter API key not found. Please set OPENROUTER_API_KEY.")
        return {
            "Authorization": f"Bearer {self.config.openrouter_api_key}",
            "X-Title": "Notes Copilot",
            "Content-Type": "application/json",
        }

    async def post_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a non-streaming completion and return the decoded body."""
        headers = self._headers()
        try:
            async with self._client() as client:
                response = await client.post("/chat/completions", headers=headers, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"OpenRouter API error: {e.response.status_code} - {e.response.text}")
            raise TransportError(
                f"API error: {e.response.status_code}", {"status_code": e.response.status_code}
            ) from e
        except httpx.TimeoutException as e:
            logger.error("OpenRouter API timeout")
            raise TransportError("Request timeout - please try again") from e
        except httpx.HTTPError as e:
            logger.error(f"OpenRouter request failed: {e}")
            raise TransportError(f"Network error: {e}") from e
        except ValueError as e:
            raise TransportError("Malformed response from model provider") from e

    async def stream(
        self, query: str, system_instruction: str, image: Optional[str] = None
    ) -> AsyncIterator[str]:
        """Stream text deltas for a single grounded question."""
        headers = self._headers()
        payload = {
            "model": self.config.chat_model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": build_user_content(query, image)},
            ],
            "stream": True,
        }
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", "/chat/completions", headers=headers, json=payload
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        logger.error(f"OpenRouter API error: {response.status_code} - {body}")
                        raise TransportError(
                            f"API error: {response.status_code}",
                            {"status_code": response.status_code},
                        )
                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data_str = line[6:]
                        if data_str == "[DONE]":
                            break
                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        if "error" in data:
                            message = data["error"].get("message", "stream error")
                            raise TransportError(f"Model error: {message}")
                        choices = data.get("choices", [])
                        if not choices:
                            continue
                        delta = choices[0].get("delta", {})
                        if delta.get("content"):
                            yield delta["content"]
        except httpx.TimeoutException as e:
            logger.error("OpenRouter stream timeout")
            raise TransportError("Request timeout - please try again") from e
        except httpx.HTTPError as e:
            logger.error(f"OpenRouter stream failed: {e}")
            raise TransportError(f"Network error: {e}") from e

    async def complete(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        *,
        model: Optional[str] = None,
        json_mode: bool = False,
    ) -> str:
        """Single non-streaming completion returning the reply text."""
        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {"model": model or self.config.chat_model, "messages": messages}
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        data = await self.post_completion(payload)
        choices = data.get("choices", [])
        if not choices:
            raise TransportError("No response from model")
        return choices[0].get("message", {}).get("content") or ""

    def start_chat(self, system_instruction: str, tools: List[Dict[str, Any]]) -> "OpenRouterChatSession":
        return OpenRouterChatSession(self, system_instruction, tools, model=self.config.copilot_model)


class OpenRouterChatSession(IChatSession):
    """Multi-turn tool-calling session; keeps the provider-side message list."""

    def __init__(
        self,
        transport: OpenRouterTransport,
        system_instruction: str,
        tools: List[Dict[str, Any]],
        model: str,
    ) -> None:
        self._transport = transport
        self.model = model
        self.tools = tools
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": system_instruction}]

    async def send_message(self, content: Union[str, List[ToolResult]]) -> ModelResponse:
        """Send user text or a batch of tool results and return the model reply."""
        checkpoint = len(self.messages)
        if isinstance(content, str):
            self.messages.append({"role": "user", "content": content})
        else:
            for result in content:
                self.messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "name": result.name,
                        "content": json.dumps(result.result, default=str),
                    }
                )

        payload: Dict[str, Any] = {"model": self.model, "messages": self.messages}
        if self.tools:
            payload["tools"] = self.tools
            payload["tool_choice"] = "auto"
            # Tool results must come back in call order.
            payload["parallel_tool_calls"] = False

        try:
            data = await self._transport.post_completion(payload)
        except TransportError:
            del self.messages[checkpoint:]
            raise

        choices = data.get("choices", [])
        if not choices:
            del self.messages[checkpoint:]
            raise TransportError("No response from model")

        message = choices[0].get("message", {})
        raw_calls = message.get("tool_calls") or []
        assistant_msg: Dict[str, Any] = {"role": "assistant", "content": message.get("content")}
        if raw_calls:
            assistant_msg["tool_calls"] = raw_calls
        self.messages.append(assistant_msg)

        return ModelResponse(text=message.get("content") or None, tool_calls=parse_tool_calls(raw_calls))


__all__ = [
    "OpenRouterTransport",
    "OpenRouterChatSession",
    "TransportError",
    "build_user_content",
    "parse_tool_calls",
]
