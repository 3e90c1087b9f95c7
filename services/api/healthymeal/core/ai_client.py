import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from ..settings import settings

logger = logging.getLogger("healthymeal.ai")

T = TypeVar("T", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are a helpful assistant that only responds with structured JSON that adheres to "
    "the provided tool schema. Always use the provided function to format your response."
)
TOOL_DESCRIPTION = "Formats the response into a structured JSON object based on the provided schema."
DEFAULT_TOOL_NAME = "structured_response_formatter"


# --- Errors ---

class AIClientError(Exception):
    """Base for failures talking to the LLM provider."""


class OpenRouterApiError(AIClientError):
    def __init__(self, message: str, status: int, details: Any = None):
        super().__init__(message)
        self.status = status
        self.details = details


class NetworkError(AIClientError):
    pass


class InvalidJsonResponseError(AIClientError):
    pass


class SchemaValidationError(AIClientError):
    def __init__(self, message: str, issues: list[dict]):
        super().__init__(message)
        self.issues = issues


# --- Tool-call parsing ---

@dataclass(frozen=True)
class ParsedToolCall(Generic[T]):
    value: T


@dataclass(frozen=True)
class ToolCallParseError:
    reason: str


@dataclass(frozen=True)
class ToolCallValidationError:
    issues: list[dict]
    message: str


ToolCallResult = Union[ParsedToolCall, ToolCallParseError, ToolCallValidationError]


class _ToolFunction(BaseModel):
    name: Optional[str] = None
    arguments: Union[str, dict]


class _ToolCall(BaseModel):
    function: _ToolFunction


class _Message(BaseModel):
    tool_calls: list[_ToolCall]


class _Choice(BaseModel):
    message: _Message


class _Completion(BaseModel):
    choices: list[_Choice]


def parse_tool_call(body: Any, response_model: Type[T]) -> ToolCallResult:
    """Extract the first tool call's arguments from a chat completion and validate them."""
    try:
        completion = _Completion.model_validate(body)
    except ValidationError:
        return ToolCallParseError("Invalid response structure: missing tool_calls in response")

    if not completion.choices or not completion.choices[0].message.tool_calls:
        return ToolCallParseError("Invalid response structure: missing tool_calls in response")

    arguments = completion.choices[0].message.tool_calls[0].function.arguments
    if isinstance(arguments, str):
        if not arguments.strip():
            return ToolCallParseError("Invalid response structure: missing function arguments")
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as e:
            return ToolCallParseError(f"Failed to parse function arguments as JSON: {e}")

    try:
        return ParsedToolCall(response_model.model_validate(arguments))
    except ValidationError as e:
        issues = e.errors(include_url=False, include_context=False, include_input=False)
        return ToolCallValidationError(
            issues=[{"loc": list(i["loc"]), "msg": i["msg"], "type": i["type"]} for i in issues],
            message=f"Response does not match the provided schema: {e.error_count()} issue(s)",
        )


# --- Client ---

class OpenRouterClient:
    """Structured-output client for the OpenRouter chat completions API.

    The model is forced to answer through a single function tool whose
    parameters are the JSON schema of ``response_model``.
    """

    def __init__(
        self,
        api_key: str,
        default_model: Optional[str] = None,
        base_url: Optional[str] = None,
        site_url: Optional[str] = None,
        app_name: Optional[str] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("OpenRouter API key is not configured. Set OPENROUTER_API_KEY.")
        self.api_key = api_key
        self.default_model = default_model or settings.openrouter_model
        self.base_url = base_url or settings.openrouter_base_url
        self.site_url = site_url or settings.site_url
        self.app_name = app_name or settings.app_name
        self.max_attempts = max_attempts or settings.openrouter_max_attempts
        self.timeout = timeout or settings.openrouter_timeout_seconds
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls) -> Optional["OpenRouterClient"]:
        if not settings.openrouter_api_key:
            return None
        return cls(api_key=settings.openrouter_api_key)

    async def get_structured_response(
        self,
        prompt: str,
        response_model: Type[T],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> T:
        if not prompt:
            raise ValueError("Prompt cannot be empty.")

        payload = self.build_payload(prompt, response_model, model, temperature, max_tokens)
        body = await self._call_api(payload)
        result = parse_tool_call(body, response_model)

        if isinstance(result, ToolCallParseError):
            raise InvalidJsonResponseError(result.reason)
        if isinstance(result, ToolCallValidationError):
            raise SchemaValidationError(result.message, result.issues)
        return result.value

    def build_payload(
        self,
        prompt: str,
        response_model: Type[BaseModel],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        schema = response_model.model_json_schema()
        tool_name = schema.get("title") or DEFAULT_TOOL_NAME

        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "tool_choice": {"type": "function", "function": {"name": tool_name}},
            "tools": [
                {
                    "type": "function",
                    "function": {
                        "name": tool_name,
                        "description": TOOL_DESCRIPTION,
                        "parameters": schema,
                    },
                }
            ],
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.site_url,
            "X-Title": self.app_name,
        }

    async def _call_api(self, payload: dict) -> Any:
        """POST with up to ``max_attempts`` tries, waiting 1s, 2s, 4s... between them."""
        last_error: Optional[AIClientError] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_attempts):
                try:
                    logger.info("OpenRouter request attempt %d/%d model=%s",
                                attempt + 1, self.max_attempts, payload.get("model"))
                    response = await client.post(self.base_url, json=payload, headers=self._headers())
                    if response.status_code >= 400:
                        raise OpenRouterApiError(
                            f"OpenRouter API error: {response.reason_phrase}",
                            response.status_code,
                            _safe_json(response),
                        )
                    try:
                        return response.json()
                    except ValueError as e:
                        raise InvalidJsonResponseError(f"Failed to parse API response as JSON: {e}") from e
                except InvalidJsonResponseError:
                    raise
                except OpenRouterApiError as e:
                    last_error = e
                except httpx.HTTPError as e:
                    last_error = NetworkError(f"Network error on attempt {attempt + 1}: {e}")

                if attempt < self.max_attempts - 1:
                    delay = 2 ** attempt
                    logger.warning("OpenRouter attempt %d failed (%s); retrying in %ss",
                                   attempt + 1, last_error, delay)
                    await self._sleep(delay)

        raise last_error or NetworkError("Failed to call OpenRouter API after multiple attempts")


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}
