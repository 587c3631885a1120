"""
LLM API client functions.

Unified interface for calling OpenAI, Anthropic and OpenRouter
with JSON response parsing, plus provider selection from the environment.
"""

import json
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import httpx

DEFAULT_TIMEOUT = 60.0

PROVIDER_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
    "openrouter": "openai/gpt-4o-mini",
}


def _clean_json_text(raw_text: str) -> str:
    """Remove common markdown fences and whitespace from model output."""

    cleaned = raw_text
    for fence in ("```json\n", "```json", "```"):
        cleaned = cleaned.replace(fence, "")
    return cleaned.strip()


def _parse_json_text(raw_text: str, provider: str) -> Dict[str, Any]:
    """Convert provider text content into a JSON payload with clear errors."""

    cleaned = _clean_json_text(raw_text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        message = f"Provider {provider} returned invalid JSON: {exc.msg}"
        raise ValueError(message) from exc

    if not isinstance(parsed, dict):
        raise ValueError(
            f"Provider {provider} returned {type(parsed).__name__}, expected an object"
        )
    return parsed


def _extract_text_field(
    data: Dict[str, Any], path: Sequence[Union[str, int]], provider: str
) -> str:
    """Safely walk a nested provider response and return a text field."""

    current: Any = data
    for key in path:
        try:
            current = current[key]
        except (KeyError, IndexError, TypeError) as exc:
            message = f"Unexpected {provider} response structure; missing {key!r}"
            raise ValueError(message) from exc

    if not isinstance(current, str):
        message = (
            f"Expected {provider} response text at {list(path)} "
            f"but received {type(current).__name__}"
        )
        raise ValueError(message)

    return current


async def _post_json(
    url: str, payload: Dict[str, Any], headers: Iterable[tuple[str, str]] | None = None
) -> Dict[str, Any]:
    """Execute a JSON POST request and return the decoded body."""

    normalized_headers = dict(headers or [])
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        response = await client.post(url, headers=normalized_headers, json=payload)
        response.raise_for_status()
        return response.json()


def _chat_messages(system_prompt: str, prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]


async def call_openai(
    api_key: str,
    system_prompt: str,
    prompt: str,
    model: Optional[str] = None,
    max_tokens: int = 4000,
) -> Dict[str, Any]:
    """Call OpenAI chat completions in JSON mode."""
    url = "https://api.openai.com/v1/chat/completions"

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = {
        "model": model or DEFAULT_MODELS["openai"],
        "messages": _chat_messages(system_prompt, prompt),
        "temperature": 0.3,
        "max_tokens": max_tokens,
        "response_format": {"type": "json_object"},
    }

    data = await _post_json(url, payload, headers=headers.items())
    text = _extract_text_field(data, ("choices", 0, "message", "content"), "openai")
    return _parse_json_text(text, "openai")


async def call_anthropic(
    api_key: str,
    system_prompt: str,
    prompt: str,
    model: Optional[str] = None,
    max_tokens: int = 4000,
) -> Dict[str, Any]:
    """Call Anthropic Claude API."""
    url = "https://api.anthropic.com/v1/messages"

    headers = {
        "x-api-key": api_key,
        "anthropic-version": "2023-06-01",
        "Content-Type": "application/json",
    }

    payload = {
        "model": model or DEFAULT_MODELS["anthropic"],
        "max_tokens": max_tokens,
        "temperature": 0.3,
        "system": system_prompt,
        "messages": [{"role": "user", "content": prompt}],
    }

    data = await _post_json(url, payload, headers=headers.items())
    text = _extract_text_field(data, ("content", 0, "text"), "anthropic")
    return _parse_json_text(text, "anthropic")


async def call_openrouter(
    api_key: str,
    system_prompt: str,
    prompt: str,
    model: Optional[str] = None,
    max_tokens: int = 4000,
) -> Dict[str, Any]:
    """Call OpenRouter API."""
    url = "https://openrouter.ai/api/v1/chat/completions"

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = {
        "model": model or DEFAULT_MODELS["openrouter"],
        "messages": _chat_messages(system_prompt, prompt),
        "temperature": 0.3,
        "max_tokens": max_tokens,
    }

    data = await _post_json(url, payload, headers=headers.items())
    text = _extract_text_field(
        data, ("choices", 0, "message", "content"), "openrouter"
    )
    return _parse_json_text(text, "openrouter")


PROVIDER_CALLS = {
    "openai": call_openai,
    "anthropic": call_anthropic,
    "openrouter": call_openrouter,
}


def get_provider_priority() -> List[str]:
    """Provider order from PROVIDER_PRIORITY, unknown names dropped."""
    priority_str = os.getenv("PROVIDER_PRIORITY", "openai,anthropic,openrouter")
    priority = [p.strip().lower() for p in priority_str.split(",") if p.strip()]
    return [p for p in priority if p in PROVIDER_ENV_KEYS]


def get_available_llm_provider() -> Optional[Tuple[str, str]]:
    """Get the first configured LLM provider and its API key."""
    ordered = get_provider_priority()
    ordered += [p for p in PROVIDER_ENV_KEYS if p not in ordered]

    for provider in ordered:
        api_key = os.getenv(PROVIDER_ENV_KEYS[provider], "").strip()
        if api_key:
            return (provider, api_key)
    return None


async def call_llm(
    provider: str,
    api_key: str,
    system_prompt: str,
    prompt: str,
    model: Optional[str] = None,
    max_tokens: int = 4000,
) -> Dict[str, Any]:
    """Dispatch a JSON completion request to the named provider."""
    try:
        call = PROVIDER_CALLS[provider]
    except KeyError:
        raise ValueError(f"Unsupported LLM provider: {provider}") from None
    return await call(api_key, system_prompt, prompt, model=model, max_tokens=max_tokens)
