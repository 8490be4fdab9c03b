# knowbase/services/ai_service.py
from __future__ import annotations
import logging
from typing import Any, Dict, Mapping

import httpx

from knowbase.errors import AIUnavailableError, AIUpstreamError, ValidationError

logger = logging.getLogger(__name__)

GENERATE_MAX_TOKENS = 1000
GENERATE_TEMPERATURE = 0.7
SUMMARY_MAX_TOKENS = 500
SUMMARY_TEMPERATURE = 0.5


def is_enabled(config: Mapping[str, Any]) -> bool:
    return bool((config.get("AI_BASE_URL") or "").strip())


def _chat_completion(
    config: Mapping[str, Any],
    prompt: str,
    *,
    max_tokens: int,
    temperature: float,
) -> Dict[str, Any]:
    """Ein Aufruf gegen einen OpenAI-kompatiblen /chat/completions-Endpunkt."""
    if not is_enabled(config):
        raise AIUnavailableError("AI generation is not configured")

    model = (config.get("AI_MODEL") or "").strip()
    url = f"{config['AI_BASE_URL'].rstrip('/')}/chat/completions"
    headers = {"Content-Type": "application/json"}
    if config.get("AI_API_KEY"):
        headers["Authorization"] = f"Bearer {config['AI_API_KEY']}"
    payload = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }

    try:
        response = httpx.post(url, json=payload, headers=headers, timeout=float(config.get("AI_TIMEOUT") or 30))
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("ai.upstream.error model=%s error=%s", model, exc)
        raise AIUpstreamError("AI service request failed") from exc

    try:
        text = data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as exc:
        logger.error("ai.upstream.malformed model=%s", model)
        raise AIUpstreamError("AI service returned an unexpected response") from exc

    logger.info("ai.success model=%s chars=%s", model, len(text))
    return {"text": text.strip(), "usage": data.get("usage")}


def generate(config: Mapping[str, Any], prompt: Any, context: Any = "") -> Dict[str, Any]:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("prompt must not be empty")
    context = context if isinstance(context, str) else ""
    full_prompt = f"{context}\n\nBased on the content above, answer or expand on: {prompt.strip()}"
    result = _chat_completion(
        config, full_prompt.strip(), max_tokens=GENERATE_MAX_TOKENS, temperature=GENERATE_TEMPERATURE
    )
    return {"response": result["text"], "usage": result["usage"]}


def summarize(config: Mapping[str, Any], content: Any) -> Dict[str, Any]:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content must not be empty")
    prompt = f"Summarize the following content:\n\n{content.strip()}\n\nSummary:"
    result = _chat_completion(
        config, prompt, max_tokens=SUMMARY_MAX_TOKENS, temperature=SUMMARY_TEMPERATURE
    )
    return {"summary": result["text"]}
