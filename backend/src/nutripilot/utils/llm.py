import json
from typing import Any, Dict

import httpx

from nutripilot.core.errors import EstimationError, UpstreamError


def _strip_fences(s: str) -> str:
    s = s.strip()
    if s.startswith("```"):
        s = s.strip("` \n")
        if s.lower().startswith("json"):
            s = s[4:].lstrip()
    return s


def parse_structured_reply(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pull the JSON object out of an OpenAI-style chat completion.
    Refusals and truncated answers are hard failures, never partial data.
    """
    choices = data.get("choices") or []
    if not choices:
        raise EstimationError("Estimation service returned no choices")
    choice = choices[0] or {}
    message = choice.get("message") or {}

    refusal = message.get("refusal")
    if refusal:
        raise EstimationError(f"Estimation refused: {refusal}")
    if choice.get("finish_reason") in ("length", "content_filter"):
        raise EstimationError(f"Estimation incomplete (finish_reason={choice.get('finish_reason')})")

    content = _strip_fences(message.get("content") or "")
    if not content:
        raise EstimationError("Estimation service returned an empty answer")
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise EstimationError(f"Estimation answer is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise EstimationError("Estimation answer is not a JSON object")
    return parsed


async def chat_completion_json(
    client: httpx.AsyncClient,
    url: str,
    api_key: str,
    payload: Dict[str, Any],
    timeout: Any = httpx.USE_CLIENT_DEFAULT,
) -> Dict[str, Any]:
    """POST a chat completion. Without ``timeout`` the client's own timeout applies."""
    try:
        r = await client.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Estimation service unreachable: {exc}", upstream="estimation") from exc
    if r.status_code != 200:
        raise UpstreamError(
            f"Estimation service error {r.status_code}: {r.text[:200]}", upstream="estimation"
        )
    try:
        data = r.json()
    except ValueError as exc:
        raise EstimationError("Estimation service returned a non-JSON body") from exc
    return parse_structured_reply(data)
