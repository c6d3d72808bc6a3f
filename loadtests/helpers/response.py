"""Turn storefront API error bodies into one-line failure messages for Locust.

Three shapes reach the client:

- request validation (422): ``{"detail": [{"loc": [...], "msg": "..."}]}``
- route-level refusals: ``{"detail": "..."}``
- domain and gateway errors: ``{"error": "..." | {"field": ["..."]}, "correlation_id": "..."}``
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response

_MAX = 300


def _flatten(error) -> str:
    if isinstance(error, dict):
        parts = []
        for field, messages in error.items():
            text = "; ".join(messages) if isinstance(messages, list) else str(messages)
            parts.append(f"{field}: {text}")
        return " | ".join(parts)
    return str(error)


def extract_error_detail(response: Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (getattr(response, "text", "") or "(empty response body)")[:_MAX]

    if not isinstance(body, dict):
        return str(body)[:_MAX]

    if "error" in body:
        message = _flatten(body["error"])
        if body.get("correlation_id"):
            message = f"{message} [correlation_id={body['correlation_id']}]"
        return message[:_MAX]

    detail = body.get("detail")
    if isinstance(detail, list):
        return " | ".join(
            f"{'.'.join(str(p) for p in item.get('loc', []))}: {item.get('msg', item)}" for item in detail
        )[:_MAX]
    if detail is not None:
        return str(detail)[:_MAX]

    return str(body)[:_MAX]
