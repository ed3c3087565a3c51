#!/usr/bin/env python3
"""
RPC Helpers — Shared JSON-over-HTTP client and Solana JSON-RPC calls
====================================================================

Low-level outbound primitives used by every upstream client:

  • request_json / get_json / post_json — one call with a hard timeout,
    retried with linear backoff on transient failures only
  • solana_rpc_call, get_solana_version, get_token_decimals — raw
    JSON-RPC over httpx (no solana-py dependency)
  • mask_rpc_url — hide API keys before URLs reach logs or responses

Retry policy (central_config.HttpPolicy):
  • transport errors and timeouts   → retried
  • HTTP 429 / 5xx                   → retried
  • other 4xx                        → raised immediately
  • 2xx with missing fields          → not an error here (callers → None)
"""

import asyncio
import logging
import re
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from lp_reader.central_config import http_policy
from lp_reader.coercion import coerce_scale
from lp_reader.errors import UpstreamStatusError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# Query parameters that carry credentials
_SECRET_QUERY_KEYS = frozenset({"api-key", "api_key", "apikey", "key", "token"})

# Path-embedded keys, e.g. https://…alchemy.com/v2/<key>
_PATH_KEY = re.compile(r"(/v\d+/)[A-Za-z0-9_\-]{16,}$")

# Upstream body excerpt included in error messages
_BODY_EXCERPT = 200


def mask_rpc_url(url: str) -> str:
    """
    Mask credentials embedded in an RPC URL.

    >>> mask_rpc_url("https://mainnet.helius-rpc.com/?api-key=abc123")
    'https://mainnet.helius-rpc.com/?api-key=***'
    >>> mask_rpc_url("https://api.mainnet-beta.solana.com")
    'https://api.mainnet-beta.solana.com'
    """
    if not url:
        return "N/A"
    parts = urlsplit(url)
    query = urlencode(
        [
            (k, "***" if k.lower() in _SECRET_QUERY_KEYS else v)
            for k, v in parse_qsl(parts.query, keep_blank_values=True)
        ],
        safe="*",
    )
    path = _PATH_KEY.sub(r"\1***", parts.path)
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))


def _decode_body(resp: httpx.Response) -> Any:
    """JSON body or ``None`` (empty / not JSON)."""
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


async def _send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    json_body: Any,
    timeout: float,
    retries: int,
    backoff: float,
) -> Any:
    safe_url = mask_rpc_url(url)
    last_error = "no attempt made"

    for attempt in range(retries + 1):
        if attempt:
            await asyncio.sleep(backoff * attempt)
        try:
            resp = await client.request(method, url, json=json_body, timeout=timeout)
        except httpx.TimeoutException:
            last_error = f"timeout after {timeout:g}s"
        except httpx.TransportError as exc:
            last_error = f"{type(exc).__name__}: {exc}"
        else:
            if resp.status_code < 400:
                return _decode_body(resp)
            excerpt = resp.text[:_BODY_EXCERPT]
            message = f"HTTP {resp.status_code} from {safe_url}: {excerpt}"
            if resp.status_code not in http_policy.RETRY_STATUSES:
                raise UpstreamStatusError(message, resp.status_code)
            last_error = message
            if attempt == retries:
                raise UpstreamStatusError(message, resp.status_code)

        if attempt < retries:
            logger.warning(
                "%s %s failed (attempt %d/%d): %s",
                method, safe_url, attempt + 1, retries + 1, last_error,
            )

    raise UpstreamUnavailableError(f"{method} {safe_url} failed: {last_error}")


async def request_json(
    method: str,
    url: str,
    json_body: Any = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = http_policy.TIMEOUT_SECONDS,
    retries: int = http_policy.RETRIES,
    backoff: float = http_policy.BACKOFF_SECONDS,
) -> Any:
    """
    Perform one outbound JSON call.

    Args:
        method: HTTP method ("GET" / "POST").
        url: Absolute URL.
        json_body: JSON payload for POST.
        client: Shared client; a short-lived one is opened when omitted.
        timeout: Per-attempt timeout in seconds.
        retries: Extra attempts for transient failures.
        backoff: Linear backoff step in seconds.

    Returns:
        Decoded JSON, or ``None`` for an empty / non-JSON 2xx body.

    Raises:
        UpstreamStatusError: Non-2xx answer (after retries when retryable).
        UpstreamUnavailableError: Transport failure after retries.
    """
    if client is not None:
        return await _send_with_retry(client, method, url, json_body, timeout, retries, backoff)
    async with httpx.AsyncClient(timeout=timeout) as own_client:
        return await _send_with_retry(own_client, method, url, json_body, timeout, retries, backoff)


async def get_json(url: str, **kwargs) -> Any:
    return await request_json("GET", url, **kwargs)


async def post_json(url: str, body: Any, **kwargs) -> Any:
    return await request_json("POST", url, json_body=body, **kwargs)


# ── Solana JSON-RPC ─────────────────────────────────────────────────────
# Ref: https://solana.com/docs/rpc


async def solana_rpc_call(
    rpc_url: str,
    method: str,
    params: Optional[list] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """
    Execute one Solana JSON-RPC method.

    Returns:
        The ``result`` member of the response.

    Raises:
        UpstreamUnavailableError: RPC error object or malformed envelope.
    """
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params or [],
    }
    envelope = await post_json(rpc_url, payload, client=client)
    if not isinstance(envelope, dict):
        raise UpstreamUnavailableError(f"RPC {method}: empty response")
    if "error" in envelope:
        err = envelope["error"]
        msg = err.get("message", err) if isinstance(err, dict) else err
        raise UpstreamUnavailableError(f"RPC {method} error: {msg}")
    return envelope.get("result")


async def get_solana_version(rpc_url: str, client: Optional[httpx.AsyncClient] = None) -> Any:
    """Node version (``{"solana-core": "...", "feature-set": ...}``)."""
    return await solana_rpc_call(rpc_url, "getVersion", client=client)


async def get_token_decimals(
    rpc_url: str, mint: str, client: Optional[httpx.AsyncClient] = None
) -> Optional[int]:
    """
    Decimals of an SPL mint via ``getTokenSupply``.

    Returns ``None`` when the field is absent; RPC failures propagate.
    """
    result = await solana_rpc_call(rpc_url, "getTokenSupply", [mint], client=client)
    value = result.get("value") if isinstance(result, dict) else None
    return coerce_scale(value.get("decimals")) if isinstance(value, dict) else None
