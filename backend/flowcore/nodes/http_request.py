"""HTTP request executor

Calls a remote endpoint and returns its parsed JSON body.

Node data:
    url: Target URL (required)
    method: HTTP verb, default GET
    body: Optional JSON payload (object or JSON text); ignored for GET/HEAD
    useProxy: Route through CORS_PROXY_PREFIX
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .. import settings
from ..engine.graph import WorkflowNode
from ..errors import ConfigurationError, RemoteCallError
from .registry import BaseExecutor, register_executor

logger = logging.getLogger(__name__)

_BODYLESS_METHODS = {"GET", "HEAD"}


class HttpRequestNodeData(BaseModel):
    """Typed view of an http-request node's data."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    url: str = ""
    method: str = "GET"
    body: Optional[Any] = None
    use_proxy: bool = Field(default=False, alias="useProxy")
    label: Optional[str] = None


def resolve_url(url: str, use_proxy: bool, prefix: Optional[str] = None) -> str:
    """Apply the relay prefix when ``use_proxy`` is set."""
    if not use_proxy:
        return url
    return (settings.CORS_PROXY_PREFIX if prefix is None else prefix) + url


def _encode_body(node_id: str, body: Any) -> Any:
    if isinstance(body, str):
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Request body for node {node_id} is not valid JSON: {e.msg}",
                node_id=node_id,
            ) from e
    return body


@register_executor(
    node_type="http-request",
    display_name="HTTP Request",
    description="Calls a remote JSON endpoint and returns the parsed response",
    input_schema={
        "type": "object",
        "properties": {
            "url": {"type": "string"},
            "method": {"type": "string", "default": "GET"},
            "body": {},
            "useProxy": {"type": "boolean", "default": False},
        },
        "required": ["url"],
    },
)
class HttpRequestExecutor(BaseExecutor):
    """Remote-call executor.

    Args:
        transport: Optional httpx transport (tests pass httpx.MockTransport)
        timeout: Request timeout in seconds. Defaults to HTTP_REQUEST_TIMEOUT.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self._transport = transport
        self._timeout = timeout

    async def execute(self, node: WorkflowNode, context: Dict[str, Any]) -> Any:
        data = self.parse_data(node, HttpRequestNodeData)
        if not data.url.strip():
            raise ConfigurationError("URL is required", node_id=node.id)

        method = (data.method or "GET").upper()
        url = resolve_url(data.url, data.use_proxy)
        payload = None if method in _BODYLESS_METHODS else _encode_body(node.id, data.body)

        request_kwargs: Dict[str, Any] = {"headers": {"Content-Type": "application/json"}}
        if payload is not None:
            request_kwargs["content"] = json.dumps(payload)

        timeout = settings.HTTP_REQUEST_TIMEOUT if self._timeout is None else self._timeout
        logger.info(f"[{node.id}] {method} {url}")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as client:
                resp = await client.request(method, url, **request_kwargs)
        except httpx.TimeoutException as e:
            raise RemoteCallError(f"Request timed out: {url}", node_id=node.id) from e
        except httpx.HTTPError as e:
            raise RemoteCallError(f"Request failed: {e}", node_id=node.id) from e

        if not resp.is_success:
            raise RemoteCallError(
                f"HTTP error! status: {resp.status_code}",
                status_code=resp.status_code,
                node_id=node.id,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise RemoteCallError(
                f"Response from {url} is not valid JSON",
                status_code=resp.status_code,
                node_id=node.id,
            ) from e
