"""Web fetch tool with SSRF protection."""

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse

import httpx

from ...errors import OperationTimeoutError, ToolExecutionError
from ..base import Tool, ToolContext, ToolParameter

# Private/reserved IP ranges to block
BLOCKED_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),      # Loopback
    ipaddress.ip_network("10.0.0.0/8"),       # Private Class A
    ipaddress.ip_network("172.16.0.0/12"),    # Private Class B
    ipaddress.ip_network("192.168.0.0/16"),   # Private Class C
    ipaddress.ip_network("169.254.0.0/16"),   # Link-local
    ipaddress.ip_network("::1/128"),          # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),         # IPv6 private
    ipaddress.ip_network("fe80::/10"),        # IPv6 link-local
    ipaddress.ip_network("0.0.0.0/8"),        # "This" network
    ipaddress.ip_network("100.64.0.0/10"),    # Carrier-grade NAT
]

ALLOWED_SCHEMES = {"http", "https"}

Resolution = tuple[bool, str | None, str | None]
Resolver = Callable[[str], Awaitable[Resolution]]


class SSRFBlockedError(Exception):
    """A request (or a redirect hop) targeted a disallowed address."""


def is_private_ip(ip: str) -> bool:
    """Check if an IP address is in a private/reserved range."""
    try:
        addr = ipaddress.ip_address(ip)
        return any(addr in network for network in BLOCKED_NETWORKS)
    except ValueError:
        return True  # Invalid IP, treat as blocked


async def resolve_and_validate(hostname: str) -> Resolution:
    """Resolve hostname and validate no address is private.

    Returns (valid, resolved_ip, error_message).
    """
    try:
        infos = await asyncio.get_running_loop().getaddrinfo(
            hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM
        )
    except socket.gaierror as e:
        return False, None, f"DNS resolution failed: {e}"

    for _, _, _, _, sockaddr in infos:
        ip = str(sockaddr[0])
        if is_private_ip(ip):
            return False, ip, f"Blocked: {hostname} resolves to private IP {ip}"

    if infos:
        return True, str(infos[0][4][0]), None
    return False, None, f"Could not resolve hostname: {hostname}"


async def validate_url(url: str, resolve: Resolver = resolve_and_validate) -> str | None:
    """Return an error message for a disallowed URL, None when allowed."""
    parsed = urlparse(url)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return f"Scheme not allowed: {parsed.scheme or '(none)'}. Use http or https."
    if not parsed.hostname:
        return "URL must have a hostname"

    valid, _, error = await resolve(parsed.hostname)
    if not valid:
        return error
    return None


class WebFetchTool(Tool):
    """Fetches a URL over http(s), refusing private addresses on every hop."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_chars: int = 100_000,
        max_redirects: int = 5,
        resolve: Resolver = resolve_and_validate,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_chars = max_chars
        self._max_redirects = max_redirects
        self._resolve = resolve
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return (
            "Fetch content from a URL. Only HTTP/HTTPS URLs to public IPs are allowed. "
            "Returns the response status and body (truncated if large)."
        )

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter("url", "string", "The URL to fetch. Must be http:// or https://", required=True),
            ToolParameter("method", "string", "HTTP method: GET (default) or HEAD", enum=("GET", "HEAD")),
        ]

    async def _check_request(self, request: httpx.Request) -> None:
        # Runs for the initial request and every redirect hop.
        error = await validate_url(str(request.url), self._resolve)
        if error:
            raise SSRFBlockedError(error)

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
        url = args["url"]
        method = (args.get("method") or "GET").upper()

        error = await validate_url(url, self._resolve)
        if error:
            raise ToolExecutionError(error, self.name, {"url": url})

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                max_redirects=self._max_redirects,
                transport=self._transport,
                event_hooks={"request": [self._check_request]},
            ) as client:
                response = await client.request(method, url)
        except SSRFBlockedError as e:
            raise ToolExecutionError(f"Redirect blocked: {e}", self.name, {"url": url}) from e
        except httpx.TimeoutException as e:
            raise OperationTimeoutError(
                f"Request timed out after {self._timeout}s",
                {"tool_name": self.name, "url": url, "timeout": self._timeout},
            ) from e
        except httpx.TooManyRedirects as e:
            raise ToolExecutionError(
                f"Too many redirects (max {self._max_redirects})", self.name, {"url": url}
            ) from e
        except httpx.RequestError as e:
            raise ToolExecutionError(f"Request failed: {e}", self.name, {"url": url}) from e

        body = "" if method == "HEAD" else response.text
        truncated = len(body) > self._max_chars
        if truncated:
            body = body[: self._max_chars] + "\n... [content truncated]"

        ctx.logger.info("Fetched %s -> HTTP %s", url, response.status_code)

        if not response.is_success:
            raise ToolExecutionError(
                f"HTTP {response.status_code} {response.reason_phrase}",
                self.name,
                {"url": url, "status_code": response.status_code, "body": body[:2000]},
            )

        return {
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type"),
            "body": body,
            "truncated": truncated,
        }
