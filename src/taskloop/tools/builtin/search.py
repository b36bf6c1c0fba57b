"""Web search tool backed by the DuckDuckGo HTML endpoint."""

from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup, Tag

from ...errors import OperationTimeoutError, ToolExecutionError
from ..base import Tool, ToolContext, ToolParameter

SEARCH_URL = "https://html.duckduckgo.com/html/"
USER_AGENT = "Mozilla/5.0 (compatible; taskloop/0.1)"
MAX_RESULTS = 10


def _result_url(link: Tag | None, display: Tag | None) -> str | None:
    """Best target URL for one result.

    The title link is usually a ``//duckduckgo.com/l/?uddg=<target>``
    redirect; the display URL is a bare ``host/path`` string.
    """
    if link is not None:
        href = str(link.get("href") or "")
        target = parse_qs(urlparse(href).query).get("uddg")
        if target:
            return target[0]
        if href.startswith(("http://", "https://")):
            return href

    if display is None:
        return None
    text = display.get_text(strip=True)
    if not text:
        return None
    return text if text.startswith("http") else f"https://{text}"


def parse_results(html: str, limit: int = 5) -> list[dict[str, str]]:
    """Extract ``{title, url, snippet}`` entries from a result page.

    Sponsored entries and entries without a title or URL are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    results: list[dict[str, str]] = []

    for node in soup.select(".result"):
        if "result--ad" in (node.get("class") or []):
            continue

        link = node.select_one(".result__title a") or node.select_one("a.result__a")
        title = link.get_text(" ", strip=True) if link is not None else ""
        url = _result_url(link, node.select_one(".result__url"))
        if not title or not url:
            continue

        snippet = node.select_one(".result__snippet")
        results.append(
            {
                "title": title,
                "url": url,
                "snippet": snippet.get_text(" ", strip=True) if snippet is not None else "",
            }
        )
        if len(results) >= limit:
            break

    return results


def format_results(results: list[dict[str, str]]) -> str:
    if not results:
        return "No results found."

    lines = []
    for i, result in enumerate(results, 1):
        lines.append(f"### {i}. {result['title']}")
        lines.append(f"URL: {result['url']}")
        if result["snippet"]:
            lines.append(result["snippet"])
        lines.append("")
    return "\n".join(lines).rstrip()


class WebSearchTool(Tool):
    """Searches the web and returns the top results.

    No API key is needed; results are scraped from the DuckDuckGo HTML
    interface.
    """

    def __init__(
        self,
        max_results: int = 5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_results = min(max(1, max_results), MAX_RESULTS)
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web for current information. Returns the top results "
            "with title, URL and snippet. Use web_fetch to read a result."
        )

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter("query", "string", "The search query. Be specific for better results.", required=True),
            ToolParameter(
                "max_results",
                "integer",
                f"Number of results to return (1-{MAX_RESULTS}, default {self._max_results})",
            ),
        ]

    async def invoke(self, args: dict[str, Any], ctx: ToolContext) -> dict[str, Any]:
        query = (args.get("query") or "").strip()
        if not query:
            raise ToolExecutionError("Search query cannot be empty", self.name)

        limit = args.get("max_results") or self._max_results
        limit = min(max(1, limit), MAX_RESULTS)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(SEARCH_URL, params={"q": query})
        except httpx.TimeoutException as e:
            raise OperationTimeoutError(
                f"Search timed out after {self._timeout}s",
                {"tool_name": self.name, "query": query, "timeout": self._timeout},
            ) from e
        except httpx.RequestError as e:
            raise ToolExecutionError(f"Web search failed: {e}", self.name, {"query": query}) from e

        if not response.is_success:
            raise ToolExecutionError(
                f"Web search failed: HTTP {response.status_code}",
                self.name,
                {"query": query, "status_code": response.status_code},
            )

        results = parse_results(response.text, limit)
        ctx.logger.info("Search %r returned %d result(s)", query, len(results))

        return {
            "query": query,
            "results": results,
            "formatted": format_results(results),
        }
