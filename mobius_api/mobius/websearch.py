"""
Web search for ``ask: websearch <question>``.

Results from Tavily are folded into the last user message, which then goes
down the normal provider chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from .config import Settings
from .errors import WebSearchError

logger = logging.getLogger(__name__)

WEBSEARCH = "websearch"

PROMPT = (
    "Answer the following question using the web search results below. "
    "Be concise and cite sources where relevant."
)


@dataclass(frozen=True)
class WebResult:
    title: str
    content: str
    url: str


def format_results(results: List[WebResult]) -> str:
    return "\n\n".join(
        f"[{i}] {r.title}\n{r.content}\nSource: {r.url}" for i, r in enumerate(results, start=1)
    )


def augment(messages: List[dict[str, Any]], results: List[WebResult]) -> List[dict[str, Any]]:
    """Rewrite the final user message to carry the search results."""
    if not messages or messages[-1].get("role") != "user":
        return list(messages)
    question = messages[-1].get("content", "")
    last = {
        "role": "user",
        "content": f"{PROMPT}\n\nQuestion: {question}\n\nSearch Results:\n{format_results(results)}",
    }
    return list(messages[:-1]) + [last]


class TavilySearch:
    def __init__(self, api_key: str, url: str = "https://api.tavily.com/search", timeout: float = 15.0,
                 max_results: int = 5, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.max_results = max_results
        self.transport = transport

    def search(self, query: str) -> List[WebResult]:
        if not self.api_key:
            raise WebSearchError("TAVILY_API_KEY is not set on the server.")
        payload = {
            "api_key": self.api_key,
            "query": query,
            "max_results": self.max_results,
            "include_answer": False,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=payload)
            data = response.json()
        except httpx.TimeoutException as e:
            raise WebSearchError("search timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[websearch] request failed: %s", e)
            raise WebSearchError(f"search request failed: {e}") from e

        if not isinstance(data, dict):
            raise WebSearchError("unexpected response from search service")
        if data.get("error") or response.is_error:
            detail = data.get("error") or data.get("detail") or f"HTTP {response.status_code}"
            raise WebSearchError(f"Tavily error: {detail}")

        results = [
            WebResult(title=r.get("title", ""), content=r.get("content", ""), url=r.get("url", ""))
            for r in data.get("results") or []
            if isinstance(r, dict)
        ]
        logger.info("[websearch] %r -> %d results", query[:80], len(results))
        return results


def build_web_search(settings: Settings) -> TavilySearch:
    return TavilySearch(
        api_key=settings.tavily_api_key,
        url=settings.tavily_url,
        timeout=settings.websearch_timeout,
        max_results=settings.websearch_max_results,
    )
