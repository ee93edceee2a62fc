"""
Web search, page extraction and lead discovery.

Search goes through DuckDuckGo's HTML endpoint; pages are fetched with
httpx and parsed with BeautifulSoup. Content analysis uses the LLM
generator to score each page's buying intent against a persona.

discover_leads() is the pipeline the Researcher and ListBuilder rely on:
search -> fetch each hit -> analyze -> keep pages whose buying intent
clears the configured threshold.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from afilli.agents.contracts import ContentAnalysis
from afilli.config.schema import ScraperConfig
from afilli.exceptions import DependencyError, TaskExecutionError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(?:\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")

_CONTENT_TAGS = ["p", "h1", "h2", "h3", "h4", "article", "main"]


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _resolve_result_url(href: str) -> str:
    """DuckDuckGo wraps result links in a redirect; unwrap it."""
    if href.startswith("//"):
        href = "https:" + href
    parsed = urlparse(href)
    if parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return target[0]
    return href


def parse_search_results(html: str, max_results: int) -> list[dict[str, Any]]:
    """Turn a DuckDuckGo HTML results page into scored search results."""
    soup = BeautifulSoup(html, "html.parser")
    results: list[dict[str, Any]] = []
    for node in soup.select("div.result"):
        link = node.select_one("a.result__a")
        snippet = node.select_one(".result__snippet")
        if link is None or not link.get("href"):
            continue
        results.append({
            "title": link.get_text(" ", strip=True),
            "url": _resolve_result_url(link["href"]),
            "snippet": snippet.get_text(" ", strip=True) if snippet else "",
        })
        if len(results) >= max_results:
            break

    total = len(results)
    for index, result in enumerate(results):
        result["relevance_score"] = 1 - (index / total)
    return results


def parse_page(html: str) -> dict[str, Any]:
    """Extract title, readable content, links, contacts and meta tags."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""

    texts = []
    for el in soup.find_all(_CONTENT_TAGS):
        text = el.get_text(" ", strip=True)
        if text and len(text) > 20:
            texts.append(text)

    links = [
        a["href"] for a in soup.find_all("a", href=True)
        if a["href"].startswith("http")
    ]

    body_text = soup.get_text(" ", strip=True)

    metadata: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        name = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if name and content:
            metadata[name] = content

    return {
        "title": title,
        "content": "\n".join(texts),
        "links": links,
        "emails": _unique(EMAIL_RE.findall(body_text)),
        "phones": _unique(PHONE_RE.findall(body_text)),
        "metadata": metadata,
    }


class WebScraper:
    """Search and scrape the public web on behalf of research agents."""

    def __init__(self, generator: Any, config: Optional[ScraperConfig] = None):
        self.generator = generator
        self.config = config or ScraperConfig()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
            headers={
                "User-Agent": self.config.user_agent,
                "Accept": "text/html,application/xhtml+xml",
            },
        )

    async def search(self, query: str, max_results: int = 10) -> list[dict[str, Any]]:
        """Run a web search. Returns [{title, url, snippet, relevance_score}]."""
        try:
            async with self._client() as client:
                response = await client.post(
                    self.config.search_url, data={"q": query}
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DependencyError(
                f"Search failed: {e.response.status_code}",
                service="web_search",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise DependencyError(f"Search failed: {e}", service="web_search") from e

        results = parse_search_results(response.text, max_results)
        logger.info(
            "web_search_completed",
            extra={"query": query, "result_count": len(results)},
        )
        return results

    async def extract_page_content(self, url: str) -> dict[str, Any]:
        """Fetch a page and return {title, content, links, emails, phones, metadata}."""
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DependencyError(
                f"GET {url} -> {e.response.status_code}",
                service="web_scraper",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise DependencyError(f"GET {url} failed: {e}", service="web_scraper") from e

        page = parse_page(response.text)
        logger.info(
            "page_extracted",
            extra={
                "url": url,
                "email_count": len(page["emails"]),
                "phone_count": len(page["phones"]),
            },
        )
        return page

    async def analyze_content(
        self, content: str, persona_context: Optional[str] = None
    ) -> ContentAnalysis:
        target = f" in the context of targeting: {persona_context}" if persona_context else ""
        prompt = (
            f"Analyze the following content and extract key information{target}:\n\n"
            f"{content[: self.config.max_content_chars]}\n\n"
            "Provide a structured analysis focusing on business opportunities "
            "and customer insights. buying_intent is a 0-100 score."
        )
        return await self.generator.generate_object(prompt, ContentAnalysis)

    async def discover_leads(
        self,
        query: str,
        max_leads: int = 10,
        persona_context: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Search for `query` and turn high-intent pages into lead dicts.

        Searches for twice the requested number of results and processes
        the first `max_leads`. A page that fails to load or analyze is
        logged and skipped.
        """
        results = await self.search(query, max_leads * 2)
        leads: list[dict[str, Any]] = []

        for index, result in enumerate(results[:max_leads]):
            if index and self.config.request_delay_seconds:
                await asyncio.sleep(self.config.request_delay_seconds)
            try:
                page = await self.extract_page_content(result["url"])
                analysis = await self.analyze_content(page["content"], persona_context)
            except (DependencyError, TaskExecutionError) as e:
                logger.warning(
                    "lead_page_skipped",
                    extra={"url": result["url"], "error": str(e)},
                )
                continue

            if analysis.buying_intent < self.config.min_buying_intent:
                logger.debug(
                    "lead_below_intent_threshold",
                    extra={"url": result["url"], "buying_intent": analysis.buying_intent},
                )
                continue

            lead: dict[str, Any] = {
                "source_url": result["url"],
                "discovered_via": "web_search",
                "interests": analysis.interests,
                "pain_points": analysis.pain_points,
                "buying_signals": [{
                    "type": "content_analysis",
                    "score": analysis.buying_intent,
                    "keywords": analysis.keywords,
                }],
                "metadata": {
                    "search_query": query,
                    "page_title": page["title"],
                    "sentiment": analysis.sentiment,
                    "main_topics": analysis.main_topics,
                },
            }
            if page["emails"]:
                lead["email"] = page["emails"][0]
            if page["phones"]:
                lead["phone"] = page["phones"][0]
            if page["metadata"].get("og:site_name"):
                lead["company"] = page["metadata"]["og:site_name"]
            leads.append(lead)

        logger.info(
            "lead_discovery_completed",
            extra={"query": query, "qualified": len(leads), "processed": min(len(results), max_leads)},
        )
        return leads
