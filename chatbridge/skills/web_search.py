"""Web search skill -- Brave Search API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from chatbridge.errors import SkillError
from chatbridge.log import logger
from chatbridge.skills.base import Skill
from chatbridge.skills.registry import SkillRegistry
from chatbridge.types import SkillDefinition, SkillParameter

_BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
DEFAULT_MAX_RESULTS = 5


class WebSearchSkill(Skill):
    def __init__(
        self,
        registry: SkillRegistry,
        api_key: str = "",
        max_results_cap: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._cap = max(1, max_results_cap)
        self._transport = transport
        super().__init__(registry)

    @property
    def definition(self) -> SkillDefinition:
        return SkillDefinition(
            id="web-search",
            name="Web Search",
            description="Performs web searches to find information",
            parameters=(
                SkillParameter(name="query", type="string", required=True, description="Search query to execute"),
                SkillParameter(
                    name="maxResults",
                    type="number",
                    description=f"Maximum number of results to return (default: {DEFAULT_MAX_RESULTS})",
                    default_value=DEFAULT_MAX_RESULTS,
                ),
            ),
            category="information",
            version="1.0.0",
            author="System",
        )

    def clamp(self, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError, OverflowError):
            count = DEFAULT_MAX_RESULTS
        return min(self._cap, max(1, count))

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        query = params["query"].strip()
        if not query:
            raise SkillError("Web search requires a non-empty query")
        max_results = self.clamp(params.get("maxResults", DEFAULT_MAX_RESULTS))
        if not self._api_key:
            raise SkillError("Web search not configured (missing API key)")

        results = await self._brave_search(query, max_results)
        return {
            "query": query,
            "maxResults": max_results,
            "results": results,
            "totalResults": len(results),
            "searchedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def _brave_search(self, query: str, count: int) -> list[dict[str, str]]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(
                    _BRAVE_URL,
                    params={"q": query, "count": count},
                    headers={"X-Subscription-Token": self._api_key, "Accept": "application/json"},
                    timeout=15,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Brave search returned HTTP {e.response.status_code}")
            raise SkillError(f"Web search failed: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Brave search failed: {e}")
            raise SkillError(f"Web search failed: {type(e).__name__}") from e

        results = (data.get("web") or {}).get("results") or []
        return [
            {
                "title": r.get("title", ""),
                "url": r.get("url", ""),
                "snippet": r.get("description", ""),
            }
            for r in results[:count]
        ]
