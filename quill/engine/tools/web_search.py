"""exaWebSearch: search the web through the Exa API."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape

import aiohttp
from pydantic import AliasChoices, BaseModel, Field

from quill.engine.errors import ConfigurationError, ResourceIOError
from quill.engine.tools.base import BaseTool
from quill.shared.models.message import ToolMessage

if TYPE_CHECKING:
    from quill.engine.config import WebSearchConfig
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)

MAX_RESULT_TEXT = 5000
_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


class WebSearchInput(BaseModel):
    query: str = Field(
        min_length=1,
        description="What to search for. English queries tend to work best.",
    )
    num_results: int | None = Field(
        default=None,
        ge=1,
        le=20,
        validation_alias=AliasChoices("num_results", "numResults"),
        description="Number of results, 1-20. Defaults to the configured count.",
    )


def _xml(text: str) -> str:
    return escape(text, _XML_ENTITIES)


def format_exa_results(results: list[dict[str, Any]]) -> str:
    if not results:
        return "No results found for the search query."
    out = [f'<exa_search_results count="{len(results)}">', ""]
    for index, result in enumerate(results, start=1):
        out.append(f'<result index="{index}">')
        out.append(f"  <title>{_xml(result.get('title') or 'Untitled')}</title>")
        out.append(f"  <url>{_xml(result.get('url') or '')}</url>")
        for key in ("author", "publishedDate", "summary"):
            if result.get(key):
                out.append(f"  <{key}>{_xml(str(result[key]))}</{key}>")
        text = result.get("text")
        if text:
            if len(text) > MAX_RESULT_TEXT:
                text = text[:MAX_RESULT_TEXT] + "... [truncated]"
            out.append(f"  <content>{_xml(text)}</content>")
        out.append("</result>")
        out.append("")
    out.append("</exa_search_results>")
    return "\n".join(out)


async def exa_search(
    config: WebSearchConfig, query: str, num_results: int | None = None
) -> list[dict[str, Any]]:
    body = {
        "query": query,
        "type": "auto",
        "numResults": num_results or config.num_results,
        "contents": {
            "text": {"maxCharacters": config.max_characters},
            "livecrawl": config.livecrawl,
        },
    }
    headers = {"Content-Type": "application/json", "x-api-key": config.api_key}
    timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(config.api_url, json=body, headers=headers) as resp:
                if resp.status < 200 or resp.status >= 300:
                    detail = await resp.text()
                    raise ResourceIOError(
                        config.api_url, "search", f"HTTP {resp.status}: {detail[:200]}"
                    )
                data = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise ResourceIOError(config.api_url, "search", str(exc) or type(exc).__name__) from exc
    return list((data or {}).get("results") or [])


class WebSearchTool(BaseTool):
    name = "exaWebSearch"
    description = (
        "Search the web for current information. Returns titles, URLs and "
        "page text for the best matching results."
    )
    input_model = WebSearchInput

    async def execute(
        self, ctx: AgentContext, params: WebSearchInput, message: ToolMessage
    ) -> dict[str, Any]:
        config = ctx.config.web_search
        if not config.enabled:
            raise ConfigurationError(self.name, "web search is disabled")
        if not config.api_key:
            raise ConfigurationError(self.name, "Exa API key is not configured")

        results = await exa_search(config, params.query, params.num_results)
        logger.info("Web search %r returned %d result(s)", params.query, len(results))
        return {
            "query": params.query,
            "titles": [r.get("title") or "Untitled" for r in results],
            "text": format_exa_results(results),
        }

    def summarize(self, result: dict[str, Any]) -> str:
        return result["text"]
