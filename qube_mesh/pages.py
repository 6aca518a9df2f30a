"""Page object for the Qube Mesh chat application."""

from __future__ import annotations

import logging
import re
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from qube_mesh.errors import ConfigurationError, ElementNotFound, PageDiagnostics, RequiredElementTimeout
from qube_mesh.resolver import ElementResolver
from qube_mesh.selectors import CandidateSet, MatcherTable, RoleMatcher
from qube_mesh.waits import first_visible

logger = logging.getLogger(__name__)

APP_ROUTE = "qube-mesh"
GOTO_TOTAL_TIMEOUT_MS = 120_000
MIN_ATTEMPT_TIMEOUT_MS = 20_000
HYDRATE_MS = 1_500
PICKER_TIMEOUT_MS = 120_000
AGENT_TIMEOUT_MS = 30_000


def candidate_urls(url: str) -> List[str]:
    """The configured URL, then hash-routed and path-routed variants of it.

    Deployments route the app either as ``/#/qube-mesh`` or ``/qube-mesh``;
    variants already naming the route are not added again.
    """
    parts = urlsplit(url)
    urls = [url]

    fragment = parts.fragment
    if APP_ROUTE not in fragment.lower():
        if fragment in ("", "/"):
            hashed = f"/{APP_ROUTE}"
        else:
            hashed = "/" + fragment.lstrip("/") + f"/{APP_ROUTE}"
        urls.append(urlunsplit(parts._replace(fragment=hashed)))

    if APP_ROUTE not in parts.path.lower():
        path = parts.path.rstrip("/") + f"/{APP_ROUTE}"
        urls.append(urlunsplit(parts._replace(path=path, fragment="")))

    unique: List[str] = []
    for candidate in urls:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def agent_name_pattern(name: str) -> re.Pattern:
    """Tokens of ``name`` in order, ignoring underscores, dashes and case."""
    tokens = [token for token in re.split(r"[^a-z0-9]+", name.lower()) if token]
    if not tokens:
        return re.compile(re.escape(name), re.IGNORECASE)
    return re.compile(".*".join(re.escape(token) for token in tokens), re.IGNORECASE)


class QubeMeshPage:
    """Navigation and agent selection on top of a Playwright page.

    Args:
        page: Playwright page.
        table: Matcher table override.
        timeout_scale: Multiplier for every bounded wait.
    """

    def __init__(
        self,
        page: Page,
        table: Optional[MatcherTable] = None,
        timeout_scale: float = 1.0,
    ) -> None:
        self.page = page
        self.resolver = ElementResolver(page, table, timeout_scale)

    async def goto(self, url: str, total_timeout_ms: int = GOTO_TOTAL_TIMEOUT_MS) -> str:
        """Open the app, trying each candidate route until the prompt box shows.

        Returns the candidate URL that worked; re-raises the last failure.
        """
        candidates = candidate_urls(url)
        if not candidates:
            raise ConfigurationError(["QUBE_MESH_URL"], message=f"No route to try for {url!r}")
        per_attempt = max(MIN_ATTEMPT_TIMEOUT_MS, total_timeout_ms // len(candidates))
        failures: List[Exception] = []
        for candidate in candidates:
            try:
                await self.page.goto(candidate, wait_until="domcontentloaded", timeout=per_attempt)
                await self.page.wait_for_timeout(HYDRATE_MS)
                await self.resolver.resolve("prompt_input", timeout_ms=per_attempt)
                logger.info("Qube Mesh loaded from %s", candidate)
                return candidate
            except (PlaywrightError, RequiredElementTimeout) as e:
                failures.append(e)
                diagnostics = await PageDiagnostics.capture(self.page)
                logger.warning("goto attempt failed. candidate=%s %s", candidate, diagnostics)
        raise failures[-1]

    async def dismiss_faq(self) -> bool:
        return await self.resolver.dismiss_blocking_dialog()

    async def start_auto_invoke(self) -> None:
        """Open the agent picker, looking in embedded frames if needed."""
        button = await self.resolver.find("navigation.auto_invoke")
        if button is None:
            pattern = re.compile("auto invoke", re.IGNORECASE)
            for frame in self.page.frames:
                button = await first_visible(frame.get_by_role("button", name=pattern))
                if button is not None:
                    logger.info("Auto Invoke found in frame %s", frame.url)
                    break
        if button is None:
            button = await self.resolver.resolve("navigation.auto_invoke", timeout_ms=PICKER_TIMEOUT_MS)
        await self.resolver.click(button, intent="Auto Invoke")

    async def select_agent(self, name: str) -> None:
        """Search the picker for ``name`` and click it (exact name first)."""
        search = await self.resolver.resolve("navigation.agent_search", timeout_ms=AGENT_TIMEOUT_MS)
        query = re.sub(r"[_-]+", " ", name).strip()
        await search.fill(query)

        exact = CandidateSet(
            f"agent {name}",
            (RoleMatcher("button", name=re.compile(rf"^\s*{re.escape(name)}\s*$")),),
        )
        fuzzy = CandidateSet(f"agent ~{name}", (RoleMatcher("button", name=agent_name_pattern(query)),))
        agent = await self.resolver.find(exact, timeout_ms=2_000)
        if agent is None:
            agent = await self.resolver.find(fuzzy, timeout_ms=AGENT_TIMEOUT_MS)
        if agent is None:
            raise ElementNotFound(f"agent '{name}'", AGENT_TIMEOUT_MS, await self.resolver.diagnostics())
        await self.resolver.click(agent, intent=f"agent {name}")
        logger.info("Selected agent %s", name)
