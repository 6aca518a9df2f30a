"""Shared end-of-workflow contract.

Every workflow finishes here. The finalizer waits for one of three end
screens and reports which one the run reached:

* ``congratulations``: the request went all the way through.
* ``send-for-validation``: "Send for Validation" was clicked and confirmed.
* ``edit-project-request-only``: the request exists but was not sent.

Anything else is a ``RequiredElementTimeout``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Locator

from qube_mesh.errors import RequiredElementTimeout
from qube_mesh.resolver import ElementResolver
from qube_mesh.waits import is_hidden_or_disabled, poll

logger = logging.getLogger(__name__)

DEFAULT_END_TIMEOUT_MS = 240_000
SEND_APPEAR_TIMEOUT_MS = 30_000
CONFIRMATION_TIMEOUT_MS = 180_000
SEND_ENABLED_TIMEOUT_MS = 60_000


class EndedBy(str, Enum):
    CONGRATULATIONS = "congratulations"
    SEND_FOR_VALIDATION = "send-for-validation"
    EDIT_PROJECT_REQUEST_ONLY = "edit-project-request-only"


@dataclass(frozen=True)
class WorkflowEnd:
    """Terminal state of one successful workflow run."""

    ended_by: EndedBy

    @property
    def clicked_send_for_validation(self) -> bool:
        return self.ended_by is EndedBy.SEND_FOR_VALIDATION

    def __str__(self) -> str:
        return self.ended_by.value


async def finalize(
    resolver: ElementResolver,
    *,
    end_timeout_ms: int = DEFAULT_END_TIMEOUT_MS,
    send_appear_timeout_ms: int = SEND_APPEAR_TIMEOUT_MS,
    confirmation_timeout_ms: int = CONFIRMATION_TIMEOUT_MS,
) -> WorkflowEnd:
    """Wait for an end screen and drive it to one of the three terminal states."""
    first = await resolver.race(
        {
            "congratulations": "finalize.congratulations",
            "edit": "finalize.edit_project_request",
            "send": "finalize.send_for_validation",
        },
        timeout_ms=end_timeout_ms,
    )
    if first is None:
        raise RequiredElementTimeout(
            "end screen",
            resolver.scaled(end_timeout_ms),
            await resolver.diagnostics(),
            message=f"did not reach end screen within {resolver.scaled(end_timeout_ms)}ms",
        )
    logger.info("End screen reached (first signal: %s)", first)

    if await resolver.is_present("finalize.congratulations"):
        return WorkflowEnd(EndedBy.CONGRATULATIONS)

    send = await resolver.find("finalize.send_for_validation")
    if send is None and await resolver.is_present("finalize.edit_project_request"):
        logger.info("Edit Project Request shown without Send for Validation")
        return WorkflowEnd(EndedBy.EDIT_PROJECT_REQUEST_ONLY)

    if send is None:
        send = await resolver.find("finalize.send_for_validation", timeout_ms=send_appear_timeout_ms)
    if send is None:
        logger.warning(
            "Send for Validation did not appear within %sms; ending as request-only",
            resolver.scaled(send_appear_timeout_ms),
        )
        return WorkflowEnd(EndedBy.EDIT_PROJECT_REQUEST_ONLY)

    await resolver.ensure_enabled(send, intent="Send for Validation", timeout_ms=SEND_ENABLED_TIMEOUT_MS)
    await resolver.click(send, intent="Send for Validation")
    await _confirm_sent(resolver, send, confirmation_timeout_ms)
    return WorkflowEnd(EndedBy.SEND_FOR_VALIDATION)


async def _confirm_sent(resolver: ElementResolver, send: Locator, timeout_ms: int) -> None:
    async def check() -> bool:
        if await resolver.is_present("finalize.congratulations"):
            return True
        if await resolver.is_present("finalize.submitted"):
            return True
        return await is_hidden_or_disabled(send)

    if not await poll(resolver.page, check, resolver.scaled(timeout_ms)):
        raise RequiredElementTimeout(
            "validation confirmation",
            resolver.scaled(timeout_ms),
            await resolver.diagnostics(),
            message="Send for Validation was clicked but no confirmation appeared "
            f"within {resolver.scaled(timeout_ms)}ms",
        )
