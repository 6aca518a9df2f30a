"""Identity of the agent persona a workflow runs against."""

from __future__ import annotations

from dataclasses import dataclass

AGENT_COUNT = 5


@dataclass(frozen=True)
class WorkflowContext:
    """Which conversational agent is being exercised.

    ``agent_index`` is zero-based: 0 is supplier offboarding, 4 is supplier
    profile update.
    """

    agent_name: str
    agent_index: int

    @property
    def agent_number(self) -> int:
        return self.agent_index + 1
