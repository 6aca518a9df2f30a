"""Run settings read from the environment (and an optional ``.env`` file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from qube_mesh.context import AGENT_COUNT
from qube_mesh.errors import ConfigurationError

REQUIRED_ENV_VARS = ("BASE_URL", "USER_ID", "PASSWORD", "QUBE_MESH_URL")
TRUTHY = {"1", "true", "yes", "y", "on"}
DEFAULT_AGENTS = tuple(f"Agent {number}" for number in range(1, AGENT_COUNT + 1))
DEFAULT_STORAGE_STATE = Path(".auth") / "user.json"


def is_truthy(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in TRUTHY


def _agents(env: Mapping[str, str]) -> Tuple[str, ...]:
    explicit = [
        env.get(f"AGENT_{number}", "").strip() for number in range(1, AGENT_COUNT + 1)
    ]
    explicit = [name for name in explicit if name]
    listed = [name.strip() for name in env.get("AGENTS", "").split(",") if name.strip()]
    merged = (explicit or listed or list(DEFAULT_AGENTS))[:AGENT_COUNT]
    if len(merged) != AGENT_COUNT:
        raise ConfigurationError(
            ["AGENTS"],
            message=f"Expected {AGENT_COUNT} agents (use AGENT_1..AGENT_{AGENT_COUNT} "
            f"or AGENTS with {AGENT_COUNT} comma-separated values)",
        )
    return tuple(merged)


@dataclass(frozen=True)
class Settings:
    """Everything a live run needs to know about its environment."""

    base_url: str = ""
    user_id: str = ""
    password: str = field(default="", repr=False)
    qube_mesh_url: str = ""
    agents: Tuple[str, ...] = DEFAULT_AGENTS
    headless: bool = True
    storage_state: Path = DEFAULT_STORAGE_STATE
    data_dir: Optional[Path] = None
    assets_dir: Optional[Path] = None
    timeout_scale: float = 1.0

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Path] = None,
    ) -> Settings:
        """Build settings from ``env`` (default: ``os.environ`` after loading ``.env``)."""
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ
        data_dir = env.get("QUBE_MESH_DATA_DIR", "").strip()
        assets_dir = env.get("QUBE_MESH_ASSETS_DIR", "").strip()
        scale = env.get("QUBE_MESH_TIMEOUT_SCALE", "").strip()
        return cls(
            base_url=env.get("BASE_URL", "").strip(),
            user_id=env.get("USER_ID", "").strip(),
            password=env.get("PASSWORD", ""),
            qube_mesh_url=env.get("QUBE_MESH_URL", "").strip(),
            agents=_agents(env),
            headless=not (is_truthy(env.get("PW_HEADED")) or is_truthy(env.get("HEADED"))),
            storage_state=Path(env.get("STORAGE_STATE", "").strip() or DEFAULT_STORAGE_STATE),
            data_dir=Path(data_dir) if data_dir else None,
            assets_dir=Path(assets_dir) if assets_dir else None,
            timeout_scale=float(scale) if scale else 1.0,
        )

    @property
    def upload_dir(self) -> Optional[Path]:
        """Base directory for relative upload paths; the scenario directory by default."""
        return self.assets_dir or self.data_dir

    def missing_required(self) -> List[str]:
        values = {
            "BASE_URL": self.base_url,
            "USER_ID": self.user_id,
            "PASSWORD": self.password,
            "QUBE_MESH_URL": self.qube_mesh_url,
        }
        return [name for name in REQUIRED_ENV_VARS if not values[name]]

    def require(self) -> Settings:
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(missing)
        return self

    def agent_name(self, agent_index: int) -> str:
        if not 0 <= agent_index < len(self.agents):
            raise ConfigurationError(
                ["AGENTS"], message=f"Agent index {agent_index} is outside 0..{len(self.agents) - 1}"
            )
        return self.agents[agent_index]
