"""Root conftest.py - register step definitions and provide the Qube Mesh fixtures."""

import asyncio
from pathlib import Path
from typing import Any, Iterator, List

import pytest

from qube_mesh.config import Settings
from qube_mesh.errors import ConfigurationError
from qube_mesh.session import SessionProvider, capture_failure_artifacts
from tests.step_defs.helpers import ScenarioContext

ROOT_DIR = Path(__file__).parent
STEP_DEFS_DIR = ROOT_DIR / "tests" / "step_defs"
ARTIFACTS_DIR = ROOT_DIR / "artifacts"


def _discover_step_modules() -> List[str]:
    """All ``*_steps.py`` modules in tests/step_defs, as importable names.

    Loading them as plugins registers their step definitions for every
    feature file, so test modules only need to call ``scenarios(...)``.
    """
    if not STEP_DEFS_DIR.exists():
        print(f"Warning: Step definitions directory not found: {STEP_DEFS_DIR}")
        return []
    return [f"tests.step_defs.{path.stem}" for path in sorted(STEP_DEFS_DIR.glob("*_steps.py"))]


pytest_plugins = _discover_step_modules()


# ============================================================================
# Session fixtures
# ============================================================================


@pytest.fixture(scope="session")
def settings() -> Settings:
    """Run settings from the environment and ./.env."""
    return Settings.from_env()


@pytest.fixture(scope="session")
def qm_loop() -> Iterator[asyncio.AbstractEventLoop]:
    """One event loop for every browser call of the run."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture(scope="session")
def session_provider(settings: Settings, qm_loop: asyncio.AbstractEventLoop) -> Iterator[SessionProvider]:
    """Browser session shared by all scenarios.

    Skips when the environment is not configured or no authenticated storage
    state is available.
    """
    missing = settings.missing_required()
    if missing:
        pytest.skip(f"Qube Mesh environment not configured (missing {', '.join(missing)})")
    provider = SessionProvider(settings)
    try:
        qm_loop.run_until_complete(provider.start())
    except ConfigurationError as e:
        qm_loop.run_until_complete(provider.close())
        pytest.skip(str(e))
    yield provider
    qm_loop.run_until_complete(provider.close())


@pytest.fixture
def qm_context(
    request: pytest.FixtureRequest, settings: Settings, qm_loop: asyncio.AbstractEventLoop
) -> ScenarioContext:
    """Per-scenario state; the browser session is only started when a step opens a page."""
    return ScenarioContext(
        settings,
        qm_loop,
        session_factory=lambda: request.getfixturevalue("session_provider"),
    )


@pytest.fixture(scope="function", autouse=True)
def close_scenario_page(qm_context: Any) -> Iterator[None]:
    """Close the scenario's page and browser context, even if the scenario fails."""
    yield
    try:
        qm_context.close_page()
    except Exception as e:  # noqa: BLE001
        print(f"⚠ Cleanup: closing the scenario page failed: {e}")


# ============================================================================
# Hooks
# ============================================================================


def pytest_bdd_step_error(request, feature, scenario, step, step_func, step_func_args, exception):
    """Save a screenshot and the page HTML when a step fails."""
    qm_context = request.getfixturevalue("qm_context")
    if qm_context.page is None:
        return
    name = f"{scenario.name}-{step.name}"
    try:
        written = qm_context.run(capture_failure_artifacts(qm_context.page, ARTIFACTS_DIR, name))
    except Exception as e:  # noqa: BLE001
        print(f"⚠ Could not save failure artifacts for '{name}': {e}")
        return
    for path in written:
        print(f"✗ Saved failure artifact: {path}")
