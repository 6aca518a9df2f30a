"""Command-line runner: ``python -m qube_mesh run|list``."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace
from typing import List, Optional

from qube_mesh.config import Settings
from qube_mesh.context import WorkflowContext
from qube_mesh.data import WORKFLOW_DATA, default_providers
from qube_mesh.errors import QubeMeshError
from qube_mesh.finalizer import WorkflowEnd
from qube_mesh.pages import QubeMeshPage
from qube_mesh.session import SessionProvider
from qube_mesh.workflows import run_agent_workflow

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qube_mesh",
        description="Run Qube Mesh agent workflows end to end with Playwright",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run one agent workflow")
    run.add_argument(
        "--agent-index",
        type=int,
        required=True,
        help="Zero-based agent index (0: offboarding ... 4: profile update)",
    )
    run.add_argument("--sno", help="Scenario key (default: the agent's default row)")
    run.add_argument("--headed", action="store_true", help="Show the browser window")
    run.add_argument("--env-file", help="Path to a .env file (default: ./.env)")

    listing = commands.add_parser("list", help="List scenario keys of a workflow")
    listing.add_argument(
        "--workflow",
        required=True,
        choices=sorted(WORKFLOW_DATA),
        help="Workflow whose scenario rows to list",
    )
    return parser


async def run_workflow(settings: Settings, agent_index: int, sno: Optional[str]) -> WorkflowEnd:
    ctx = WorkflowContext(agent_name=settings.agent_name(agent_index), agent_index=agent_index)
    providers = default_providers(settings.data_dir)
    async with SessionProvider(settings) as session:
        async with session.page() as page:
            app = QubeMeshPage(page, timeout_scale=settings.timeout_scale)
            await app.goto(settings.qube_mesh_url)
            await app.dismiss_faq()
            await app.start_auto_invoke()
            await app.select_agent(ctx.agent_name)
            return await run_agent_workflow(
                page,
                ctx,
                sno=sno,
                providers=providers,
                assets_dir=settings.upload_dir,
                timeout_scale=settings.timeout_scale,
            )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.command == "list":
            settings = Settings.from_env()
            provider = default_providers(settings.data_dir)[args.workflow]
            for row in provider.rows():
                print(f"{row.sno}\t{row.query}")
            return 0

        settings = Settings.from_env(dotenv_path=args.env_file).require()
        if args.headed:
            settings = replace(settings, headless=False)
        end = asyncio.run(run_workflow(settings, args.agent_index, args.sno))
    except QubeMeshError as e:
        logger.error("%s", e)
        return 1

    print(f"Workflow ended by: {end}")
    return 0
