#!/usr/bin/env python3
"""
Preflight checks for the CRM end-to-end suite.

    crm-e2e credential --target-org my-scratch
    crm-e2e session --target-org my-scratch --screenshot home

``credential`` verifies that the org's credential can be read without a
browser; ``session`` opens a browser and establishes a session with it.
"""
import argparse
import logging
import sys
from typing import List, Optional

import anyio

from crm_e2e.config import settings
from crm_e2e.driver import ResilientUIDriver
from crm_e2e.errors import SessionError, ToolError
from crm_e2e.playwright_client import playwright_session
from crm_e2e.session import build_bootstrapper

logger = logging.getLogger("crm_e2e")


def _bootstrapper(page, target_org: Optional[str]):
    identity = target_org if target_org else None
    return build_bootstrapper(page, identity=identity)


def cmd_credential(args) -> int:
    bootstrapper = _bootstrapper(None, args.target_org)
    try:
        credential = bootstrapper.acquire_credential()
    except SessionError as e:
        logger.error(f"Could not acquire credential: {e}")
        return 1
    print(f"instance_url: {credential.instance_url}")
    print(f"access_token: {credential.masked_token}")
    return 0


async def _establish(args) -> int:
    async with playwright_session() as page:
        bootstrapper = _bootstrapper(page, args.target_org)
        try:
            report = await bootstrapper.establish_session()
        except SessionError as e:
            logger.error(f"Session not established: {e}")
            return 1

        logger.info(f"Landed on {page.url} (state={report.state.value}, settled={report.settled})")
        for step in report.unsettled():
            logger.warning(f"Step {step.state.value} did not settle: {step.detail}")

        if args.screenshot:
            driver = ResilientUIDriver(page, base_url=bootstrapper.credential.instance_url)
            try:
                path = await driver.screenshot(args.screenshot)
            except ToolError as e:
                logger.error(f"Screenshot failed: {e.message}")
                return 1
            logger.info(f"Screenshot saved to {path}")
    return 0


def cmd_session(args) -> int:
    return anyio.run(_establish, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crm-e2e", description="CRM end-to-end suite preflight checks")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    credential = subparsers.add_parser("credential", help="Acquire a credential without a browser")
    credential.add_argument("--target-org", help=f"Org alias or username (default: {settings.target_org or 'CLI default'})")
    credential.set_defaults(func=cmd_credential)

    session = subparsers.add_parser("session", help="Establish a browser session")
    session.add_argument("--target-org", help="Org alias or username")
    session.add_argument("--screenshot", metavar="NAME", help="Save a screenshot to SCREENSHOT_DIR/NAME.png")
    session.set_defaults(func=cmd_session)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
