import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import List, Optional

import httpx

from cardmirror.core.api import CardApiClient
from cardmirror.core.auth import AuthClient, PollStatus, Session, save_credentials
from cardmirror.core.config import Settings, load_settings
from cardmirror.core.engine import Reconciler
from cardmirror.core.errors import CardMirrorError, ConfigError, NetworkError, NotFoundError, RemoteError
from cardmirror.core.logging import get_logger, setup_logging
from cardmirror.core.models import RunSummary
from cardmirror.core.sources import CardSource, LocalExportSource, RemoteCardSource
from cardmirror.core.writer import ArtifactWriter
from . import ui

logger = get_logger(__name__)

USER_AGENT = "cardmirror/0.1"

class CLIApp:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="cardmirror",
            description="Cardmirror: back up audio cards to a local directory.",
        )
        parser.add_argument("--debug", action="store_true", help="Enable debug output.")
        parser.add_argument("--config", help="Path to config.yaml (default: ./config.yaml).")
        commands = parser.add_subparsers(dest="command", required=True)

        login = commands.add_parser("login", help="Authorize this device and store credentials.")
        login.add_argument("--max-attempts", type=int, default=60, help="Polls before giving up.")
        login.add_argument("--wait", type=float, default=None, help="Give up after this many seconds.")

        web = commands.add_parser("web", help="Back up every card of the account.")
        web.add_argument("output", help="Output directory.")

        sd = commands.add_parser("sd", help="Back up cards from an extracted player SD card.")
        sd.add_argument("input", help="Directory holding the extracted cards.")
        sd.add_argument("output", help="Output directory.")
        return parser

    async def run(self, argv: Optional[List[str]] = None) -> int:
        args = self.build_parser().parse_args(argv)
        setup_logging(args.debug)

        if self.settings is None:
            try:
                self.settings = load_settings(args.config)
            except ConfigError as e:
                ui.print_error(str(e))
                return 1

        headers = {"User-Agent": USER_AGENT}
        async with httpx.AsyncClient(headers=headers, timeout=self.settings.timeout) as client:
            if args.command == "login":
                return await self._login(client, args)
            if args.command == "web":
                return await self._backup_web(client, Path(args.output).resolve())
            return await self._backup_sd(client, Path(args.input).resolve(), Path(args.output).resolve())

    async def _login(self, client: httpx.AsyncClient, args: argparse.Namespace) -> int:
        auth = AuthClient(client, self.settings)
        try:
            code = await auth.request_device_code()
            ui.display_device_code(code)

            deadline = time.monotonic() + args.wait if args.wait else None
            result = await auth.wait_for_authorization(code, max_attempts=args.max_attempts, deadline=deadline)
        except (RemoteError, NetworkError) as e:
            ui.print_error(str(e))
            return 1

        if result.status is not PollStatus.AUTHORIZED:
            ui.print_error("Login timed out, please try again.")
            return 1

        extra = dict(code.raw or {})
        extra.update(result.token_response or {})
        save_credentials(result.session, self.settings.credentials_file, extra)
        ui.print_ok("Login successful")
        return 0

    async def _authenticate(self, client: httpx.AsyncClient) -> Session:
        return await AuthClient(client, self.settings).authenticate()

    async def _backup_web(self, client: httpx.AsyncClient, output: Path) -> int:
        try:
            session = await self._authenticate(client)
        except CardMirrorError as e:
            ui.print_error(f"Could not login: {e}")
            return 1
        if not session.authenticated:
            ui.print_error(f"Could not login, check {self.settings.credentials_file} or config.yaml")
            return 1
        ui.print_ok("Logged in")

        api = CardApiClient(client, session, self.settings.base_url)
        return await self._reconcile(RemoteCardSource(api), client, output)

    async def _backup_sd(self, client: httpx.AsyncClient, input_dir: Path, output: Path) -> int:
        try:
            session = await self._authenticate(client)
        except CardMirrorError as e:
            ui.print_warning(f"Could not login, missing tracks will not be downloaded: {e}")
            session = Session()
        if not session.authenticated:
            ui.print_warning("Not logged in, missing tracks will not be downloaded")

        api = CardApiClient(client, session, self.settings.base_url)
        try:
            source = LocalExportSource(input_dir, api=api)
        except NotFoundError as e:
            ui.print_error(str(e))
            return 1
        return await self._reconcile(source, client, output)

    async def _reconcile(self, source: CardSource, client: httpx.AsyncClient, output: Path) -> int:
        if not output.exists():
            ui.print_ok(f"Creating {output}")
        output.mkdir(parents=True, exist_ok=True)

        reconciler = Reconciler(
            source,
            ArtifactWriter(client),
            settings=self.settings,
            reporter=ui.ConsoleReporter(),
        )
        summary = RunSummary()
        exit_code = 1
        try:
            await reconciler.run(output, summary)
            exit_code = 0
        except CardMirrorError as e:
            logger.debug("Run aborted", exc_info=True)
            ui.print_error(str(e))
        finally:
            ui.display_summary(summary)
        return exit_code

def start():
    """Function to be called by the entry point."""
    app = CLIApp()
    try:
        sys.exit(asyncio.run(app.run()))
    except KeyboardInterrupt:
        sys.exit(130)
