"""
PrintHub Shop Console

Shop-owner print queue that:
1. Signs in against the auth provider
2. Loads the shop's print jobs from the backend
3. Follows the realtime channel (polling when it fails)
4. Moves jobs through the queue and opens files for direct printing

Runs as a console application.
"""

import asyncio
import json
import logging
import signal
import sys
import threading
import webbrowser
from typing import Optional

import redis.asyncio as redis

from shop_console.auth_client import AuthClient, AuthError, TokenManager
from shop_console.backend_client import BackendClient
from shop_console.job_board import JobBoard
from shop_console.state import ConsoleState
from shop_console.subscription import QueueSubscription

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler('shop_console.log', encoding='utf-8')
        ]
    )


REQUIRED_FIELDS = ['backend_url', 'auth_url', 'redis_url', 'email', 'password']

SAMPLE_CONFIG = {
    "backend_url": "http://localhost:8000",
    "auth_url": "http://localhost:9999",
    "anon_key": "",
    "redis_url": "redis://localhost:6379/0",
    "email": "owner@example.com",
    "password": "",
    "state_path": "console_state.json",
    "poll_interval": 30
}

COMMANDS = {
    "accept": "queued",
    "start": "printing",
    "complete": "completed",
    "cancel": "cancelled",
}

HELP = (
    "Commands: list [tab] | stats | accept <id> | start <id> | complete <id> | "
    "cancel <id> | print <id> | refresh | quit"
)


def load_config(config_path: str = 'config.json') -> dict:
    """Load configuration from JSON file."""
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)

        for field in REQUIRED_FIELDS:
            if field not in config:
                raise ValueError(f"Missing required config field: {field}")

        return {**SAMPLE_CONFIG, **config}

    except FileNotFoundError:
        logger.error(f"Config file {config_path} not found.")
        logger.info("Creating sample config file...")
        with open(config_path, 'w') as f:
            json.dump(SAMPLE_CONFIG, f, indent=4)
        logger.info(f"Sample config created at {config_path}. Please update it and restart.")
        sys.exit(1)

    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in config file: {e}")
        sys.exit(1)


def format_job(job: dict) -> str:
    expiry = job.get("expiry") or {}
    left = expiry.get("time_left", "")
    return (
        f"{job['id'][:6]}  {job.get('status', ''):<10} {job.get('file_name', ''):<32} "
        f"{job.get('customer_name') or '':<20} {job.get('pages', 1)}p x{job.get('copies', 1)}  "
        f"{job.get('total_cost', 0):>8.2f}  {left}"
    )


def read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue):
    """Feed typed lines into the loop's queue; None marks end of input."""
    while True:
        try:
            line = input("> ")
        except (EOFError, KeyboardInterrupt):
            line = None
        loop.call_soon_threadsafe(lines.put_nowait, line)
        if line is None:
            return


class ShopConsole:
    """
    Main console class.

    Holds the auth session, the job board and its realtime subscription.
    """

    def __init__(self, config: dict):
        self.config = config
        self.running = False

        self.auth = AuthClient(config['auth_url'], config.get('anon_key', ''))
        self.tokens = TokenManager(self.auth)
        self.backend = BackendClient(config['backend_url'], self.tokens.get_valid_token)
        self.board = JobBoard()
        self.state = ConsoleState(config.get('state_path', 'console_state.json'))
        self.subscription: Optional[QueueSubscription] = None

    async def sign_in(self) -> bool:
        try:
            session = await self.auth.sign_in_with_password(self.config['email'], self.config['password'])
        except AuthError as e:
            logger.error(f"Sign in failed: {e.message}")
            return False
        if not session.is_shop_owner:
            logger.error("This account is not a shop owner account")
            await self.auth.sign_out()
            return False
        logger.info(f"Welcome back! Shop owner {session.user_id}")
        return True

    def find_job(self, prefix: str) -> Optional[dict]:
        matches = [job for job in self.board.jobs if job["id"].startswith(prefix)]
        if len(matches) != 1:
            logger.warning(f"No unique job matches '{prefix}'")
            return None
        return matches[0]

    async def print_job(self, job: dict):
        """Open the signed file URL in the browser print dialog and mark the job done."""
        result = await self.backend.direct_print(job["id"])
        if not result:
            return
        webbrowser.open(result["file_url"])
        self.board.apply({"eventType": "UPDATE", "new": result["job"]})
        logger.info(f"Printing {job.get('file_name')}")

    async def handle_command(self, line: str):
        parts = line.strip().split()
        if not parts:
            return
        command, args = parts[0].lower(), parts[1:]

        if command in ("quit", "exit"):
            self.running = False
        elif command == "list":
            tab = args[0] if args else "all"
            for job in self.board.by_status(tab):
                print(format_job(job))
            print(self.board.status_counts())
        elif command == "stats":
            print(await self.backend.get_queue_stats())
        elif command == "refresh":
            await self.subscription.refetch()
        elif command in COMMANDS and args:
            job = self.find_job(args[0])
            if job:
                updated = await self.backend.update_job_status(job["id"], COMMANDS[command])
                if updated:
                    self.board.apply({"eventType": "UPDATE", "new": updated})
        elif command == "print" and args:
            job = self.find_job(args[0])
            if job:
                await self.print_job(job)
        else:
            print(HELP)

    async def start(self):
        logger.info("=" * 60)
        logger.info("PrintHub Shop Console Starting")
        logger.info("=" * 60)

        if not await self.backend.test_connection():
            logger.warning("Backend connection failed - will retry during operation")

        if not await self.sign_in():
            sys.exit(1)

        if self.state.should_show_expiry_notice():
            logger.info("File Auto-Expiry Active: files are automatically deleted after 24 hours")

        self.subscription = QueueSubscription(
            redis.from_url(self.config['redis_url'], decode_responses=True),
            self.auth.session.user_id,
            self.board,
            self.backend,
            poll_interval=self.config.get('poll_interval', 30),
        )
        await self.subscription.start()
        logger.info(f"Loaded {len(self.board.jobs)} jobs")
        print(HELP)

        await self.command_loop()

    def _install_stop_handler(self, loop: asyncio.AbstractEventLoop, task: asyncio.Task):
        """SIGTERM cancels the command loop, even while it waits for input."""
        try:
            loop.add_signal_handler(signal.SIGTERM, task.cancel)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(signal.SIGTERM, lambda sig, frame: loop.call_soon_threadsafe(task.cancel))

    def _remove_stop_handler(self, loop: asyncio.AbstractEventLoop):
        try:
            loop.remove_signal_handler(signal.SIGTERM)
        except NotImplementedError:
            signal.signal(signal.SIGTERM, signal.SIG_DFL)

    async def command_loop(self):
        loop = asyncio.get_running_loop()
        self._install_stop_handler(loop, asyncio.current_task())

        lines: asyncio.Queue = asyncio.Queue()
        threading.Thread(target=read_stdin, args=(loop, lines), daemon=True).start()

        self.running = True
        try:
            while self.running:
                line = await lines.get()
                if line is None:
                    break
                try:
                    await self.handle_command(line)
                except Exception as e:
                    logger.error(f"Unexpected error in console loop: {e}", exc_info=True)
        finally:
            self._remove_stop_handler(loop)
            await self.stop()

    async def stop(self):
        """Gracefully stop the console."""
        logger.info("Stopping shop console...")
        self.running = False
        if self.subscription:
            await self.subscription.close()
        await self.auth.sign_out()
        await self.auth.aclose()
        await self.backend.aclose()


def main():
    """Main entry point."""
    configure_logging()
    config = load_config()
    console = ShopConsole(config)

    try:
        asyncio.run(console.start())
    except (asyncio.CancelledError, KeyboardInterrupt):
        logger.info("Shop console stopped")


if __name__ == "__main__":
    main()
