"""Console front end for the chat translation core.

Reads chat lines from stdin ("<name> text" or "name: text"), translates them through the
pipeline, and prints the result. Useful for trying a configuration without a game client.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING, Final, NoReturn

from config.loader import ConfigLoader
from core.shared_data import SharedData
from core.version import VERSION
from utils.file_utils import FileUtils
from utils.logger_utils import LoggerUtils
from utils.string_utils import StringUtils

if TYPE_CHECKING:
    import logging

    from models.config_models import Config

LOG_FILE_NAME: Final[str] = "chat_translate.log"

logger: logging.Logger = LoggerUtils.get_logger(__name__)


def check_python_version() -> None:
    """Check if Python version is 3.12 or later.

    Raises:
        RuntimeError: If Python version is below 3.12.
    """
    if sys.version_info < (3, 12):
        msg = "Python 3.12 or later is required"
        raise RuntimeError(msg)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        print(f"\n{message}\n", file=sys.stderr)
        self.print_help(sys.stderr)
        raise SystemExit(2)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed arguments.
    """
    parser = _ArgumentParser(
        description="Translate chat lines read from stdin with a local or online LLM",
        epilog='Example: echo "Steve: hello there" | python chat_translate.py --server play.example.com',
    )
    parser.add_argument("--config", dest="config", metavar="PATH", help="Configuration JSON file")
    parser.add_argument("--server", dest="server", metavar="ADDRESS", help="Remote server address (default: single player)")
    parser.add_argument(
        "--outgoing", action="store_true", help="Treat input as your own messages (outgoing translation)"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-llama", dest="no_llama", action="store_true", help="Do not start llama-server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


def setup_logging(*, debug: bool) -> None:
    log_dir = FileUtils.data_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file: str = str(log_dir / LOG_FILE_NAME)
    except OSError:
        log_file = ""
    LoggerUtils(log_file).apply_debug_mode(debug=debug)


def notify_timeout(original: str) -> None:
    print(f"(translation timed out, original sent) {original}", flush=True)


async def run(args: argparse.Namespace) -> None:
    loader = ConfigLoader(args.config)
    config: Config = loader.config
    if config.debug_mode and not args.debug:
        LoggerUtils().apply_debug_mode(debug=True)
    if args.outgoing:
        config.auto_translate_outgoing = True

    shared = SharedData(config, _timeout_notifier=notify_timeout)
    await shared.async_init()
    try:
        if await shared.startup(start_llama=not args.no_llama):
            print(f"llama-server running (pid {shared.supervisor.pid})", file=sys.stderr)
        if not await shared.pipeline.test_connection():
            print(f"Warning: inference endpoint is not reachable: {shared.client.endpoint}", file=sys.stderr)

        scope = shared.pipeline.on_join(args.server)
        print(f"Server: {scope.server_id} (type lines, Ctrl-D to quit)", file=sys.stderr)

        while line := await asyncio.to_thread(sys.stdin.readline):
            line = line.strip()
            if not line:
                continue
            speaker, text = StringUtils.split_chat_line(line)
            if args.outgoing:
                translated: str = await shared.pipeline.translate_outgoing(speaker, text)
            else:
                translated = await shared.pipeline.translate_incoming(speaker, text)
            print(f"<{speaker}> {translated}", flush=True)
            if translated != text:
                print(f"    [{text}]", flush=True)

        shared.pipeline.on_leave()
        print(shared.pipeline.stats(), file=sys.stderr)
    finally:
        await shared.shutdown()


def main(argv: list[str] | None = None) -> None:
    check_python_version()
    args: argparse.Namespace = parse_arguments(argv)
    setup_logging(debug=args.debug)
    logger.info("chat_translate %s starting", VERSION)
    asyncio.run(run(args))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
    except (OSError, RuntimeError, ValueError) as err:
        print(f"\nFatal error: {err}", file=sys.stderr)
        sys.exit(1)
