"""Main application entry point for Prescribe."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .config import PrescribeConfig
from .errors import CaptureError
from .models.session import RecordingSession
from .services.recording_service import RecordingService

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "pending": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
    "local_fallback": "magenta",
}


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = PrescribeConfig(config_path)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()
        self.service: Optional[RecordingService] = None
        self.should_exit = False

    def init(self, segment_length: Optional[float] = None):
        logger.info("Initializing services...")
        if segment_length:
            self.config.set('segments.length_seconds', segment_length)
        self.service = RecordingService(self.config)

    def run(self, duration: int) -> Optional[RecordingSession]:
        if not self.service.request_permission():
            self.console.print("❌ Microphone permission required", style="bold red")
            return None

        session = None
        try:
            self.service.start_recording()
            self.console.print(f"🔴 Recording for {duration}s ...", style="bold red")
            deadline = time.monotonic() + duration
            while not self.should_exit and time.monotonic() < deadline:
                time.sleep(0.5)
            session = self.service.stop_recording()
        except CaptureError as e:
            self.console.print(f"❌ {e}", style="bold red")
        finally:
            self.cleanup()

        if session:
            # Reload to pick up segments that finished after stop
            session = self.service.store.load_session(session.session_id) or session
            print_session(self.console, session)
        return session

    def cleanup(self):
        if self.service:
            self.service.shutdown()


def print_session(console: Console, session: RecordingSession) -> None:
    table = Table(title=f"{session.title} ({session.duration:.1f}s)")
    table.add_column("#", justify="right")
    table.add_column("Range")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Text")
    for i, segment in enumerate(session.segments, start=1):
        status = segment.processing_status.value
        table.add_row(
            str(i),
            f"{segment.start_time:.1f}-{segment.end_time:.1f}s",
            f"[{STATUS_STYLES.get(status, '')}]{status}[/]",
            str(segment.retry_count),
            segment.transcription_text or "",
        )
    console.print(table)


def print_session_list(console: Console, service: RecordingService) -> None:
    table = Table(title="Sessions")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Started")
    table.add_column("Duration", justify="right")
    table.add_column("Segments", justify="right")
    for session in service.list_sessions():
        table.add_row(
            session.session_id,
            session.title,
            session.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            f"{session.duration:.1f}s",
            str(len(session.segments)),
        )
    console.print(table)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/prescribe.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("=" * 50)
    logger.info("Prescribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for Prescribe."""
    parser = argparse.ArgumentParser(
        description="Prescribe - continuous recording with segment transcription"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Seconds to record before stopping (default: 60)"
    )

    parser.add_argument(
        "--segment-length",
        type=float,
        help="Segment length in seconds (overrides config)"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List stored sessions and exit"
    )

    parser.add_argument(
        "--delete",
        metavar="SESSION_ID",
        help="Delete a stored session and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Prescribe v0.1.0"
    )

    args = parser.parse_args()

    server = Server(args.config, args.log_level)
    try:
        server.init(args.segment_length)
        if args.list:
            print_session_list(server.console, server.service)
        elif args.delete:
            if server.service.delete_session(args.delete):
                server.console.print(f"Deleted {args.delete}")
            else:
                server.console.print(f"No session {args.delete}", style="yellow")
        else:
            server.run(args.duration)
    except KeyboardInterrupt:
        server.should_exit = True
        server.cleanup()
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
