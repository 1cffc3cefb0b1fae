import argparse
import getpass
import json
import logging
import queue
import sys
import threading
from pathlib import Path
from typing import List

from tqdm import tqdm

from schedule_scrapers.config import ensure_directories_exist, settings
from schedule_scrapers.models import TargetKind
from schedule_scrapers.pipeline import SchedulePipeline
from schedule_scrapers.sentry_setup import init_sentry
from schedule_scrapers.session.broker import RESPONSE_MESSAGE_TYPE, CredentialBroker
from schedule_scrapers.session.manager import check_authentication
from schedule_scrapers.session.store import SessionStore
from schedule_scrapers.utils import save_to_json_file, setup_logger


def _console_responder(broker: CredentialBroker, stop: threading.Event, logger: logging.Logger) -> None:
    """Answer credential requests from the terminal when running interactively."""
    while not stop.is_set():
        try:
            message = broker.outbound.get(timeout=0.5)
        except queue.Empty:
            continue
        print(f"\n{message['message']}", file=sys.stderr)
        email = input("Email: ").strip()
        password = getpass.getpass("Password: ")
        broker.submit({
            "type": RESPONSE_MESSAGE_TYPE,
            "requestId": message["requestId"],
            "email": email,
            "password": password,
        })
        del password
        logger.info(f"Credentials submitted for request {message['requestId']}.")


def _read_batch_file(path: Path) -> List[tuple]:
    """Lines of `<kind> <url>`; blank lines and # comments are skipped."""
    targets = []
    for line_number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            raise ValueError(f"{path}:{line_number}: expected '<kind> <url>', got {line!r}")
        targets.append((TargetKind(parts[0]), parts[1].strip()))
    return targets


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Extract karaoke schedules from social media pages, groups and photos.")
    parser.add_argument("action", choices=["extract", "batch", "session-status"],
                        help="'extract' one URL, 'batch' a file of '<kind> <url>' lines, or check the stored 'session-status'.")
    parser.add_argument("target", nargs="?", help="URL for 'extract', file path for 'batch'.")
    parser.add_argument("--kind", choices=[k.value for k in TargetKind], default=TargetKind.PROFILE.value,
                        help="Target kind for 'extract'.")
    parser.add_argument("--interactive", action="store_true", help="Prompt for credentials on the terminal when login is needed.")
    parser.add_argument("--probe", action="store_true", help="With 'session-status', also test the session against the live site.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    ensure_directories_exist()
    logger = setup_logger("schedule_scrapers", "schedule_scrapers_run", level=level)
    init_sentry()

    if args.action == "session-status":
        store = SessionStore()
        session = store.load()
        validation = store.validate(session)
        report = validation.model_dump(mode="json")
        report["diagnostics"] = validation.diagnostics()
        if args.probe and session is not None:
            report["live_check"] = check_authentication(session)
        print(json.dumps(report, indent=2))
        return 0 if validation.is_valid else 1

    if not args.target:
        parser.error(f"'{args.action}' needs a target")

    broker = CredentialBroker()
    stop = threading.Event()
    if args.interactive:
        threading.Thread(target=_console_responder, args=(broker, stop, logger), daemon=True).start()

    pipeline = SchedulePipeline.from_settings(broker=broker)
    try:
        if args.action == "extract":
            result = pipeline.extract(args.target, args.kind)
            print(json.dumps(result.to_report(), indent=2))
            save_to_json_file(result.to_report(), "extraction", logger_obj=logger)
            return 0 if result.success else 2

        targets = _read_batch_file(Path(args.target))
        reports = []
        failures = 0
        for kind, url in tqdm(targets, desc="Extracting", unit="target"):
            result = pipeline.extract(url, kind)
            failures += 0 if result.success else 1
            reports.append(result.to_report())
        logger.info(f"Batch finished: {len(targets) - failures}/{len(targets)} succeeded.")
        save_to_json_file(reports, "batch_extraction", logger_obj=logger)
        print(json.dumps(reports, indent=2))
        return 0 if failures == 0 else 2
    finally:
        stop.set()


if __name__ == "__main__":
    sys.exit(main())
