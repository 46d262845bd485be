from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Iterable, TextIO

from .config import ConfigError, load_config
from .dispatch import DispatchStation
from .exceptions import ApiError
from .feedback import NotificationCenter
from .models import Status, TransitionRequest
from .session import ApiSession
from .transition_validation import ClientValidationError

logger = logging.getLogger(__name__)

STATION_HELP = """Scan or paste a passport code per line. Commands:
  :dispatch            submit every pending item
  :remove <id>         drop one pending item
  :list                show pending items
  :clear               drop every pending item
  :carrier <name>      set the carrier
  :tracking <number>   set the tracking number
  :quit                leave (pending items are kept)"""


def _parse_meta(values: Iterable[str] | None) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for value in values or []:
        key, sep, item = value.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Metadata must look like key=value, got {value!r}")
        metadata[key.strip()] = item.strip()
    return metadata


def _drain(notifications: NotificationCenter, out: TextIO) -> None:
    for message in notifications.messages:
        line = f"[{message['level']}] {message['title']}"
        if message.get("message"):
            line = f"{line}: {message['message']}"
        print(line, file=out)
    notifications.clear()


def _print_items(station: DispatchStation, out: TextIO) -> None:
    items = station.items
    if not items:
        print("No pending items", file=out)
        return
    for item in items:
        flag = f"  FAILED: {item.error}" if item.failed else ""
        print(f"{item.id}  {item.captured_at.isoformat()}{flag}", file=out)
    print(f"{len(items)} pending", file=out)


def run_station(
    station: DispatchStation,
    lines: Iterable[str],
    out: TextIO,
    *,
    target_status: Status = Status.SHIPPED,
) -> int:
    """Drive a station from text lines; returns the number of pending items left."""
    notifications = station.feedback.notifications
    station.restore()
    _drain(notifications, out)
    for line in lines:
        text = line.strip()
        if not text:
            continue
        command, _, argument = text.partition(" ")
        argument = argument.strip()
        if command == ":quit":
            break
        if command == ":dispatch":
            station.submit(target_status)
        elif command == ":remove":
            if not station.remove(argument):
                print(f"Not pending: {argument}", file=out)
        elif command == ":list":
            _print_items(station, out)
        elif command == ":clear":
            station.clear()
        elif command == ":carrier":
            station.carrier = argument
        elif command == ":tracking":
            station.tracking_number = argument
        elif command in {":help", ":?"}:
            print(STATION_HELP, file=out)
        else:
            station.scan(text)
        _drain(notifications, out)
    return len(station.queue)


def cmd_station(args: argparse.Namespace) -> None:
    config = load_config(args.env_file)
    session = ApiSession(config)
    station = session.dispatch_station()
    station.carrier = args.carrier or ""
    station.tracking_number = args.tracking_number or ""
    print(f"Environment: {config.env_name}")
    print(f"Base URL: {config.api_base_url}")
    print(STATION_HELP)
    pending = run_station(station, sys.stdin, sys.stdout, target_status=Status(args.status))
    logger.info("station_closed", extra={"pending": pending})


def cmd_action_info(args: argparse.Namespace) -> None:
    config = load_config(args.env_file)
    client = ApiSession(config).action_client(args.token)
    info = client.action_info(args.passport_id)
    print(json.dumps(info.model_dump(mode="json"), indent=2))


def cmd_transition(args: argparse.Namespace) -> None:
    config = load_config(args.env_file)
    client = ApiSession(config).action_client(args.token)
    info = client.action_info(args.passport_id)
    request = TransitionRequest(
        to_status=Status(args.to_status),
        metadata=_parse_meta(args.meta),
        partner_code=args.partner_code,
    )
    response = client.transition(args.passport_id, request, info=info)
    print(json.dumps(response.model_dump(mode="json"), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="exportready-dispatch", description="Battery passport dispatch station")
    parser.add_argument("--env-file", default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    station = subparsers.add_parser("station", help="Interactive scan-and-dispatch loop")
    station.add_argument("--carrier", default=None)
    station.add_argument("--tracking-number", default=None)
    station.add_argument("--status", default=Status.SHIPPED.value, choices=[status.value for status in Status])
    station.set_defaults(func=cmd_station)

    action_info = subparsers.add_parser("action-info", help="Show a passport's allowed transitions")
    action_info.add_argument("passport_id")
    action_info.add_argument("--token", required=True)
    action_info.set_defaults(func=cmd_action_info)

    transition = subparsers.add_parser("transition", help="Apply one magic-link transition")
    transition.add_argument("passport_id")
    transition.add_argument("--token", required=True)
    transition.add_argument("--to-status", required=True, choices=[status.value for status in Status])
    transition.add_argument("--partner-code", default=None)
    transition.add_argument("--meta", action="append", default=[], metavar="KEY=VALUE")
    transition.set_defaults(func=cmd_transition)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    try:
        args.func(args)
    except ClientValidationError as exc:
        print(json.dumps({"error": "validation", "issues": [issue.__dict__ for issue in exc.issues]}, indent=2))
        raise SystemExit(1) from exc
    except (ConfigError, ValueError) as exc:
        print(json.dumps({"error": "input", "message": str(exc)}, indent=2))
        raise SystemExit(1) from exc
    except ApiError as exc:
        print(json.dumps({"error": exc.code, "message": exc.message, "trace_id": exc.trace_id}, indent=2))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
