import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from .client import check_health, send_cloudevent, send_eventgrid_event, validate_endpoint


def get_server_url() -> str:
    """
    Get the gateway URL from environment variable or use default.

    Environment variables:
    - CI_SERVER_URL: Custom gateway URL (useful for testing with different ports)
    """
    return os.environ.get("CI_SERVER_URL", "http://localhost:8080")


def load_data(args: argparse.Namespace) -> Any:
    """Event data from --data (inline JSON) or --data-file, defaulting to {}."""
    if args.data_file:
        return json.loads(Path(args.data_file).read_text())
    if args.data:
        return json.loads(args.data)
    return {}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CI events gateway CLI")
    subparsers = parser.add_subparsers(dest="command")

    # ci-events send eventgrid|cloudevent <project> <event_type> [...]
    send_parser = subparsers.add_parser("send", help="Send an event to the gateway")
    send_parser.add_argument(
        "format", choices=["eventgrid", "cloudevent"], help="Event envelope format"
    )
    send_parser.add_argument("project_id", help="Project the event is for")
    send_parser.add_argument("event_type", help="Event type, e.g. check_suite:requested")
    send_parser.add_argument("--token", help="Project delivery token")
    send_parser.add_argument("--subject", default="", help="Event Grid subject")
    send_parser.add_argument("--data", help="Event data as inline JSON")
    send_parser.add_argument("--data-file", help="File containing event data as JSON")

    # ci-events validate <project> <code>
    validate_parser = subparsers.add_parser(
        "validate", help="Run an Event Grid subscription validation handshake"
    )
    validate_parser.add_argument("project_id", help="Project ID")
    validate_parser.add_argument("validation_code", help="Code to have echoed back")
    validate_parser.add_argument("--token", help="Project delivery token")

    # ci-events health
    subparsers.add_parser("health", help="Check that the gateway is up")

    return parser


def main(argv: list[str] | None = None):
    """Main entry point for the ci-events CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    server_url = get_server_url()

    if args.command == "send":
        try:
            data = load_data(args)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: cannot read event data: {e}", file=sys.stderr)
            sys.exit(1)

        try:
            if args.format == "eventgrid":
                result = send_eventgrid_event(
                    args.project_id,
                    args.event_type,
                    data,
                    subject=args.subject,
                    token=args.token,
                    server_url=server_url,
                )
            else:
                if not args.token:
                    print("Error: --token is required for cloudevent", file=sys.stderr)
                    sys.exit(1)
                result = send_cloudevent(
                    args.project_id,
                    args.token,
                    args.event_type,
                    data,
                    server_url=server_url,
                )
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print(json.dumps(result, indent=2))
        sys.exit(0)

    elif args.command == "validate":
        try:
            code = validate_endpoint(
                args.project_id,
                args.validation_code,
                token=args.token,
                server_url=server_url,
            )
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"✓ Endpoint validated (code {code})")
        sys.exit(0)

    elif args.command == "health":
        if check_health(server_url):
            print(f"✓ Gateway at {server_url} is healthy")
            sys.exit(0)
        print(f"✗ Gateway at {server_url} is not responding", file=sys.stderr)
        sys.exit(1)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
