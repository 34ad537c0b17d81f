"""Send one notification through the dispatch trigger.

Useful for checking a freshly registered device end to end.
"""

import argparse
import json
from pathlib import Path

import httpx


def main() -> None:
    """Parse CLI args and post one dispatch request."""

    parser = argparse.ArgumentParser(description="Dispatch a push notification to one user.")
    parser.add_argument("--dispatcher-url", default="http://localhost:8001")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--title", default="Test notification")
    parser.add_argument("--body", default="If you can read this, push works.")
    parser.add_argument("--type", dest="notification_type", default="general")
    parser.add_argument("--data", dest="data_inline", default=None, help="Inline JSON data payload")
    parser.add_argument("--data-file", default=None, help="Path to JSON data payload")
    args = parser.parse_args()

    if args.data_inline and args.data_file:
        raise SystemExit("Provide at most one of --data or --data-file")
    data = None
    if args.data_inline:
        data = json.loads(args.data_inline)
    elif args.data_file:
        data = json.loads(Path(args.data_file).read_text())

    resp = httpx.post(
        f"{args.dispatcher_url.rstrip('/')}/dispatch",
        json={
            "userId": args.user_id,
            "title": args.title,
            "body": args.body,
            "data": data,
            "notificationType": args.notification_type,
        },
        timeout=30.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
