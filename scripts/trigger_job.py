"""Trigger one scheduled batch job (retry run or subscription sweep) over HTTP.

Meant to be called from cron; exits non-zero when the job endpoint fails.
"""

import argparse
import json

import httpx


JOBS = {
    "retries": ("--retry-url", "http://localhost:8002"),
    "sweep": ("--validator-url", "http://localhost:8003"),
}


def main() -> None:
    """CLI entrypoint for cron-driven job triggers."""

    parser = argparse.ArgumentParser(description="Run one push maintenance batch.")
    parser.add_argument("job", choices=sorted(JOBS))
    parser.add_argument("--retry-url", default=JOBS["retries"][1])
    parser.add_argument("--validator-url", default=JOBS["sweep"][1])
    parser.add_argument("--timeout-seconds", type=float, default=120.0)
    args = parser.parse_args()

    base_url = args.retry_url if args.job == "retries" else args.validator_url
    resp = httpx.post(f"{base_url.rstrip('/')}/run", timeout=args.timeout_seconds)
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
