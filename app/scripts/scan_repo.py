"""
Submit a repository scan to a running API and wait for the result. Run from project root:
  python -m app.scripts.scan_repo REPO_URL [--api http://localhost:8000] [--github-token TOKEN]
Example:
  python -m app.scripts.scan_repo https://github.com/acme/widgets
"""
import argparse
import asyncio
import json
import logging
import sys

from app.client import ScanClient, ScanClientError


async def _run(args: argparse.Namespace) -> int:
    async with ScanClient(
        args.api,
        access_token=args.access_token,
        initial_delay=args.initial_delay,
        max_delay=args.max_delay,
    ) as client:
        try:
            status = await client.scan(args.repo_url, args.github_token, timeout=args.timeout)
        except ScanClientError as e:
            print(f"Scan failed: {e.message}", file=sys.stderr)
            if e.details:
                print(json.dumps(e.details, indent=2), file=sys.stderr)
            return 1
    print(json.dumps(status, indent=2))
    return 0 if status.get("status") == "completed" else 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Scan a GitHub repository for secrets and insecure patterns.")
    parser.add_argument("repo_url", help="Repository URL, e.g. https://github.com/acme/widgets")
    parser.add_argument("--api", default="http://localhost:8000", help="Base URL of the Repolens API")
    parser.add_argument("--github-token", default=None, help="GitHub token for private repositories")
    parser.add_argument("--access-token", default=None, help="Viewer JWT (full results when entitled)")
    parser.add_argument("--timeout", type=float, default=900.0, help="Seconds to wait for completion")
    parser.add_argument("--initial-delay", type=float, default=1.0, help="First poll delay in seconds")
    parser.add_argument("--max-delay", type=float, default=15.0, help="Poll delay cap in seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
