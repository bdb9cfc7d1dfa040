"""Re-verify every non-terminal payment through the public verify endpoint.

Operator-side sweep for payments whose webhook never arrived.
"""

import argparse
import json

import httpx


def fetch_all(client: httpx.Client, base_url: str, status: str, page_size: int) -> list[dict]:
    """Page through `/api/payments?status=...` and return every record."""

    records: list[dict] = []
    skip = 0
    while True:
        resp = client.get(f"{base_url}/api/payments", params={"status": status, "limit": page_size, "skip": skip})
        resp.raise_for_status()
        body = resp.json()
        records.extend(body["data"])
        if not body["meta"]["has_more"]:
            return records
        skip += page_size


def main() -> None:
    """CLI entrypoint for reconciliation runs."""

    parser = argparse.ArgumentParser(description="Verify initialized payments against their providers.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--status", default="initialized", choices=["pending", "initialized", "failed"])
    parser.add_argument("--page-size", type=int, default=100)
    args = parser.parse_args()

    summary: dict[str, int] = {}
    with httpx.Client(timeout=30.0) as client:
        # Collect first: verification moves records out of the filtered status.
        for record in fetch_all(client, args.base_url, args.status, args.page_size):
            resp = client.get(f"{args.base_url}/api/payments/verify/{record['reference']}")
            outcome = resp.json().get("status") if resp.status_code == 200 else f"http_{resp.status_code}"
            summary[outcome] = summary.get(outcome, 0) + 1
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
