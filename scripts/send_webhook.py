"""Sign a JSON webhook body the way a provider would and post it to the service.

Useful for exercising the webhook path locally without a provider sandbox.
"""

import argparse
import asyncio
import json
from pathlib import Path

import httpx

from paygate.common.config import settings
from paygate.services.providers.registry import build_registry


async def deliver(base_url: str, provider: str, body: bytes, bad_signature: bool) -> httpx.Response:
    """Sign `body` with the configured provider secret and post it once."""

    async with httpx.AsyncClient(timeout=10.0) as client:
        adapter = build_registry(settings, client).get(provider)
        signature = "0" * 64 if bad_signature else adapter.compute_signature(body)
        return await client.post(
            f"{base_url}/api/webhooks/{provider}",
            content=body,
            headers={adapter.signature_header: signature, "Content-Type": "application/json"},
        )


def main() -> None:
    """Parse CLI args and deliver one signed payload."""

    parser = argparse.ArgumentParser(description="Send a signed provider webhook to the payment service.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--provider", required=True, choices=["paystack", "flutterwave"])
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline JSON payload")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON file")
    parser.add_argument("--bad-signature", action="store_true", help="Send a deliberately wrong signature")
    args = parser.parse_args()

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")

    raw = args.json_inline if args.json_inline else Path(args.json_file).read_text()
    body = json.dumps(json.loads(raw)).encode("utf-8")

    resp = asyncio.run(deliver(args.base_url, args.provider, body, args.bad_signature))
    print(f"status={resp.status_code}")
    print(resp.text)


if __name__ == "__main__":
    main()
