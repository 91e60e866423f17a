"""
CLI utility to verify YouMap credentials before wiring them into an MCP client.

It performs the same steps the server does on its first tool call:

1. Exchange the client credentials for an access token (POST /api/v1/auth)
2. Show what the platform issued (expiry, and the JWT claims when the access
   token is a JWT; the signature is NOT verified, this is for display only)
3. Call GET /api/v1/map through the authenticated pipeline as a connectivity check

Usage examples:

    # Credentials from the environment (YOUMAP_CLIENT_ID / YOUMAP_CLIENT_SECRET)
    uv run python -m scripts.check_credentials

    # Explicit credentials against a staging platform
    uv run python -m scripts.check_credentials --client-id abc --client-secret s3cr3t \\
        --base-url https://staging.youmap.com

    # Static API key instead of client credentials
    uv run python -m scripts.check_credentials --api-key my-key
"""

import argparse
import asyncio
import datetime
import json

import jwt

from youmap_mcp.client import API_KEY, YouMapClient
from youmap_mcp.config import settings
from youmap_mcp.errors import YouMapError
from youmap_mcp.tokens import Credentials


def describe_token(access_token: str) -> dict | None:
    """
    Decode the claims of a JWT access token without verifying it.

    Returns None when the token is opaque (not a JWT).
    """
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.DecodeError:
        return None


async def check(client: YouMapClient, limit: int) -> int:
    async with client:
        try:
            if client.auth_mode != API_KEY:
                await client.gate.ensure_authenticated()
                pair = client.store.current
                expires = datetime.datetime.fromtimestamp(pair.expires_at, datetime.timezone.utc)
                print("Authentication: OK")
                print(f"Expires:        {expires.isoformat()} ({pair.expires_in}s)")
                claims = describe_token(pair.access_token)
                if claims is None:
                    print("Token:          opaque (not a JWT)")
                else:
                    print(f"Claims:         {json.dumps(claims, default=str)}")
            else:
                print("Authentication: API key (no token exchange)")

            maps = await client.get("/api/v1/map", {"limit": limit, "offset": 0})
        except YouMapError as e:
            print(f"FAILED: {type(e).__name__}: {e.message}")
            return 1

    print()
    print(f"API connectivity: OK ({maps.get('count', 0)} map(s) visible)")
    for item in maps.get("maps", [])[:limit]:
        print(f"  - [{item.get('id')}] {item.get('name')}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Check YouMap credentials and API connectivity.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Credentials from the environment:
    %(prog)s

  Explicit client credentials:
    %(prog)s --client-id abc --client-secret s3cr3t

  API key:
    %(prog)s --api-key my-key
        """,
    )
    parser.add_argument("--client-id", default=settings.client_id, help="YouMap client ID")
    parser.add_argument("--client-secret", default=settings.client_secret, help="YouMap client secret")
    parser.add_argument("--api-key", default=settings.api_key, help="Static YouMap API key")
    parser.add_argument("--base-url", default=settings.base_url, help="Platform base URL")
    parser.add_argument(
        "--limit", type=int, default=5, help="Number of maps to list (default: 5)"
    )

    args = parser.parse_args()

    client = YouMapClient(
        args.base_url,
        Credentials(client_id=args.client_id, client_secret=args.client_secret),
        api_key=args.api_key,
        auth_timeout=settings.auth_timeout,
        request_timeout=settings.request_timeout,
        expiry_margin=settings.expiry_margin,
    )
    print(f"Base URL:       {args.base_url}")
    raise SystemExit(asyncio.run(check(client, args.limit)))


if __name__ == "__main__":
    main()
