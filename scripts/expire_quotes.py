"""
Expiry sweep trigger for cron.

Calls POST /api/quotes/check-expiration on a running API, sending the
PORTAL_CRON_SECRET as X-Cron-Secret when it is set.

Usage:
    python scripts/expire_quotes.py [base_url]
"""
import os
import sys

import httpx


def main():
    base_url = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("PORTAL_API_URL", "http://localhost:8000")
    headers = {}
    secret = os.environ.get("PORTAL_CRON_SECRET")
    if secret:
        headers["X-Cron-Secret"] = secret

    print(f"Running quote expiry sweep against {base_url}...")
    try:
        resp = httpx.post(f"{base_url.rstrip('/')}/api/quotes/check-expiration", headers=headers, timeout=30)
    except httpx.HTTPError as e:
        print(f"Request failed: {e}")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"Sweep failed ({resp.status_code}): {resp.text}")
        sys.exit(1)

    data = resp.json()
    print(data['message'])
    for quote in data['expiring']:
        print(f"  {quote['number']} valid until {quote['valid_until']}")


if __name__ == "__main__":
    main()
