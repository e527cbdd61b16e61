from __future__ import annotations

import argparse
import json

import requests


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--url", default="http://127.0.0.1:8000")
    ap.add_argument("--addresses", required=True, help="Comma separated addresses")
    ap.add_argument("--chain-ids", required=True, help="Comma separated chain ids")
    ap.add_argument("--all", action="store_true", help="Include partial matches")
    args = ap.parse_args()

    path = "/check-all-by-addresses" if args.all else "/check-by-addresses"
    r = requests.get(
        f"{args.url}{path}",
        params={"addresses": args.addresses, "chainIds": args.chain_ids},
        timeout=30,
    )

    if r.status_code != 200:
        print("FAIL_CHECK_ADDRESSES_HTTP", r.status_code, r.text.strip())
        return 2

    out = r.json()
    print(json.dumps(out, indent=2, sort_keys=True))
    print("PASS_CHECK_ADDRESSES", f"n={len(out)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
