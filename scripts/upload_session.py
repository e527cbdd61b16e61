from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Tuple

import requests


def _collect(root: Path) -> List[Tuple[str, Tuple[str, bytes, str]]]:
    out = []
    for p in sorted(root.rglob("*")):
        if p.is_file():
            out.append(("files", (p.relative_to(root).as_posix(), p.read_bytes(), "application/octet-stream")))
    return out


def main() -> int:
    ap = argparse.ArgumentParser(description="Upload a directory into a verification session and verify it")
    ap.add_argument("--url", default="http://127.0.0.1:8000")
    ap.add_argument("--dir", required=True, help="Directory with metadata and sources")
    ap.add_argument("--address", default="")
    ap.add_argument("--chain", default="")
    ap.add_argument("--api-key", default="")
    args = ap.parse_args()

    files = _collect(Path(args.dir))
    if not files:
        print("FAIL_UPLOAD_SESSION_NO_FILES", args.dir)
        return 2

    s = requests.Session()
    if args.api_key:
        s.headers["Authorization"] = f"Bearer {args.api_key}"

    r = s.post(f"{args.url}/session/input-files", files=files, timeout=120)
    if r.status_code != 200:
        print("FAIL_UPLOAD_SESSION_HTTP", r.status_code, r.text.strip())
        return 3
    contracts = r.json().get("contracts") or []
    print("PASS_UPLOAD_SESSION", f"files={len(files)}", f"contracts={len(contracts)}")

    if not (args.address and args.chain):
        return 0

    body = {
        "contracts": [
            {"verificationId": c["verificationId"], "address": args.address, "chainId": args.chain}
            for c in contracts
        ]
    }
    r = s.post(f"{args.url}/session/verify-validated", json=body, timeout=300)
    if r.status_code != 200:
        print("FAIL_UPLOAD_SESSION_VERIFY_HTTP", r.status_code, r.text.strip())
        return 4

    worst = 0
    for c in r.json().get("contracts") or []:
        print(c.get("name"), c.get("status"), c.get("statusMessage") or "")
        if c.get("status") not in ("perfect", "partial"):
            worst = 5
    print("PASS_UPLOAD_SESSION_VERIFY" if worst == 0 else "FAIL_UPLOAD_SESSION_VERIFY")
    return worst


if __name__ == "__main__":
    sys.exit(main())
