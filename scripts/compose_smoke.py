#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import sys

from urllib.error import URLError
from urllib.request import Request, urlopen


def _get(url: str) -> dict:
    with urlopen(url, timeout=5) as response:
        return json.loads(response.read().decode("utf-8"))


def main() -> int:
    base_url = os.getenv("OMEGACODEX_API_URL", "http://localhost:8000").rstrip("/")
    query = os.getenv("OMEGACODEX_SMOKE_QUERY")
    try:
        print("/livez:", _get(f"{base_url}/livez"))
        print("/healthz:", _get(f"{base_url}/healthz"))
        if query:
            request = Request(
                f"{base_url}/query",
                data=json.dumps({"query": query}).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            with urlopen(request, timeout=120) as response:
                print("/query:", json.loads(response.read().decode("utf-8"))["reply"])
    except (URLError, ValueError, KeyError) as exc:
        print(f"Smoke check failed: {exc}", file=sys.stderr)
        return 1
    print("Smoke check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
