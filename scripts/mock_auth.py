#!/usr/bin/env python3
"""Local stand-in for the auth provider's /auth/v1/user lookup.

Answers for the parties written by scripts/seed_conversation.py, so a local API
started with JM_AUTH_URL pointing here can be exercised with fixed bearer tokens.
Pass --port 0 to bind an ephemeral port; the first stdout line carries the URL.
"""

from __future__ import annotations

import argparse
import json
import sys
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

DEFAULT_ACCOUNTS: dict[str, dict[str, Any]] = {
    "applicant-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "app_metadata": {"account_type": "applicant"},
    },
    "organization-token": {
        "id": "22222222-2222-2222-2222-222222222222",
        "app_metadata": {"account_type": "organization"},
    },
    "outsider-token": {
        "id": "44444444-4444-4444-4444-444444444444",
        "app_metadata": {"account_type": "applicant"},
    },
}


def load_accounts(path: str | None) -> dict[str, dict[str, Any]]:
    if path is None:
        return dict(DEFAULT_ACCOUNTS)
    accounts = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(accounts, dict):
        raise SystemExit(f"{path}: expected an object mapping tokens to accounts")
    return accounts


def build_handler(accounts: dict[str, dict[str, Any]], anon_key: str | None) -> type[BaseHTTPRequestHandler]:
    class AuthUserHandler(BaseHTTPRequestHandler):
        server_version = "JobchatMockAuth/1.0"

        def do_GET(self) -> None:  # noqa: N802
            route = urlsplit(self.path).path
            if route == "/healthz":
                self._reply(HTTPStatus.OK, {"status": "ok", "accounts": len(accounts)})
            elif route != "/auth/v1/user":
                self._reply(HTTPStatus.NOT_FOUND, {"msg": "route not served"})
            elif anon_key is not None and self.headers.get("apikey") != anon_key:
                self._reply(HTTPStatus.UNAUTHORIZED, {"msg": "invalid apikey"})
            else:
                scheme, _, token = self.headers.get("Authorization", "").partition(" ")
                account = accounts.get(token.strip()) if scheme.lower() == "bearer" else None
                if account is None:
                    self._reply(HTTPStatus.FORBIDDEN, {"msg": "invalid JWT"})
                else:
                    self._reply(HTTPStatus.OK, account)

        def log_message(self, fmt: str, *args: object) -> None:
            sys.stderr.write(f"mock-auth: {fmt % args}\n")

        def _reply(self, status: HTTPStatus, payload: dict[str, Any]) -> None:
            body = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

    return AuthUserHandler


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve fixed messaging identities on /auth/v1/user.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument("--accounts", help="JSON file mapping bearer tokens to account payloads")
    parser.add_argument("--anon-key", help="require this value in the apikey header")
    args = parser.parse_args()

    handler = build_handler(load_accounts(args.accounts), args.anon_key)
    with ThreadingHTTPServer((args.host, args.port), handler) as server:
        host, port = server.server_address[:2]
        print(f"mock-auth listening on http://{host}:{port}", flush=True)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass


if __name__ == "__main__":
    main()
