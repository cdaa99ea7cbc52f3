# marketplace/cli/gmail_token.py
"""One-time helper that obtains a Gmail refresh token for GMAIL_REFRESH_TOKEN.

    marketplace-gmail-token [--port 8765]

Opens nothing by itself: it prints a consent URL, waits for Google to
redirect back to a local listener, swaps the code for tokens and prints the
refresh token.
"""
import argparse
import logging
import sys
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from marketplace.core.config import settings
from marketplace.services.mailer import GOOGLE_TOKEN_URL

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GMAIL_SEND_SCOPE = "https://www.googleapis.com/auth/gmail.send"


class TokenExchangeError(Exception):
    pass


def redirect_uri(port: int) -> str:
    return f"http://localhost:{port}/"


def consent_url(client_id: str, port: int) -> str:
    query = urlencode({
        "client_id": client_id,
        "redirect_uri": redirect_uri(port),
        "response_type": "code",
        "scope": GMAIL_SEND_SCOPE,
        # offline + consent, otherwise Google omits the refresh token on re-authorization
        "access_type": "offline",
        "prompt": "consent",
    })
    return f"{GOOGLE_AUTH_URL}?{query}"


def exchange_code(code: str, client_id: str, client_secret: str, port: int,
                  timeout: float = 10.0, session: Optional[requests.Session] = None) -> dict:
    http = session or requests.Session()
    try:
        r = http.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri(port),
                "grant_type": "authorization_code",
            },
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise TokenExchangeError(f"token endpoint unreachable: {e}")
    try:
        data = r.json()
    except ValueError:
        data = {}
    if r.status_code != 200:
        raise TokenExchangeError(f"http_{r.status_code}: {data.get('error_description') or data.get('error') or r.text[:200]}")
    if not data.get("refresh_token"):
        raise TokenExchangeError("no refresh_token in response; revoke the app's access and try again")
    return data


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        params = parse_qs(urlparse(self.path).query)
        self.server.auth_code = (params.get("code") or [None])[0]
        self.server.auth_error = (params.get("error") or [None])[0]
        ok = self.server.auth_code is not None
        self.send_response(200 if ok else 400)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.end_headers()
        msg = "Authorized. You can close this tab." if ok else f"Authorization failed: {self.server.auth_error}"
        self.wfile.write(msg.encode("utf-8"))

    def log_message(self, format, *args):
        logger.debug("callback " + format, *args)


def wait_for_code(port: int, timeout: float = 300.0) -> str:
    server = HTTPServer(("localhost", port), _CallbackHandler)
    server.timeout = timeout
    server.auth_code = None
    server.auth_error = None
    try:
        server.handle_request()
    finally:
        server.server_close()
    if not server.auth_code:
        raise TokenExchangeError(f"no authorization code received ({server.auth_error or 'timed out'})")
    return server.auth_code


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Obtain a Gmail refresh token for the marketplace mailer.")
    parser.add_argument("--port", type=int, default=8765, help="Local port for the OAuth redirect.")
    parser.add_argument("--code", default="", help="Skip the listener and exchange this authorization code.")
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for the redirect.")
    args = parser.parse_args(argv)

    client_id = (settings.GMAIL_CLIENT_ID or "").strip()
    client_secret = (settings.GMAIL_CLIENT_SECRET or "").strip()
    if not client_id or not client_secret:
        print("GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET must be set (env or .env).", file=sys.stderr)
        return 1

    try:
        code = args.code
        if not code:
            print("\nAuthorize this app by visiting this URL:\n")
            print(consent_url(client_id, args.port))
            print(f"\nWaiting for the redirect on {redirect_uri(args.port)} ...\n")
            code = wait_for_code(args.port, timeout=args.timeout)
        tokens = exchange_code(code, client_id, client_secret, args.port, timeout=settings.EMAIL_TIMEOUT_SECONDS)
    except (TokenExchangeError, OSError) as e:
        print(f"Token exchange failed: {e}", file=sys.stderr)
        return 1

    print("\nRefresh token (set GMAIL_REFRESH_TOKEN to this value):\n")
    print(tokens["refresh_token"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
