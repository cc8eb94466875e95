"""
Planner MCP - Delegated Sign-in
================================
Signs a user in once so the MCP server can act on their Planner tasks,
contacts and calendar. Without a signed-in user the server falls back to the
application's own (client credentials) token, which cannot use /me.

Usage:
    python planner_mcp_auth.py

Reads the same AZURE_* variables (or .env file) as the server.
"""

import sys
import webbrowser
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qs

from dotenv import load_dotenv

from planner_mcp.auth import AuthManager, GRAPH_SCOPES, REDIRECT_URI
from planner_mcp.config import Settings

RESULT_PAGE = """
<html><body style="font-family: system-ui; text-align: center; margin-top: 100px;">
<h1>{title}</h1>
<p>{message}</p>
</body></html>
"""


class CallbackHandler(BaseHTTPRequestHandler):
    """Captures the query string of the OAuth redirect."""

    query = None

    def do_GET(self):
        params = parse_qs(urlparse(self.path).query)
        if "code" in params:
            CallbackHandler.query = {k: v[0] for k, v in params.items()}
            self._reply(200, "&#10003; Signed in", "You can close this window and return to the terminal.")
        elif "error" in params:
            CallbackHandler.query = {k: v[0] for k, v in params.items()}
            self._reply(400, "&#10007; Sign-in failed", params.get("error_description", [""])[0])
        else:
            self.send_response(404)
            self.end_headers()

    def _reply(self, status, title, message):
        self.send_response(status)
        self.send_header("Content-type", "text/html")
        self.end_headers()
        self.wfile.write(RESULT_PAGE.format(title=title, message=message).encode())

    def log_message(self, format, *args):
        pass


def print_setup_help(missing):
    print(f"ERROR: {', '.join(missing)} not set.")
    print()
    print("Register an app at https://entra.microsoft.com (App registrations):")
    print(f"  - Redirect URI (Web): {REDIRECT_URI}")
    print("  - Certificates & secrets: create a client secret")
    print("  - API permissions, Microsoft Graph (Delegated):")
    for scope in GRAPH_SCOPES:
        print(f"     - {scope}")
    print()
    print("Then set AZURE_CLIENT_ID, AZURE_CLIENT_SECRET and AZURE_TENANT_ID.")


def main():
    load_dotenv()
    settings = Settings.from_env()
    if not settings.is_configured:
        print_setup_help(settings.missing_credentials)
        sys.exit(1)

    auth = AuthManager(settings)
    account = auth.cached_account()
    if account:
        print(f"✅ Already signed in as {account.get('username', 'unknown')}.")
        print(f"   Token cache: {settings.token_cache_path}")
        return

    auth_url = auth.get_auth_url()
    print("Opening browser for Microsoft sign-in...")
    print(f"If the browser doesn't open, visit:\n{auth_url}\n")
    webbrowser.open(auth_url)

    callback = urlparse(REDIRECT_URI)
    server = HTTPServer((callback.hostname, callback.port), CallbackHandler)
    print(f"Waiting for the sign-in callback on {REDIRECT_URI} ...")
    while CallbackHandler.query is None:
        server.handle_request()
    server.server_close()

    result = auth.complete_auth(CallbackHandler.query)
    if "access_token" not in result:
        print("❌ Sign-in failed!")
        print(f"   Error: {result.get('error', 'unknown')}")
        print(f"   Description: {result.get('error_description', 'N/A')}")
        sys.exit(1)

    print("✅ Signed in.")
    print(f"   Token cache saved to: {settings.token_cache_path}")
    print("You can now start the server: python planner_mcp_server.py")


if __name__ == "__main__":
    main()
