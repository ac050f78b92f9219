"""Shared OAuth authentication for Google APIs."""

from __future__ import annotations

import json
import sys

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from .logging import GogError, get_logger
from .paths import CLIENT_SECRET_FILE, CONFIG_DIR, TOKEN_FILE

logger = get_logger(__name__)

SCOPES_FULL = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/contacts",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/userinfo.profile",
]

SCOPES_READONLY = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/tasks.readonly",
    "https://www.googleapis.com/auth/userinfo.profile",
]


def _run_oauth_flow(readonly: bool = False) -> Credentials:
    """Run OAuth flow to get new credentials."""
    if not CLIENT_SECRET_FILE.exists():
        raise GogError(
            f"Missing {CLIENT_SECRET_FILE}\n\n"
            "To create OAuth credentials:\n"
            "1. Go to: https://console.cloud.google.com/apis/credentials\n"
            "2. Click 'Create Credentials' -> 'OAuth client ID'\n"
            "3. Select 'Desktop app' as application type\n"
            "4. Download the JSON file\n"
            f"5. Save it as: {CLIENT_SECRET_FILE}"
        )
    scopes = SCOPES_READONLY if readonly else SCOPES_FULL
    flow = InstalledAppFlow.from_client_secrets_file(str(CLIENT_SECRET_FILE), scopes)
    creds = flow.run_local_server(port=0)
    _save_token(creds)
    return creds


def get_credentials() -> Credentials:
    """Load credentials, refreshing if needed. Runs OAuth flow if no token exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    if not TOKEN_FILE.exists():
        return _run_oauth_flow()

    try:
        token_data = json.loads(TOKEN_FILE.read_text())
        creds = Credentials(
            token=token_data["token"],
            refresh_token=token_data["refresh_token"],
            token_uri=token_data["token_uri"],
            client_id=token_data["client_id"],
            client_secret=token_data["client_secret"],
            scopes=token_data["scopes"],
        )
    except (json.JSONDecodeError, KeyError) as e:
        logger.warning("Token file corrupted, re-authenticating", error=str(e))
        TOKEN_FILE.unlink(missing_ok=True)
        return _run_oauth_flow()

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            _save_token(creds)
        except Exception as e:
            logger.warning("Token refresh failed, re-authenticating", error=str(e))
            TOKEN_FILE.unlink(missing_ok=True)
            return _run_oauth_flow()

    return creds


def _save_token(creds: Credentials) -> None:
    """Save credentials to token file with secure permissions."""
    TOKEN_FILE.write_text(
        json.dumps(
            {
                "token": creds.token,
                "refresh_token": creds.refresh_token,
                "token_uri": creds.token_uri,
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "scopes": list(creds.scopes),
            }
        )
    )
    TOKEN_FILE.chmod(0o600)


def build_service(name: str, version: str):
    """Build a Google API client for the given service."""
    return build(name, version, credentials=get_credentials(), cache_discovery=False)


def run_auth(readonly: bool = False) -> None:
    """Run OAuth authentication flow.

    Args:
        readonly: If True, request only read-only scopes.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    # Check if re-authenticating with different scope level
    if TOKEN_FILE.exists():
        try:
            token_data = json.loads(TOKEN_FILE.read_text())
            existing_scopes = set(token_data.get("scopes", []))
            requested_scopes = set(SCOPES_READONLY if readonly else SCOPES_FULL)

            if existing_scopes != requested_scopes:
                print("Scope change detected. Re-authenticating...", file=sys.stderr)
                TOKEN_FILE.unlink()
        except (json.JSONDecodeError, KeyError):
            pass

    if TOKEN_FILE.exists():
        print(
            "Already authenticated. Delete ~/.config/gogcli/token.json to re-authenticate."
        )
        return

    _run_oauth_flow(readonly=readonly)
    scope_type = "read-only" if readonly else "full access"
    print(f"OAuth setup complete! ({scope_type})")
