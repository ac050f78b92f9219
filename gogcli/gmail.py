"""Gmail CLI - compose, draft, and send email.

Messages are composed locally (see gogcli.mime) and handed to the Gmail API
as base64url-encoded raw bytes. Input is a JSON object on stdin:

    {
      "to": "x@y.com" | ["x@y.com", "A <a@b.com>, c@d.com"],
      "subject": "Hi!",
      "body": "Plain text",            optional
      "html_body": "<p>HTML</p>",      optional
      "cc": ..., "bcc": ...,           optional, same shapes as "to"
      "reply_to": "r@y.com",           optional
      "from": "Me <me@y.com>",         optional
      "headers": {"X-Tag": "v"},       optional extra headers
      "in_reply_to": "<id@y.com>",     optional, threads a reply
      "thread_id": "18c0..."           optional Gmail thread ID
    }

Quota: messages.send costs 100 units. Rate limit errors (429) are retried
with exponential backoff (2s, 4s, 8s) before giving up.
"""

from __future__ import annotations

import json
import mimetypes
import time
from email.utils import formataddr
from pathlib import Path

import click

from .auth import build_service
from .config import get_default_from, get_message_id_domain
from .input import read_json_stdin
from .logging import GogError, get_logger
from .mime import (
    DEFAULT_ATTACHMENT_TYPE,
    Attachment,
    MessageSpec,
    build_rfc822,
    encode_raw_message,
    has_header,
)

logger = get_logger(__name__)


def get_gmail():
    return build_service("gmail", "v1")


def get_people():
    return build_service("people", "v1")


def get_my_from_address(service=None) -> str:
    """Get the user's From address with display name.

    Uses the Google People API to get the user's profile name, which is the same
    name Gmail uses when sending emails from the web interface.

    Returns formatted as "Name <email>" or just "email" if no name found.
    """
    if service is None:
        service = get_gmail()

    my_email = service.users().getProfile(userId="me").execute()["emailAddress"]

    try:
        profile = (
            get_people()
            .people()
            .get(resourceName="people/me", personFields="names")
            .execute()
        )
        names = profile.get("names", [])
        # Find the primary name (or first available)
        for name in names:
            if name.get("metadata", {}).get("primary", False):
                display_name = name.get("displayName")
                if display_name:
                    return formataddr((display_name, my_email))
        if names and names[0].get("displayName"):
            return formataddr((names[0]["displayName"], my_email))
    except Exception as e:
        logger.debug("Could not retrieve display name from People API", error=str(e))

    return my_email


def _retry_on_rate_limit(func, max_retries: int = 3):
    """Execute a function with exponential backoff retry on rate limits.

    Args:
        func: Callable that executes a Gmail API request (must call .execute())
        max_retries: Maximum retry attempts (default 3, giving 2s, 4s, 8s delays)

    Raises:
        GogError: If rate limit persists after all retries
        HttpError: For non-rate-limit errors
    """
    from googleapiclient.errors import HttpError

    for attempt in range(max_retries + 1):
        try:
            return func()
        except HttpError as e:
            if e.resp.status == 429:
                if attempt < max_retries:
                    delay = 2 ** (attempt + 1)  # 2s, 4s, 8s
                    logger.warning(
                        f"Rate limited, retrying in {delay}s",
                        attempt=attempt + 1,
                        max_retries=max_retries,
                    )
                    time.sleep(delay)
                    continue
                raise GogError(
                    f"Gmail API rate limit exceeded after {max_retries} retries."
                )
            raise


def _string_list(data: dict, field: str) -> list[str]:
    value = data.get(field)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise click.UsageError(f"Field '{field}' must be a string or a list of strings")


def _optional_string(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        raise click.UsageError(f"Field '{field}' must be a string")
    return value


def load_attachments(paths: tuple[str, ...] | list[str]) -> list[Attachment]:
    """Read attachment files, guessing MIME types from their names."""
    attachments = []
    for p in paths:
        path = Path(p)
        mime_type, _ = mimetypes.guess_type(path.name)
        attachments.append(
            Attachment(
                filename=path.name,
                mime_type=mime_type or DEFAULT_ATTACHMENT_TYPE,
                data=path.read_bytes(),
            )
        )
    return attachments


def message_spec_from_json(
    data: dict, attachments: list[Attachment], from_addr: str | None
) -> MessageSpec:
    """Build a MessageSpec from the stdin JSON description."""
    for field in ("to", "subject"):
        if field not in data:
            raise click.UsageError(f"Missing required field: {field}")

    headers = data.get("headers") or {}
    if not isinstance(headers, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
    ):
        raise click.UsageError("Field 'headers' must map header names to strings")
    headers = dict(headers)

    if in_reply_to := _optional_string(data, "in_reply_to"):
        if not has_header(headers, "In-Reply-To"):
            headers["In-Reply-To"] = in_reply_to
        if not has_header(headers, "References"):
            headers["References"] = in_reply_to

    subject = _optional_string(data, "subject")
    if subject is None:
        raise click.UsageError("Field 'subject' must be a string")

    return MessageSpec(
        from_addr=from_addr or "",
        to=_string_list(data, "to"),
        cc=_string_list(data, "cc"),
        bcc=_string_list(data, "bcc"),
        reply_to=_optional_string(data, "reply_to"),
        subject=subject,
        body=_optional_string(data, "body"),
        body_html=_optional_string(data, "html_body"),
        attachments=attachments,
        additional_headers=headers,
    )


def _compose(attach: tuple[str, ...], *, resolve_sender: bool):
    """Read stdin, compose the message, and build the API request body.

    Returns (raw_bytes, api_body, gmail_service_or_None).
    """
    data = read_json_stdin()
    thread_id = _optional_string(data, "thread_id")
    from_addr = _optional_string(data, "from") or get_default_from()
    service = None
    if not from_addr and resolve_sender:
        service = get_gmail()
        from_addr = get_my_from_address(service)

    spec = message_spec_from_json(data, load_attachments(attach), from_addr)
    raw = build_rfc822(spec, message_id_domain=get_message_id_domain())

    message: dict = {"raw": encode_raw_message(raw)}
    if thread_id:
        message["threadId"] = thread_id
    return raw, message, service


def draft_url(draft_result: dict) -> str:
    """Get Gmail URL for a draft."""
    return f"https://mail.google.com/mail/u/0/#drafts/{draft_result['message']['id']}"


attach_option = click.option(
    "--attach",
    "attachments",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="File to attach (repeatable)",
)


@click.group()
def cli():
    """Gmail CLI - compose, draft, and send emails."""


@cli.command()
@attach_option
@click.option(
    "--dry-run", is_flag=True, help="Print the composed message instead of sending"
)
def send(attachments: tuple[str, ...], dry_run: bool):
    """Send an email described by JSON on stdin.

    JSON fields: to, subject (required), body, html_body, cc, bcc, reply_to,
    from, headers, in_reply_to, thread_id

    Example:
        echo '{"to": "x@y.com", "subject": "Hi!", "body": "Hello!"}' | gog gmail send
    """
    raw, message, service = _compose(attachments, resolve_sender=not dry_run)
    if dry_run:
        click.echo(raw, nl=False)
        return

    if service is None:
        service = get_gmail()
    result = _retry_on_rate_limit(
        lambda: service.users().messages().send(userId="me", body=message).execute()
    )
    logger.info(f"Sent: {result['id']}", thread_id=result.get("threadId"))
    click.echo(
        json.dumps({"id": result["id"], "threadId": result.get("threadId")}, indent=2)
    )


@cli.group()
def draft():
    """Manage email drafts."""


@draft.command("create")
@attach_option
def draft_create(attachments: tuple[str, ...]):
    """Create a new email draft from JSON stdin.

    Accepts the same JSON fields as 'gog gmail send'.

    Example:
        echo '{"to": "x@y.com", "subject": "Hi!", "body": "Hello!"}' | gog gmail draft create
    """
    _, message, service = _compose(attachments, resolve_sender=True)
    if service is None:
        service = get_gmail()
    result = _retry_on_rate_limit(
        lambda: service.users()
        .drafts()
        .create(userId="me", body={"message": message})
        .execute()
    )
    logger.info(f"Draft created: {result['id']}", url=draft_url(result))
    click.echo(json.dumps({"id": result["id"], "url": draft_url(result)}, indent=2))


@draft.command("send")
@click.argument("draft_id")
def draft_send(draft_id: str):
    """Send an existing draft.

    Example:
        gog gmail draft send r-123456789
    """
    service = get_gmail()
    result = _retry_on_rate_limit(
        lambda: service.users()
        .drafts()
        .send(userId="me", body={"id": draft_id})
        .execute()
    )
    logger.info(f"Sent: {result['id']}")
