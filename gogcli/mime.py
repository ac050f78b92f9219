"""Compose outbound mail as raw RFC 5322 / MIME bytes.

The Gmail API only accepts complete messages (``raw`` is the base64url of the
full RFC 5322 text), so header encoding, address formatting and MIME layout
all happen here rather than in a mail library that would fold, re-encode or
reorder what we give it.

Layout
------
    body only            text/plain; charset=utf-8
    html only            text/html; charset=utf-8
    body + html          multipart/alternative (plain first, html second)
    any attachments      multipart/mixed wrapping the above, then one
                         base64 part per attachment in input order

Header-bound input (addresses, Reply-To, extra headers, attachment MIME
types) is checked for CR/LF before anything is encoded. A value carrying a
line break is rejected with InvalidHeaderValue, never cleaned up. Subject is
not checked: anything outside printable ASCII, CR/LF included, makes it an
RFC 2047 encoded word.

Composition keeps no state between calls. Message-IDs and boundaries come
from the ``secrets`` module, which is safe to use from several threads.
"""

from __future__ import annotations

import base64
import re
import secrets
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from urllib.parse import quote

from .logging import GogError, get_logger

logger = get_logger(__name__)

CRLF = "\r\n"
FALLBACK_MESSAGE_ID_DOMAIN = "gogcli.local"
DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"
# RFC 2045 section 6.8
BASE64_LINE_LENGTH = 76

# Headers written by the composer itself. Message-ID is not listed: a
# caller-supplied one replaces the generated value.
RESERVED_HEADERS = frozenset(
    {
        "from",
        "to",
        "cc",
        "bcc",
        "reply-to",
        "subject",
        "mime-version",
        "content-type",
        "content-transfer-encoding",
    }
)

# RFC 5322 field-name: printable US-ASCII except colon
_HEADER_NAME = re.compile(r"[!-9;-~]+")
_ADDR_SPEC = re.compile(r'[^\s<>()\[\]\\,;:"@]+@[^\s<>()\[\]\\,;:"@]+')
_NAME_ADDR = re.compile(r"(?P<name>.*?)\s*<(?P<address>[^<>]*)>", re.DOTALL)
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_QUOTED_PAIR = re.compile(r"\\(.)", re.DOTALL)
# RFC 5322 specials, which force a display name into a quoted string
_SPECIALS = re.compile(r'[][\\()<>@,:;".]')


class ComposeError(GogError):
    """Message composition failed; no bytes were produced."""


class InvalidHeaderValue(ComposeError):
    """A header-bound field would inject or break header lines."""

    def __init__(
        self, field: str, reason: str = "header value contains a line break"
    ):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class InvalidHeaderName(ComposeError):
    """An additional header's name is malformed, duplicated, or reserved."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class EncodingFailure(ComposeError):
    """An internal encoding step could not produce output."""


@dataclass(frozen=True)
class Attachment:
    filename: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class MessageSpec:
    """Structured description of an outgoing message.

    ``to``, ``cc`` and ``bcc`` entries may each hold a comma-separated list.
    ``additional_headers`` keys are matched case-insensitively.
    """

    from_addr: str = ""
    to: Sequence[str] = ()
    cc: Sequence[str] = ()
    bcc: Sequence[str] = ()
    reply_to: str | None = None
    subject: str = ""
    body: str | None = None
    body_html: str | None = None
    attachments: Sequence[Attachment] = ()
    additional_headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("to", "cc", "bcc", "attachments"):
            value = getattr(self, name)
            if isinstance(value, str):
                value = [value]
            object.__setattr__(self, name, tuple(value or ()))
        object.__setattr__(
            self,
            "additional_headers",
            MappingProxyType(dict(self.additional_headers or {})),
        )


@dataclass(frozen=True)
class ParsedAddress:
    name: str
    address: str


@dataclass(frozen=True)
class UnparsedAddress:
    """Input that is not a mailbox or list; emitted exactly as given."""

    raw: str


AddressEntry = ParsedAddress | UnparsedAddress


def _needs_encoding(text: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) > 0x7E for ch in text)


def encode_header_if_needed(text: str) -> str:
    """Return text unchanged if it is printable ASCII, else one RFC 2047 word.

    Long values are not split into several encoded words.
    """
    if not _needs_encoding(text):
        return text
    payload = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return f"=?utf-8?B?{payload}?="


def _split_top_level(entry: str) -> list[str] | None:
    """Split on commas outside quoted strings and angle brackets.

    Returns None when quotes or brackets are unbalanced.
    """
    pieces: list[str] = []
    buf: list[str] = []
    in_quotes = False
    escaped = False
    depth = 0
    for ch in entry:
        if escaped:
            escaped = False
        elif in_quotes and ch == "\\":
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes:
            if ch == "<":
                depth += 1
            elif ch == ">":
                if depth == 0:
                    return None
                depth -= 1
            elif ch == "," and depth == 0:
                pieces.append("".join(buf))
                buf = []
                continue
        buf.append(ch)
    if in_quotes or escaped or depth:
        return None
    pieces.append("".join(buf))
    return pieces


def _unquote_display_name(name: str) -> str:
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return _QUOTED_PAIR.sub(r"\1", name[1:-1])
    return name


def _parse_mailbox(text: str) -> ParsedAddress | None:
    text = text.strip()
    if _ADDR_SPEC.fullmatch(text):
        return ParsedAddress("", text)
    m = _NAME_ADDR.fullmatch(text)
    if m is None:
        return None
    address = m["address"].strip()
    if not _ADDR_SPEC.fullmatch(address):
        return None
    return ParsedAddress(_unquote_display_name(m["name"].strip()), address)


def parse_address_entry(entry: str) -> list[AddressEntry]:
    """Parse one address entry, which may itself be a comma-separated list.

    Blank entries and blank list items yield nothing. If any item fails to
    parse, the whole entry comes back as a single UnparsedAddress.
    """
    if not entry.strip():
        return []
    pieces = _split_top_level(entry)
    if pieces is None:
        return [UnparsedAddress(entry)]
    mailboxes: list[AddressEntry] = []
    for piece in pieces:
        if not piece.strip():
            continue
        mailbox = _parse_mailbox(piece)
        if mailbox is None:
            return [UnparsedAddress(entry)]
        mailboxes.append(mailbox)
    return mailboxes


def _format_mailbox(entry: AddressEntry) -> str:
    if isinstance(entry, UnparsedAddress):
        return entry.raw
    if not entry.name:
        return entry.address
    encoded = encode_header_if_needed(entry.name)
    if encoded != entry.name:
        return f"{encoded} <{entry.address}>"
    # ASCII names only need quoting when they contain specials. Addresses go
    # in as given, non-ASCII local parts included.
    if _SPECIALS.search(entry.name):
        quoted = entry.name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{quoted}" <{entry.address}>'
    return f"{entry.name} <{entry.address}>"


def format_address_header(entry: str) -> str:
    """Format a single (possibly comma-separated) address entry."""
    return ", ".join(_format_mailbox(m) for m in parse_address_entry(entry))


def format_address_headers(entries: Iterable[str]) -> str:
    """Format address entries into one header value joined with ", "."""
    formatted = (format_address_header(entry) for entry in entries)
    return ", ".join(value for value in formatted if value)


def content_disposition_filename(filename: str) -> str:
    """Return the filename parameter for a Content-Disposition header.

    Plain ASCII names use a quoted string (RFC 2183). Names with non-ASCII
    or control characters use the RFC 5987 extended form instead.
    """
    if _needs_encoding(filename):
        return "filename*=UTF-8''" + quote(filename, safe="")
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'filename="{escaped}"'


def normalize_crlf(text: str) -> str:
    """Rewrite every CRLF, lone LF and lone CR as CRLF."""
    return _LINE_BREAK.sub(CRLF, text)


def has_header(headers: Mapping[str, str] | None, name: str) -> bool:
    """Check whether a header is present, ignoring case."""
    if not headers:
        return False
    target = name.lower()
    return any(key.lower() == target for key in headers)


def _random(generate, nbytes: int) -> str:
    try:
        return generate(nbytes)
    except (OSError, NotImplementedError) as e:
        raise EncodingFailure(f"Random source unavailable: {e}") from e


def _address_domain(addr: str) -> str | None:
    mailboxes = parse_address_entry(addr)
    if len(mailboxes) != 1 or not isinstance(mailboxes[0], ParsedAddress):
        return None
    return mailboxes[0].address.rpartition("@")[2] or None


def random_message_id(from_addr: str, fallback_domain: str | None = None) -> str:
    """Generate a Message-ID using the domain of the From address.

    Falls back to fallback_domain (or gogcli.local) when From has no
    parseable address.
    """
    domain = (
        _address_domain(from_addr) or fallback_domain or FALLBACK_MESSAGE_ID_DOMAIN
    )
    return f"<{_random(secrets.token_urlsafe, 24)}@{domain}>"


def _check_line_breaks(field: str, value: str | None) -> None:
    if value and ("\r" in value or "\n" in value):
        raise InvalidHeaderValue(field)


def validate_message(spec: MessageSpec) -> dict[str, tuple[str, str]]:
    """Reject header-bound input that could inject header lines.

    Returns the caller's additional headers keyed by lowercased name, each
    mapped to its (name, value) pair as supplied.
    """
    _check_line_breaks("From", spec.from_addr)
    recipients = (("To", spec.to), ("Cc", spec.cc), ("Bcc", spec.bcc))
    for field_name, entries in recipients:
        for entry in entries:
            _check_line_breaks(field_name, entry)
    _check_line_breaks("Reply-To", spec.reply_to)
    for attachment in spec.attachments:
        _check_line_breaks(
            f"Content-Type of {attachment.filename!r}", attachment.mime_type
        )

    extra: dict[str, tuple[str, str]] = {}
    for name, value in spec.additional_headers.items():
        if not _HEADER_NAME.fullmatch(name):
            raise InvalidHeaderName(repr(name), "not a valid header name")
        _check_line_breaks(name, value)
        key = name.lower()
        if key in RESERVED_HEADERS:
            raise InvalidHeaderName(name, "header is generated by the composer")
        if key in extra:
            raise InvalidHeaderName(name, "header supplied more than once")
        extra[key] = (name, value)
    return extra


@dataclass
class _Part:
    headers: list[tuple[str, str]]
    body: str

    def render(self) -> str:
        lines = [f"{name}: {value}{CRLF}" for name, value in self.headers]
        return "".join(lines) + CRLF + self.body


def _terminated(text: str) -> str:
    return text if text.endswith(CRLF) else text + CRLF


def _text_part(text: str, subtype: str) -> _Part:
    body = normalize_crlf(text)
    return _Part(
        [
            ("Content-Type", f"text/{subtype}; charset=utf-8"),
            ("Content-Transfer-Encoding", "7bit" if body.isascii() else "8bit"),
        ],
        _terminated(body),
    )


def _attachment_part(attachment: Attachment) -> _Part:
    encoded = base64.b64encode(attachment.data).decode("ascii")
    lines = [
        encoded[i : i + BASE64_LINE_LENGTH]
        for i in range(0, len(encoded), BASE64_LINE_LENGTH)
    ]
    disposition = content_disposition_filename(attachment.filename)
    return _Part(
        [
            ("Content-Type", attachment.mime_type or DEFAULT_ATTACHMENT_TYPE),
            ("Content-Transfer-Encoding", "base64"),
            ("Content-Disposition", f"attachment; {disposition}"),
        ],
        _terminated(CRLF.join(lines)),
    )


def _new_boundary(used: set[str], contents: Sequence[str]) -> str:
    # "=_" never occurs in base64 output, so only text bodies can collide
    while True:
        boundary = "=_" + _random(secrets.token_hex, 16)
        if boundary not in used and not any(boundary in c for c in contents):
            used.add(boundary)
            return boundary


def _multipart(subtype: str, parts: list[_Part], boundary: str) -> _Part:
    body = "".join(f"--{boundary}{CRLF}{part.render()}" for part in parts)
    body += f"--{boundary}--{CRLF}"
    content_type = f'multipart/{subtype}; boundary="{boundary}"'
    return _Part([("Content-Type", content_type)], body)


def build_rfc822(spec: MessageSpec, *, message_id_domain: str | None = None) -> bytes:
    """Compose a complete RFC 5322 message with CRLF line endings.

    A blank ``from_addr`` leaves the From header out entirely: Gmail fills in
    the authenticated sender for messages sent or drafted without one.

    Args:
        spec: Message description
        message_id_domain: Domain for the generated Message-ID when From has
            no parseable address (default gogcli.local)

    Raises:
        InvalidHeaderValue: A header-bound field contains CR or LF
        InvalidHeaderName: An additional header name is malformed, repeated,
            or collides with a generated header
        EncodingFailure: No random source for boundaries or Message-ID
    """
    extra = validate_message(spec)

    used_boundaries: set[str] = set()
    texts = [text for text in (spec.body, spec.body_html) if text]
    if spec.body and spec.body_html:
        content = _multipart(
            "alternative",
            [_text_part(spec.body, "plain"), _text_part(spec.body_html, "html")],
            _new_boundary(used_boundaries, texts),
        )
    elif spec.body_html:
        content = _text_part(spec.body_html, "html")
    else:
        content = _text_part(spec.body or "", "plain")

    if spec.attachments:
        parts = [content, *(_attachment_part(a) for a in spec.attachments)]
        content = _multipart("mixed", parts, _new_boundary(used_boundaries, texts))

    headers: list[tuple[str, str]] = []
    if spec.from_addr.strip():
        headers.append(("From", format_address_headers([spec.from_addr])))
    for name, entries in (("To", spec.to), ("Cc", spec.cc), ("Bcc", spec.bcc)):
        if value := format_address_headers(entries):
            headers.append((name, value))
    if spec.reply_to and spec.reply_to.strip():
        headers.append(("Reply-To", format_address_headers([spec.reply_to])))
    headers.append(("Subject", encode_header_if_needed(spec.subject)))

    custom_id = extra.pop("message-id", None)
    if custom_id is not None:
        message_id = custom_id[1]
    else:
        message_id = random_message_id(spec.from_addr, message_id_domain)
    headers.append(("Message-ID", message_id))
    headers.append(("MIME-Version", "1.0"))
    headers.extend(extra.values())

    raw = _Part(headers + content.headers, content.body).render().encode("utf-8")
    logger.debug(
        "Composed message",
        size=len(raw),
        content_type=content.headers[0][1].split(";")[0],
        attachments=len(spec.attachments),
    )
    return raw


def encode_raw_message(raw: bytes) -> str:
    """Wrap composed bytes for the Gmail API ``raw`` field (base64url)."""
    return base64.urlsafe_b64encode(raw).decode("ascii")
