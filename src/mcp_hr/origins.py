"""
Origin access control for browser-originated requests.

Browser hosts (ChatGPT, Microsoft 365 Copilot, VS Code webviews, dev tunnels)
call the MCP endpoint cross-origin. Each allow-list entry is parsed once into
a typed matcher; a request origin is allowed when any matcher accepts it,
checked in registration order.

Entry forms:
- "vscode-webview://"      scheme prefix, any origin starting with it
- "http://localhost"       loopback, any port
- ".example.com"           example.com itself or any subdomain
- "https://app.example"    exact origin
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from mcp_hr.config import AppConfig

STATIC_ALLOWED_ORIGINS: tuple[str, ...] = (
    # Local development
    "http://localhost",
    "http://127.0.0.1",
    "https://localhost",
    "https://127.0.0.1",
    # VS Code webview
    "vscode-webview://",
    # ChatGPT / OpenAI
    ".chatgpt.com",
    ".openai.com",
    # Microsoft 365 Copilot / Office
    ".widgetcopilot.net",
    ".microsoft.com",
    ".cloud.microsoft",
    ".office.com",
    ".office365.com",
    ".sharepoint.com",
    ".live.com",
    ".microsoft365.com",
    ".teams.microsoft.com",
    # Dev tunnels
    ".devtunnels.ms",
    ".ngrok-free.app",
    ".ngrok.io",
    ".loca.lt",
    ".trycloudflare.com",
)

LOCALHOST_ORIGINS = frozenset(
    {
        "http://localhost",
        "https://localhost",
        "http://127.0.0.1",
        "https://127.0.0.1",
    }
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class OriginMatcher(Protocol):
    """A single allow-list entry."""

    def matches(self, origin: str) -> bool: ...


@dataclass(frozen=True)
class ExactOrigin:
    """Allows exactly one origin string."""

    value: str

    def matches(self, origin: str) -> bool:
        return origin == self.value


@dataclass(frozen=True)
class SchemePrefix:
    """Allows every origin that starts with a scheme such as "vscode-webview://"."""

    prefix: str

    def matches(self, origin: str) -> bool:
        return origin.startswith(self.prefix)


@dataclass(frozen=True)
class LocalhostAnyPort:
    """
    Allows a loopback origin on any port.

    Stricter than a plain prefix test: what follows the base must be empty
    or a ":port" suffix, so "http://localhost.evil.net" is refused even
    though it starts with "http://localhost".
    """

    base: str

    def matches(self, origin: str) -> bool:
        if not origin.startswith(self.base):
            return False
        rest = origin[len(self.base) :]
        return rest == "" or rest.startswith(":")


@dataclass(frozen=True)
class DomainSuffix:
    """
    Allows a domain and all of its subdomains.

    ".example.com" accepts hosts equal to "example.com" and hosts ending in
    ".example.com". Both checks are kept since they differ for single-label
    suffixes such as ".localhost".
    """

    suffix: str

    def matches(self, origin: str) -> bool:
        hostname = origin_hostname(origin)
        if hostname is None:
            return False
        return hostname == self.suffix[1:] or hostname.endswith(self.suffix)


def origin_hostname(origin: str) -> str | None:
    """
    Return the lowercased hostname of an origin, or None if it is not a URL.
    """
    try:
        parts = urlsplit(origin)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.hostname or None


def url_origin(url: str) -> str | None:
    """
    Return the "scheme://host[:port]" origin of a URL, omitting default ports.

    Returns None for anything that does not parse as an absolute URL.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None

    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    scheme = parts.scheme.lower()
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def parse_origin_entry(entry: str) -> OriginMatcher:
    """
    Turn one allow-list entry into its matcher.

    Args:
        entry: Raw allow-list string.

    Returns:
        The matcher variant for the entry's form.
    """
    if entry.endswith("://"):
        return SchemePrefix(entry)
    if entry in LOCALHOST_ORIGINS:
        return LocalhostAnyPort(entry)
    if entry.startswith("."):
        return DomainSuffix(entry.lower())
    return ExactOrigin(entry)


def build_allowed_origins(
    public_base_url: str | None = None,
    additional_origins: Iterable[str] | str | None = None,
) -> list[str]:
    """
    Build the full allow-list from the static table and deployment settings.

    The public base URL contributes its own origin plus a wildcard for its
    hostname. Additional origins may be given as a list or a comma-separated
    string. Malformed URLs are skipped.

    Args:
        public_base_url: Externally reachable URL of this server.
        additional_origins: Extra entries in any supported form.

    Returns:
        Allow-list entries in match order.
    """
    origins = list(STATIC_ALLOWED_ORIGINS)

    if public_base_url:
        origin = url_origin(public_base_url)
        hostname = origin_hostname(origin) if origin else None
        if origin and hostname:
            origins.append(origin)
            origins.append(f".{hostname}")

    if isinstance(additional_origins, str):
        additional_origins = additional_origins.split(",")
    for raw in additional_origins or ():
        trimmed = raw.strip()
        if trimmed:
            origins.append(trimmed)

    return origins


class OriginPolicy:
    """
    Immutable allow-list deciding which browser origins receive responses.

    Example:
        >>> policy = OriginPolicy([".chatgpt.com"])
        >>> policy.is_allowed("https://chat.chatgpt.com")
        True
        >>> policy.is_allowed("https://chatgpt.com.evil.net")
        False
    """

    def __init__(self, entries: Iterable[str]) -> None:
        self._entries: tuple[str, ...] = tuple(entries)
        self._matchers: tuple[OriginMatcher, ...] = tuple(
            parse_origin_entry(entry) for entry in self._entries
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> OriginPolicy:
        """Create the policy from the server and CORS configuration."""
        return cls(
            build_allowed_origins(
                config.server.public_base_url,
                config.cors.additional_origins,
            )
        )

    @property
    def entries(self) -> tuple[str, ...]:
        """Allow-list entries in match order."""
        return self._entries

    @property
    def matchers(self) -> tuple[OriginMatcher, ...]:
        return self._matchers

    def is_allowed(self, origin: str | None) -> bool:
        """
        Decide whether a request with this Origin header may get a response.

        A missing origin, or the literal "null" sent by sandboxed iframes,
        is always allowed.

        Args:
            origin: Value of the Origin header, if any.

        Returns:
            True if the origin is permitted.
        """
        if not origin or origin == "null":
            return True
        return any(matcher.matches(origin) for matcher in self._matchers)
