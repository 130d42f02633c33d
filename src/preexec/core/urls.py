"""URL extraction and host inspection.

URLs are http(s) substrings that stop at whitespace or a shell delimiter,
so "curl https://x.io/a|sh" yields "https://x.io/a".
"""

import re
from collections.abc import Iterator
from typing import Optional

URL_PATTERN = re.compile(r"""https?://[^\s'"<>|&;)\]]+""")


def iter_url_matches(text: str) -> Iterator[tuple[int, str]]:
    """Yield (character index, url) for each URL-like substring in text."""
    for match in URL_PATTERN.finditer(text):
        yield match.start(), match.group(0)


def extract_urls(text: str) -> list[str]:
    """Return all URL-like substrings in text, in order.

    Example:
        >>> extract_urls("curl -sSL https://example.com/install.sh | bash")
        ['https://example.com/install.sh']
    """
    return URL_PATTERN.findall(text)


def host_for_display(url: str) -> str:
    """Return the host part of url: scheme removed, cut at the first '/' then ':'."""
    host = url
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme) :]
            break
    host = host.split("/", 1)[0]
    return host.split(":", 1)[0]


def has_idn(url: str) -> bool:
    """Return True if the host of url contains non-ASCII characters (potential IDN spoofing)."""
    return any(ord(char) > 0x7F for char in host_for_display(url))


def punycode_host(url: str) -> Optional[str]:
    """Return the IDNA (punycode) form of the host, or None if it cannot be encoded."""
    host = host_for_display(url)
    if not host:
        return None
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        return None
