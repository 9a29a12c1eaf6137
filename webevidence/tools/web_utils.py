from __future__ import annotations

import re
from hashlib import sha256
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

ROBOTS_TXT_PATH = "/robots.txt"
SHORT_HASH_LENGTH = 12

TRACKING_PARAM_RE = re.compile(r"^(utm_|gclid|fbclid|mc_cid|mc_eid)", re.IGNORECASE)
WWW_PREFIX_RE = re.compile(r"^(?:www\.)+")
SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(url, str):
        return False
    try:
        result = urlsplit(url.strip())
        return result.scheme.lower() in ("http", "https") and bool(result.hostname)
    except ValueError:
        return False


def extract_hostname(url: str) -> str:
    """Lower-cased hostname of a URL, or an empty string."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def short_hash(value: str) -> str:
    return sha256(value.encode("utf-8")).hexdigest()[:SHORT_HASH_LENGTH]


def resolve_url(base: str, location: str) -> str:
    return urljoin(base, location.strip())


def robots_txt_url(url: str) -> str | None:
    """robots.txt location at the URL's origin."""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    return urlunsplit((parsed.scheme.lower(), parsed.netloc.lower(), ROBOTS_TXT_PATH, "", ""))


def _host_port(parsed) -> str:
    host = WWW_PREFIX_RE.sub("", (parsed.hostname or "").lower())
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    return f"{host}:{port}" if port else host


def _clean_path(path: str) -> str:
    if not path:
        return "/"
    if path.endswith("/") and len(path) > 1:
        return path.rstrip("/") or "/"
    return path


def _clean_query(query: str) -> str:
    kept = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if not TRACKING_PARAM_RE.match(key)
    ]
    # Stable sort keeps the relative order of repeated keys.
    kept.sort(key=lambda item: item[0])
    return urlencode(kept)


def dedupe_key_for_url(url: str) -> str:
    """Protocol-agnostic identity for pre-fetch dedup.

    Drops the scheme, a leading ``www.``, the fragment, tracking parameters and
    trailing slashes; lower-cases the host and sorts the remaining query
    parameters. Applying it to its own output returns the same key.
    """
    raw = url.strip()
    try:
        parsed = urlsplit(raw if SCHEME_RE.match(raw) else f"//{raw}")
        host = _host_port(parsed)
    except ValueError:
        return raw.lower()
    if not host:
        return raw.lower()
    query = _clean_query(parsed.query)
    key = f"{host}{_clean_path(parsed.path)}"
    return f"{key}?{query}" if query else key


def normalize_url(url: str) -> str:
    """Like ``dedupe_key_for_url`` but keeps the (lower-cased) scheme."""
    raw = url.strip()
    try:
        parsed = urlsplit(raw)
        host = _host_port(parsed)
    except ValueError:
        return raw
    if not parsed.scheme or not host:
        return raw
    query = _clean_query(parsed.query)
    normalized = f"{parsed.scheme.lower()}://{host}{_clean_path(parsed.path)}"
    return f"{normalized}?{query}" if query else normalized
