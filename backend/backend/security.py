"""
backend/security.py

Request hardening shared by every app:
- input sanitization
- per-client rate limiting
- link checks used by correction validation
"""

import functools
import logging
import re
import time
from urllib.parse import parse_qs, urlparse

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_string(value, max_length=1000):
    if not isinstance(value, str):
        return ""
    cleaned = _CONTROL_CHARS.sub("", value.strip())
    return cleaned[:max_length]


# ============================================================
# RATE LIMITING
# ============================================================

def client_identifier(request):
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return f"user:{user.pk}"

    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    real_ip = request.META.get("HTTP_X_REAL_IP", "")
    if real_ip:
        return f"ip:{real_ip.strip()}"
    return f"ip:{request.META.get('REMOTE_ADDR', 'unknown')}"


def is_rate_limited(scope, identifier, now=None):
    """
    Sliding window check. Records the hit when it is allowed.
    """

    limit, window = settings.RATE_LIMITS[scope]
    now = time.time() if now is None else now
    key = f"ratelimit:{scope}:{identifier}"

    hits = [stamp for stamp in cache.get(key, []) if stamp > now - window]
    if len(hits) >= limit:
        cache.set(key, hits, window)
        return True

    hits.append(now)
    cache.set(key, hits, window)
    return False


def rate_limit(scope):
    def decorator(view_func):
        @functools.wraps(view_func)
        def wrapped(request, *args, **kwargs):
            identifier = client_identifier(request)
            if is_rate_limited(scope, identifier):
                logger.warning("Rate limit hit: scope=%s client=%s", scope, identifier)
                return JsonResponse(
                    {"detail": "Too many requests. Please try again later."},
                    status=429,
                )
            return view_func(request, *args, **kwargs)

        return wrapped

    return decorator


# ============================================================
# LINK CHECKS
# ============================================================

LINK_DOMAINS = {
    "discordLink": (
        ("discord.gg", "discord.com", "discordapp.com"),
        "Discord link must be from discord.gg, discord.com, or discordapp.com",
    ),
    "redditLink": (
        ("reddit.com", "redd.it"),
        "Reddit link must be from reddit.com or redd.it",
    ),
    "steamDBLink": (
        ("steamdb.info",),
        "SteamDB link must be from steamdb.info",
    ),
    "gogDreamlistLink": (
        ("gog.com",),
        "GOG Dreamlist link must be from gog.com",
    ),
    "wikiLink": (
        (
            "fandom.com",
            "wikia.com",
            "wikipedia.org",
            "gamepedia.com",
            "wiki.gg",
            "wiki.com",
            "wikidot.com",
            "wikia.org",
            "pcgamingwiki.com",
        ),
        "Wiki link must be from a recognized wiki platform "
        "(Fandom, Wikipedia, Gamepedia, PCGamingWiki, etc.)",
    ),
}

URL_SHORTENERS = ("bit.ly", "tinyurl.com", "t.co", "goo.gl")

BLOCKED_DOMAINS = {
    "NSFW/adult content domains are not allowed": (
        "pornhub.com",
        "xvideos.com",
        "xhamster.com",
        "redtube.com",
        "youporn.com",
        "xnxx.com",
        "spankbang.com",
        "onlyfans.com",
        "chaturbate.com",
    ),
    "This domain is not allowed for security reasons": (
        "4chan.org",
        "4cdn.org",
        "8chan.co",
        "8kun.top",
        "8ch.net",
        "endchan.net",
    ),
    "File sharing domains are not allowed": (
        "b-ok.org",
        "libgen.is",
        "libgen.rs",
        "libgen.li",
        "libgen.st",
        "z-lib.org",
    ),
}

DOWNLOAD_EXTENSIONS = (
    ".exe", ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".iso", ".dmg",
    ".pkg", ".deb", ".rpm", ".msi", ".bin", ".run", ".sh", ".bat", ".cmd",
    ".ps1", ".app", ".apk", ".ipa",
)

DOWNLOAD_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"/download/",
        r"/dl/",
        r"/file/",
        r"/files/",
        r"download=true",
        r"download=1",
        r"action=download",
        r"attachment",
    )
)


def _hostname(url):
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    if parsed.scheme not in {"http", "https"}:
        return ""
    return (parsed.hostname or "").lower()


def _matches_domain(hostname, domain):
    return hostname == domain or hostname.endswith(f".{domain}")


def is_valid_url(url):
    return bool(_hostname(url))


def url_validation_error(field, url):
    """Return an error message when a link field points at the wrong site."""

    if not url or not url.strip():
        return None
    rule = LINK_DOMAINS.get(field)
    if rule is None:
        return None

    domains, message = rule
    hostname = _hostname(url)
    if hostname.startswith("www."):
        hostname = hostname[4:]
    if not hostname or not any(_matches_domain(hostname, d) for d in domains):
        return message
    return None


def blocked_url_reason(url):
    hostname = _hostname(url)
    if not hostname:
        return None

    for reason, domains in BLOCKED_DOMAINS.items():
        if any(_matches_domain(hostname, d) for d in domains):
            return reason
    if any(_matches_domain(hostname, d) for d in URL_SHORTENERS):
        return "URL shorteners are not allowed for security reasons"
    return None


def is_direct_download_link(url):
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if not parsed.hostname:
        return False

    if parsed.path.lower().endswith(DOWNLOAD_EXTENSIONS):
        return True
    if any(pattern.search(url) for pattern in DOWNLOAD_PATTERNS):
        return True
    query = parse_qs(parsed.query, keep_blank_values=True)
    return "download" in query or "dl" in query
