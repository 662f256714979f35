"""
Session cookie attributes.

The session core only decides what the cookie should look like. Building
the header value is a pure function of the session id, the cookie
configuration, and the current time; sending it is left to the HTTP layer
(see middleware.session).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from http.cookies import SimpleCookie
from typing import Any, Mapping, Optional

COOKIE_NAME = "SESSION_ID"
DEFAULT_LIFETIME = 86400 * 30
CLEAR_OFFSET = 3600

SAMESITE_VALUES = ("Lax", "Strict", "None")


@dataclass(frozen=True)
class CookieConfig:
    """
    Attributes for the session cookie.

    Attributes:
        path: Cookie path.
        secure: Force the Secure flag on or off; None follows the request
            scheme. SameSite=None always forces it on.
        httponly: Hide the cookie from client-side scripts.
        samesite: One of Lax, Strict or None.
        lifetime: Seconds from now until the cookie expires.
        expires: Fixed unix timestamp; takes precedence over lifetime.
        domain: Optional cookie domain.
    """
    path: str = "/"
    secure: Optional[bool] = None
    httponly: bool = True
    samesite: str = "Lax"
    lifetime: int = DEFAULT_LIFETIME
    expires: Optional[int] = None
    domain: Optional[str] = None

    def options(self, secure_request: bool = False) -> dict[str, Any]:
        """Resolve the attribute set for a request made over TLS or not."""
        secure = secure_request if self.secure is None else bool(self.secure)
        if str(self.samesite).lower() == "none":
            secure = True

        resolved: dict[str, Any] = {
            "path": self.path,
            "secure": secure,
            "httponly": self.httponly,
            "samesite": self.samesite,
        }
        if self.domain is not None:
            resolved["domain"] = self.domain
        return resolved

    def expiry(self, now: float) -> int:
        """Absolute expiry for a cookie issued at ``now``."""
        if self.expires is not None:
            return int(self.expires)
        return int(now) + int(self.lifetime)


def _http_date(epoch: int) -> str:
    return format_datetime(datetime.fromtimestamp(epoch, tz=timezone.utc), usegmt=True)


def build_cookie_header(value: str, options: Mapping[str, Any], expires: int) -> str:
    """
    Format a Set-Cookie header value.

    Args:
        value: Cookie value (the session id, or "" to clear).
        options: Resolved attributes from CookieConfig.options().
        expires: Absolute unix timestamp.
    """
    cookie: SimpleCookie = SimpleCookie()
    cookie[COOKIE_NAME] = value
    morsel = cookie[COOKIE_NAME]

    morsel["expires"] = _http_date(expires)
    morsel["path"] = options.get("path", "/")
    if options.get("domain"):
        morsel["domain"] = options["domain"]
    if options.get("secure"):
        morsel["secure"] = True
    if options.get("httponly"):
        morsel["httponly"] = True
    if options.get("samesite"):
        morsel["samesite"] = options["samesite"]

    return morsel.OutputString()


def session_cookie(session_id: str, config: CookieConfig, now: float, secure_request: bool = False) -> str:
    """Set-Cookie value that issues ``session_id``."""
    return build_cookie_header(session_id, config.options(secure_request), config.expiry(now))


def clearing_cookie(config: CookieConfig, now: float, secure_request: bool = False) -> str:
    """Set-Cookie value that makes the browser drop the session cookie."""
    return build_cookie_header("", config.options(secure_request), int(now) - CLEAR_OFFSET)


def is_https_request(
    scheme: Optional[str],
    headers: Optional[Mapping[str, str]] = None,
    port: Optional[int] = None
) -> bool:
    """
    Decide whether a request reached us over TLS.

    True when the scheme is https, the server port is 443, or the first
    X-Forwarded-Proto value is https.
    """
    if scheme and scheme.lower() == "https":
        return True

    if port is not None and int(port) == 443:
        return True

    if headers:
        forwarded = None
        for name, value in headers.items():
            if name.lower() == "x-forwarded-proto":
                forwarded = value
                break
        if forwarded:
            return forwarded.split(",")[0].strip().lower() == "https"

    return False
