"""Security headers for API responses.

The same header set is applied on allowed and denied paths, so a throttled
response is distinguishable from a normal one only by status and body.
"""

from __future__ import annotations

from dataclasses import dataclass

from starlette.responses import Response

HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"
CSP_VALUE = (
    "default-src 'self'; script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
    "style-src 'self' 'unsafe-inline'; img-src 'self' data: https:; "
    "connect-src 'self' https:; font-src 'self' data:;"
)

BASELINE_HEADERS: tuple[tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("X-XSS-Protection", "1; mode=block"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
    ("Permissions-Policy", "camera=(), microphone=(), geolocation=(), interest-cohort=()"),
)


@dataclass(frozen=True)
class SecurityHeaderOptions:
    """Optional headers to add on top of the baseline set."""

    include_hsts: bool = False
    include_csp: bool = False


def get_security_headers(options: SecurityHeaderOptions | None = None) -> dict[str, str]:
    """Return the ordered header map for ``options``.

    Args:
        options: Which optional headers to include; defaults to none.

    Returns:
        New dict with the baseline headers first, then HSTS and CSP when
        requested.
    """
    opts = options or SecurityHeaderOptions()
    headers = dict(BASELINE_HEADERS)
    if opts.include_hsts:
        headers["Strict-Transport-Security"] = HSTS_VALUE
    if opts.include_csp:
        headers["Content-Security-Policy"] = CSP_VALUE
    return headers


def apply_security_headers(
    response: Response,
    options: SecurityHeaderOptions | None = None,
) -> Response:
    """Set the security headers on ``response`` in place and return it."""
    for name, value in get_security_headers(options).items():
        response.headers[name] = value
    return response
