"""
Security headers middleware.

The platform only serves JSON and zip downloads, so the policy is locked
down: nothing may be framed, sniffed or cached by intermediaries.

Usage:
    from app.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("Referrer-Policy", "no-referrer")

        # Record data and tokens must not linger in shared caches
        if response.mimetype in ("application/json", "application/zip"):
            response.headers.setdefault("Cache-Control", "no-store")

        response.headers.pop("Server", None)
        return response
