"""
Maniac CSRF Protection
======================

Cross-Site Request Forgery protection using a signed token kept in a
cookie and echoed back by forms (``_token`` field) or scripts
(``X-CSRF-TOKEN`` header).

Features:
- HMAC-SHA256 signed, expiring tokens
- Token reused while valid, reissued when missing or expired
- Token exposed to views through ``request.state["csrf_token"]``
- Mismatch answered with ``419 Page Expired``

Usage:
    csrf = CsrfTokenManager(config.get("app.key"))
    router.alias_middleware("csrf", VerifyCsrfToken(csrf))

    # In views
    <form method="POST">
        @csrf
    </form>
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from maniac.core.exceptions import HttpException
from maniac.core.middleware import CallNext, Middleware

if TYPE_CHECKING:
    from maniac.core.request import Request
    from maniac.core.response import Response


@dataclass
class CsrfConfig:
    """CSRF protection configuration."""
    field_name: str = "_token"
    header_name: str = "X-CSRF-TOKEN"
    cookie_name: str = "XSRF-TOKEN"
    cookie_path: str = "/"
    cookie_secure: bool = False
    cookie_samesite: str = "Lax"
    token_lifetime: int = 7200
    safe_methods: tuple = ("GET", "HEAD", "OPTIONS")


class CsrfTokenManager:
    """
    Issues and verifies signed CSRF tokens.

    A token is ``{timestamp}.{random}.{signature}``.

    Example:
        csrf = CsrfTokenManager("app-key")
        token = csrf.generate_token()
        csrf.validate_token(token)  # True
    """

    def __init__(self, secret_key: Optional[str] = None, config: Optional[CsrfConfig] = None) -> None:
        self.config = config or CsrfConfig()
        # A random key invalidates every token on restart
        self.secret_key = secret_key or secrets.token_hex(32)

    def generate_token(self) -> str:
        payload = f"{int(time.time())}.{secrets.token_hex(16)}"
        return f"{payload}.{self._sign(payload)}"

    def validate_token(self, token: Optional[str]) -> bool:
        """Check signature and age of a token."""
        if not token:
            return False

        payload, _, signature = token.rpartition(".")
        if not payload or not hmac.compare_digest(signature, self._sign(payload)):
            return False

        timestamp, _, _ = payload.partition(".")
        try:
            issued = int(timestamp)
        except ValueError:
            return False
        return time.time() - issued <= self.config.token_lifetime

    def tokens_match(self, expected: Optional[str], submitted: Optional[str]) -> bool:
        if not expected or not submitted:
            return False
        return hmac.compare_digest(expected, submitted) and self.validate_token(submitted)

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key.encode(), payload.encode(), hashlib.sha256).hexdigest()

    def token_from_request(self, request: "Request") -> Optional[str]:
        """Submitted token: header first, then the form/JSON field."""
        return request.headers.get(self.config.header_name) or request.input(self.config.field_name)


class VerifyCsrfToken(Middleware):
    """
    CSRF protection middleware.

    Example:
        router.alias_middleware("csrf", VerifyCsrfToken(csrf, except_=["/webhooks"]))
    """

    def __init__(self, manager: CsrfTokenManager, except_: Optional[Sequence[str]] = None) -> None:
        self.manager = manager
        self.except_ = list(except_ or [])

    def _is_exempt(self, request: "Request") -> bool:
        if request.method in self.manager.config.safe_methods:
            return True
        return any(request.path.startswith(prefix) for prefix in self.except_)

    async def __call__(self, request: "Request", call_next: CallNext) -> "Response":
        config = self.manager.config
        cookie_token = request.cookies.get(config.cookie_name)
        if not self.manager.validate_token(cookie_token):
            cookie_token = None

        if not self._is_exempt(request):
            if not self.manager.tokens_match(cookie_token, self.manager.token_from_request(request)):
                raise HttpException(419, "CSRF token mismatch.")

        token = cookie_token or self.manager.generate_token()
        request.state["csrf_token"] = token

        response = await call_next(request)
        if token != request.cookies.get(config.cookie_name):
            response.set_cookie(
                name=config.cookie_name,
                value=token,
                path=config.cookie_path,
                secure=config.cookie_secure,
                httponly=False,
                samesite=config.cookie_samesite,
                max_age=config.token_lifetime,
            )
        return response
