"""
Maniac Security Module
======================

- CSRF protection: signed tokens and the ``VerifyCsrfToken`` middleware
"""

from maniac.security.csrf import CsrfConfig, CsrfTokenManager, VerifyCsrfToken

__all__ = [
    "CsrfConfig",
    "CsrfTokenManager",
    "VerifyCsrfToken",
]
