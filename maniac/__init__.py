"""
Maniac - Async Full-Stack Python Web Framework
==============================================

A web-application framework with its own ORM, template compiler, mailer
and notification system, served over ASGI.

Features:
---------
- ASGI application with a service container
- Router with parameters, groups, named routes and middleware pipelines
- Active Record ORM with a fluent query builder, schema builder,
  migrations and seeders (SQLite, MySQL, PostgreSQL)
- Niac template engine compiling ``@directives`` to cached Python code
- Mailer with Markdown mail and SMTP delivery
- Notifications over mail and database channels
- CSRF protection
- CLI for serving, migrations and seeding

Quick Start:
    from maniac import Application

    app = Application()

    @app.get("/")
    async def home(request):
        return app.views.render("welcome")

    $ maniac serve --app app:app
"""

from __future__ import annotations

__version__ = "1.0.0"
__author__ = "Maniac Team"
__license__ = "MIT"

from typing import TYPE_CHECKING

# Core imports (always available)
from maniac.core.application import Application, ServiceContainer
from maniac.core.config import Config
from maniac.core.middleware import Middleware
from maniac.core.request import Request
from maniac.core.response import Response
from maniac.core.router import Router

# Lazy imports for performance
if TYPE_CHECKING:
    from maniac.mail import Mailable, Mailer, MailMessage
    from maniac.notifications import Notifiable, Notification, NotificationSender
    from maniac.orm import Blueprint, Database, Migration, Model, QueryBuilder, Schema, Seeder
    from maniac.security import CsrfTokenManager, VerifyCsrfToken
    from maniac.utils.env import Env
    from maniac.utils.logger import Logger
    from maniac.view import NiacEngine


def __getattr__(name: str):
    """Lazy loading of optional components for faster startup."""
    _imports = {
        # ORM
        "Model": "maniac.orm.model",
        "QueryBuilder": "maniac.orm.query",
        "Database": "maniac.orm.connection",
        "Schema": "maniac.orm.schema",
        "Blueprint": "maniac.orm.schema",
        "Migration": "maniac.orm.migrations",
        "Seeder": "maniac.orm.seeder",
        # Views
        "NiacEngine": "maniac.view.engine",
        # Mail
        "Mailable": "maniac.mail.mailable",
        "MailMessage": "maniac.mail.mailable",
        "Mailer": "maniac.mail.mailer",
        # Notifications
        "Notification": "maniac.notifications.notification",
        "Notifiable": "maniac.notifications.notification",
        "NotificationSender": "maniac.notifications.sender",
        # Security
        "CsrfTokenManager": "maniac.security.csrf",
        "VerifyCsrfToken": "maniac.security.csrf",
        # Utils
        "Logger": "maniac.utils.logger",
        "Env": "maniac.utils.env",
    }

    if name in _imports:
        import importlib
        module = importlib.import_module(_imports[name])
        return getattr(module, name)

    raise AttributeError(f"module 'maniac' has no attribute '{name}'")


__all__ = [
    # Metadata
    "__version__",
    "__author__",
    "__license__",
    # Core (always loaded)
    "Application",
    "ServiceContainer",
    "Router",
    "Request",
    "Response",
    "Middleware",
    "Config",
    # ORM (lazy)
    "Model",
    "QueryBuilder",
    "Database",
    "Schema",
    "Blueprint",
    "Migration",
    "Seeder",
    # Views (lazy)
    "NiacEngine",
    # Mail (lazy)
    "Mailable",
    "MailMessage",
    "Mailer",
    # Notifications (lazy)
    "Notification",
    "Notifiable",
    "NotificationSender",
    # Security (lazy)
    "CsrfTokenManager",
    "VerifyCsrfToken",
    # Utils (lazy)
    "Logger",
    "Env",
]
