"""
Maniac Application Core
=======================

The central orchestrator of the Maniac framework. Application manages:
- Configuration and ``.env`` loading
- Service container and dependency injection
- Database, views, mailer and notification wiring
- Global middleware pipeline
- Route registration shortcuts
- ASGI lifecycle (startup, requests, shutdown)

Example:
    from maniac import Application

    app = Application(base_path=Path(__file__).parent)

    @app.get("/")
    async def home(request):
        return app.views.render("home", {"name": "Maniac"})

    @app.get("/users/{id}")
    async def show(request, id: int):
        user = await User.find_or_fail(id)
        return user.to_dict()

    if __name__ == "__main__":
        app.run()
"""

from __future__ import annotations

import inspect
import time
import typing
from contextlib import asynccontextmanager
from pathlib import Path
from typing import (
    Any,
    Callable,
    Coroutine,
    Dict,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from maniac.core.config import Config
from maniac.core.exceptions import ContainerError, HttpException
from maniac.core.pipeline import Pipeline
from maniac.core.request import Request, current_request
from maniac.core.response import Response
from maniac.core.router import Router
from maniac.mail.mailer import Mailer
from maniac.notifications.channels import DatabaseChannel, MailChannel
from maniac.notifications.notification import Notifiable
from maniac.notifications.sender import NotificationSender
from maniac.orm.connection import Database, DatabaseConfig
from maniac.orm.model import Model
from maniac.security.csrf import CsrfTokenManager, VerifyCsrfToken
from maniac.utils.env import Env
from maniac.utils.logger import LogLevel, configure_logging
from maniac.view.engine import NiacEngine

Hook = Callable[[], Coroutine[Any, Any, None]]


class ServiceContainer:
    """
    Lightweight Dependency Injection Container.

    Keys are names or classes. Classes without a binding are built
    automatically, resolving annotated constructor parameters from the
    container.

    Example:
        container.singleton(Mailer, lambda: Mailer(config.section("mail"), views))
        container.alias("mailer", Mailer)
        container.make("mailer")          # same Mailer every time
        container.make(UserController)    # built, Mailer injected
    """

    def __init__(self) -> None:
        self._bindings: Dict[Any, Tuple[Callable[[], Any], bool]] = {}
        self._instances: Dict[Any, Any] = {}
        self._aliases: Dict[Any, Any] = {}
        self._building: Set[Any] = set()

    def bind(self, key: Any, factory: Optional[Callable[[], Any]] = None, shared: bool = False) -> None:
        """Register a factory; a new instance per ``make`` unless ``shared``."""
        if factory is None:
            if not inspect.isclass(key):
                raise ContainerError(f"A factory is required to bind [{key}].")
            factory = lambda: self.build(key)  # noqa: E731
        self._instances.pop(key, None)
        self._bindings[key] = (factory, shared)

    def singleton(self, key: Any, factory: Optional[Callable[[], Any]] = None) -> None:
        self.bind(key, factory, shared=True)

    def instance(self, key: Any, value: Any) -> Any:
        self._instances[key] = value
        return value

    def alias(self, alias: Any, target: Any) -> None:
        self._aliases[alias] = target

    def _resolve_key(self, key: Any) -> Any:
        while key in self._aliases:
            key = self._aliases[key]
        return key

    def has(self, key: Any) -> bool:
        key = self._resolve_key(key)
        return key in self._instances or key in self._bindings

    def make(self, key: Any) -> Any:
        """
        Resolve a service.

        Raises:
            ContainerError: Unknown name, or a class whose constructor
                cannot be satisfied
        """
        key = self._resolve_key(key)

        if key in self._instances:
            return self._instances[key]

        if key in self._bindings:
            factory, shared = self._bindings[key]
            value = factory()
            if shared:
                self._instances[key] = value
            return value

        if inspect.isclass(key):
            return self.build(key)

        raise ContainerError(f"Service [{key}] is not registered.")

    def build(self, cls: type) -> Any:
        """Instantiate a class, injecting its annotated constructor parameters."""
        if cls in self._building:
            raise ContainerError(f"Circular dependency while building [{cls.__name__}].")

        self._building.add(cls)
        try:
            return cls(**self._constructor_arguments(cls))
        finally:
            self._building.discard(cls)

    def _constructor_arguments(self, cls: type) -> Dict[str, Any]:
        init = cls.__init__
        if init is object.__init__:
            return {}

        try:
            hints = typing.get_type_hints(init)
        except (NameError, TypeError):
            hints = {}

        arguments: Dict[str, Any] = {}
        for name, param in inspect.signature(init).parameters.items():
            if name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue

            annotation = hints.get(name)
            if annotation is not None and (self.has(annotation) or self._is_buildable(annotation)):
                arguments[name] = self.make(annotation)
            elif self.has(name):
                arguments[name] = self.make(name)
            elif param.default is param.empty:
                raise ContainerError(
                    f"Unresolvable dependency [{name}] in class {cls.__module__}.{cls.__qualname__}"
                )
        return arguments

    @staticmethod
    def _is_buildable(annotation: Any) -> bool:
        return (
            inspect.isclass(annotation)
            and annotation.__module__ != "builtins"
            and not inspect.isabstract(annotation)
        )


class Application:
    """
    Maniac Application Container.

    Builds the framework services from configuration and serves them as
    an ASGI application.

    Attributes:
        config: Application configuration
        container: Service container
        router: URL router
        views: Niac view engine
        db: Database (``None`` when no database is configured)
        mailer: Mailer
        notifications: Notification sender
        csrf: CSRF token manager
    """

    def __init__(
        self,
        base_path: Optional[Union[str, Path]] = None,
        config: Optional[Union[Config, Mapping[str, Any]]] = None,
        debug: Optional[bool] = None,
    ) -> None:
        self.base_path = Path(base_path) if base_path else Path.cwd()
        Env(self.base_path / ".env").load()

        if isinstance(config, Config):
            self.config = config
        else:
            self.config = Config()
            self.config.load_from_path(self.base_path / "config")
            if config:
                self.config.add_source("application", dict(config), priority=500)
        if debug is not None:
            self.config.set("app.debug", debug)
        self.debug = self.config.get_bool("app.debug")

        log_file = self.config.get("logging.file")
        self.logger = configure_logging(
            level=LogLevel.DEBUG if self.debug else self.config.get("logging.level", "info"),
            format=self.config.get("logging.format", "text"),
            log_file=str(self.path(log_file)) if log_file else None,
        )

        self.container = ServiceContainer()
        self.views = self._make_views()
        self.db = self._make_database()
        self.mailer = Mailer(self.config.section("mail"), self.views)
        self.notifications = self._make_notifications()
        self.csrf = CsrfTokenManager(self.config.get("app.key") or None)
        self.router = Router(self.views, resolver=self.container.make)
        self.router.alias_middleware("csrf", VerifyCsrfToken(self.csrf))

        self._middleware: List[Any] = []
        self._on_startup: List[Hook] = []
        self._on_shutdown: List[Hook] = []

        self._register_core_services()

    def path(self, relative: Union[str, Path]) -> Path:
        """Resolve a configured path against the application base path."""
        path = Path(relative)
        return path if path.is_absolute() else self.base_path / path

    def _make_views(self) -> NiacEngine:
        views = NiacEngine(
            paths=[self.path(p) for p in self.config.get_list("view.paths", ["views"])],
            cache_path=self.path(self.config.get("view.cache", "storage/views")),
            debug=self.debug,
            extension=self.config.get("view.extension", ".niac.html"),
            url=self.config.get("app.url", ""),
            asset_url=self.config.get("app.asset_url"),
        )
        views.add_namespace("mail", [self.path(p) for p in self.config.get_list("mail.markdown.paths")])
        views.share("app_name", self.config.get("app.name"))
        return views

    def _make_database(self) -> Optional[Database]:
        section = self.config.section("database")
        if not section.get("url") and not section.get("driver"):
            return None
        database = Database(config=DatabaseConfig.from_dict(section))
        Model.use(database)
        return database

    def _make_notifications(self) -> NotificationSender:
        sender = NotificationSender()
        sender.register_channel("mail", MailChannel(self.mailer))
        if self.db is not None:
            sender.register_channel("database", DatabaseChannel(self.db))
        Notifiable.use_sender(sender)
        return sender

    def _register_core_services(self) -> None:
        """Register framework core services."""
        services = {
            Application: self,
            Config: self.config,
            Router: self.router,
            NiacEngine: self.views,
            Mailer: self.mailer,
            NotificationSender: self.notifications,
            CsrfTokenManager: self.csrf,
        }
        if self.db is not None:
            services[Database] = self.db

        for cls, service in services.items():
            self.container.instance(cls, service)
        for name, cls in (
            ("app", Application),
            ("config", Config),
            ("router", Router),
            ("view", NiacEngine),
            ("mailer", Mailer),
            ("notifications", NotificationSender),
            ("csrf", CsrfTokenManager),
            ("db", Database),
        ):
            self.container.alias(name, cls)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(self):
        """
        Application lifespan context manager.

        Connects the database and runs startup hooks; on exit runs the
        shutdown hooks and closes the database.
        """
        start_time = time.perf_counter()

        try:
            if self.db is not None:
                await self.db.connect()
            for hook in self._on_startup:
                await hook()

            self.logger.info(
                f"Maniac started in {time.perf_counter() - start_time:.3f}s",
                debug=self.debug,
            )
            yield
        finally:
            for hook in self._on_shutdown:
                await hook()
            await self.mailer.close()
            if self.db is not None:
                await self.db.close()
            self.logger.info("Maniac shutdown complete")

    async def __call__(
        self,
        scope: Dict[str, Any],
        receive: Callable[[], Coroutine[Any, Any, Dict[str, Any]]],
        send: Callable[[Dict[str, Any]], Coroutine[Any, Any, None]],
    ) -> None:
        """ASGI application interface."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
        elif scope["type"] == "http":
            await self._handle_http(scope, receive, send)
        else:
            raise ValueError(f"Unsupported scope type: {scope['type']}")

    async def _handle_lifespan(self, scope: Dict[str, Any], receive: Callable, send: Callable) -> None:
        message = await receive()
        if message["type"] != "lifespan.startup":
            return

        try:
            async with self.lifespan():
                await send({"type": "lifespan.startup.complete"})
                while True:
                    message = await receive()
                    if message["type"] == "lifespan.shutdown":
                        break
        except Exception as exc:
            self.logger.critical("Application startup failed", exception=exc)
            await send({"type": "lifespan.startup.failed", "message": str(exc)})
            return
        await send({"type": "lifespan.shutdown.complete"})

    async def _handle_http(self, scope: Dict[str, Any], receive: Callable, send: Callable) -> None:
        """Handle an HTTP request through the global middleware and the router."""
        request = Request(scope, receive)
        token = current_request.set(request)
        try:
            await request.load()
            response = await Pipeline(self._middleware, resolver=self.container.make).run(
                request, self.router.dispatch
            )
        except HttpException as exc:
            response = self.router.error_response(request, exc.status_code, exc.message, exc)
        except Exception as exc:
            self.logger.error(
                "Request handling error",
                exception=exc,
                method=request.method,
                path=request.path,
            )
            response = self.router.error_response(request, 500, "Internal Server Error", exc)
        finally:
            current_request.reset(token)

        if request.original_method == "HEAD":
            response.body = b""
        await response.send(send)

    # ------------------------------------------------------------------
    # Registration shortcuts
    # ------------------------------------------------------------------

    def get(self, uri: str, action: Any = None, **kwargs: Any) -> Any:
        return self.router.get(uri, action, **kwargs)

    def post(self, uri: str, action: Any = None, **kwargs: Any) -> Any:
        return self.router.post(uri, action, **kwargs)

    def put(self, uri: str, action: Any = None, **kwargs: Any) -> Any:
        return self.router.put(uri, action, **kwargs)

    def patch(self, uri: str, action: Any = None, **kwargs: Any) -> Any:
        return self.router.patch(uri, action, **kwargs)

    def delete(self, uri: str, action: Any = None, **kwargs: Any) -> Any:
        return self.router.delete(uri, action, **kwargs)

    def use(self, middleware: Any) -> "Application":
        """Add global middleware, run for every request before routing."""
        self._middleware.append(middleware)
        return self

    def on_startup(self, func: Hook) -> Hook:
        self._on_startup.append(func)
        return func

    def on_shutdown(self, func: Hook) -> Hook:
        self._on_shutdown.append(func)
        return func

    def run(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        reload: bool = False,
        log_level: str = "info",
    ) -> None:
        """
        Run the application with uvicorn.

        For production, use an ASGI server directly:
            uvicorn app:app --host 0.0.0.0 --port 8000 --workers 4
        """
        import uvicorn

        uvicorn.run(self, host=host, port=port, reload=reload, log_level=log_level, lifespan="on")
