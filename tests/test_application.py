"""End-to-end tests of the ASGI application through httpx."""

from pathlib import Path

import httpx
import pytest

from maniac import Application
from maniac.core import ContainerError, HttpException, Request
from maniac.mail import Mailer
from maniac.orm import DatabaseDriver


class Chicken:
    def __init__(self, egg: "Egg"):
        self.egg = egg


class Egg:
    def __init__(self, chicken: Chicken):
        self.chicken = chicken


@pytest.fixture
def app(tmp_path: Path) -> Application:
    (tmp_path / "views").mkdir()
    return Application(
        base_path=tmp_path,
        config={
            "app": {"key": "test-key", "name": "Demo"},
            "database": {"url": "sqlite:///:memory:"},
            "view": {"paths": ["views"], "cache": "cache"},
            "mail": {"default": "array"},
        },
    )


@pytest.fixture
async def client(app: Application):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


class TestRequests:
    @pytest.mark.asyncio
    async def test_json_route(self, app, client):
        @app.get("/users/{id}")
        async def show(id: int):
            return {"id": id}

        response = await client.get("/users/12")
        assert response.status_code == 200
        assert response.json() == {"id": 12}

    @pytest.mark.asyncio
    async def test_view_route(self, app, client, tmp_path):
        (tmp_path / "views" / "welcome.niac.html").write_text("<h1>{{ app_name }}: {{ who }}</h1>")
        app.get("/", lambda: app.views.render("welcome", {"who": "<you>"}))

        response = await client.get("/")
        assert response.text == "<h1>Demo: &lt;you&gt;</h1>"
        assert response.headers["content-type"].startswith("text/html")

    @pytest.mark.asyncio
    async def test_not_found(self, client):
        response = await client.get("/nope")
        assert response.status_code == 404
        assert "Page Not Found" in response.text

    @pytest.mark.asyncio
    async def test_not_found_json(self, client):
        response = await client.get("/nope", headers={"Accept": "application/json"})
        assert response.status_code == 404
        assert response.json() == {"message": "Page Not Found"}

    @pytest.mark.asyncio
    async def test_custom_error_view(self, client, tmp_path):
        errors = tmp_path / "views" / "errors"
        errors.mkdir()
        (errors / "404.niac.html").write_text("Lost: {{ message }}")
        response = await client.get("/nope")
        assert response.text == "Lost: Page Not Found"

    @pytest.mark.asyncio
    async def test_http_exception_status_and_headers(self, app, client):
        @app.get("/limited")
        async def limited():
            raise HttpException(429, "Slow down", headers={"Retry-After": "60"})

        response = await client.get("/limited")
        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"

    @pytest.mark.asyncio
    async def test_unhandled_error_is_500(self, app, client):
        @app.get("/boom")
        async def boom():
            raise RuntimeError("boom")

        response = await client.get("/boom")
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_head_has_no_body(self, app, client):
        app.get("/page", lambda: "content")
        response = await client.head("/page")
        assert response.status_code == 200
        assert response.content == b""

    @pytest.mark.asyncio
    async def test_method_override(self, app, client):
        @app.put("/posts/{id}")
        async def update(request: Request, id: int):
            return {"id": id, "method": request.method, "title": request.input("title")}

        response = await client.post("/posts/3", data={"_method": "PUT", "title": "New"})
        assert response.json() == {"id": 3, "method": "PUT", "title": "New"}

    @pytest.mark.asyncio
    async def test_global_middleware(self, app, client):
        async def powered_by(request, call_next):
            response = await call_next(request)
            response.headers["X-Powered-By"] = "Maniac"
            return response

        app.use(powered_by)
        app.get("/", lambda: "home")
        response = await client.get("/")
        assert response.headers["x-powered-by"] == "Maniac"

    @pytest.mark.asyncio
    async def test_controller_built_by_container(self, app, client):
        class MailController:
            def __init__(self, mailer: Mailer):
                self.mailer = mailer

            async def index(self):
                return {"default": self.mailer.default}

        app.get("/mail", (MailController, "index"))
        response = await client.get("/mail")
        assert response.json() == {"default": "array"}


class TestCsrf:
    @pytest.fixture
    def routes(self, app, tmp_path):
        (tmp_path / "views" / "form.niac.html").write_text("<form>@csrf</form>")
        app.get("/form", lambda: app.views.render("form"), middleware=["csrf"])
        app.post("/submit", lambda: {"saved": True}, middleware=["csrf"])

    @pytest.mark.asyncio
    async def test_form_contains_token_and_cookie(self, routes, client):
        response = await client.get("/form")
        token = response.cookies["XSRF-TOKEN"]
        assert f'name="_token" value="{token}"' in response.text

    @pytest.mark.asyncio
    async def test_post_without_token_is_rejected(self, routes, client):
        response = await client.post("/submit", headers={"Accept": "application/json"})
        assert response.status_code == 419
        assert response.json() == {"message": "CSRF token mismatch."}

    @pytest.mark.asyncio
    async def test_post_with_header_token(self, routes, client):
        token = (await client.get("/form")).cookies["XSRF-TOKEN"]
        response = await client.post("/submit", headers={"X-CSRF-TOKEN": token})
        assert response.status_code == 200
        assert response.json() == {"saved": True}

    @pytest.mark.asyncio
    async def test_post_with_form_token(self, routes, client):
        token = (await client.get("/form")).cookies["XSRF-TOKEN"]
        response = await client.post("/submit", data={"_token": token})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_forged_token_is_rejected(self, routes, client):
        await client.get("/form")
        response = await client.post("/submit", headers={"X-CSRF-TOKEN": "1.abc.def"})
        assert response.status_code == 419


class TestContainer:
    def test_core_services_are_registered(self, app):
        assert app.container.make("app") is app
        assert app.container.make("mailer") is app.mailer
        assert app.container.make("view") is app.views
        assert app.container.make("db") is app.db

    def test_singleton_binding(self, app):
        app.container.singleton("counter", lambda: object())
        assert app.container.make("counter") is app.container.make("counter")

    def test_bind_creates_new_instances(self, app):
        app.container.bind("thing", lambda: object())
        assert app.container.make("thing") is not app.container.make("thing")

    def test_unknown_service(self, app):
        with pytest.raises(ContainerError, match="not registered"):
            app.container.make("missing")

    def test_unresolvable_parameter(self, app):
        class NeedsSecret:
            def __init__(self, secret: str):
                self.secret = secret

        with pytest.raises(ContainerError, match="Unresolvable dependency \\[secret\\]"):
            app.container.make(NeedsSecret)

    def test_circular_dependency(self, app):
        with pytest.raises(ContainerError, match="Circular dependency"):
            app.container.make(Chicken)


class TestDatabaseDefaults:
    def test_sqlite_file_by_default(self, tmp_path):
        app = Application(base_path=tmp_path)
        assert app.db is not None
        assert app.db.config.driver is DatabaseDriver.SQLITE
        assert app.container.make("db") is app.db

    def test_empty_url_disables_database(self, tmp_path):
        app = Application(base_path=tmp_path, config={"database": {"url": ""}})
        assert app.db is None


class TestLifespan:
    @pytest.mark.asyncio
    async def test_hooks_and_database(self, app):
        events = []

        @app.on_startup
        async def started():
            events.append("start")

        @app.on_shutdown
        async def stopped():
            events.append("stop")

        async with app.lifespan():
            assert events == ["start"]
            assert app.db.connected
        assert not app.db.connected
        assert events == ["start", "stop"]
