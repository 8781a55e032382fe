"""Tests for route matching, argument injection and dispatch."""

import orjson
import pytest

from maniac.core import (
    HTMLResponse,
    JSONResponse,
    Request,
    Router,
    ValidationException,
)
from maniac.core.exceptions import RouteActionError


def make_request(method: str = "GET", path: str = "/", headers=None) -> Request:
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    })


async def noop(request):
    return "ok"


class TestMatching:
    def test_static_route(self):
        router = Router()
        router.get("/about", noop)
        route, params = router.find("GET", "/about/")
        assert route.uri == "/about"
        assert params == {}

    def test_parameters_are_captured(self):
        router = Router()
        router.get("/posts/{post}/comments/{comment}", noop)
        _, params = router.find("GET", "/posts/7/comments/42")
        assert params == {"post": "7", "comment": "42"}

    def test_parameter_does_not_span_segments(self):
        router = Router()
        router.get("/files/{name}", noop)
        assert router.find("GET", "/files/a/b") is None

    def test_literal_route_wins_over_earlier_parameter_route(self):
        router = Router()
        router.get("/users/{id}", noop)
        router.get("/users/me", noop)
        route, _ = router.find("GET", "/users/me")
        assert route.uri == "/users/me"

    def test_parameter_routes_in_registration_order(self):
        router = Router()
        first = router.get("/{page}", noop)
        router.get("/{slug}", noop)
        assert router.find("GET", "/home")[0] is first

    def test_head_falls_back_to_get(self):
        router = Router()
        router.get("/", noop)
        assert router.find("HEAD", "/") is not None

    def test_method_must_match(self):
        router = Router()
        router.post("/login", noop)
        assert router.find("GET", "/login") is None

    def test_unsupported_method(self):
        with pytest.raises(RouteActionError):
            Router().add_route("TRACE", "/", noop)


class TestGroupsAndNames:
    def test_group_prefix_middleware_and_name(self):
        router = Router()
        with router.group(prefix="/admin", middleware=["auth"], name="admin."):
            router.get("/users/{id}", noop, name="users.show")

        route = router.named("admin.users.show")
        assert route.uri == "/admin/users/{id}"
        assert route.middlewares == ["auth"]
        assert router.url_for("admin.users.show", id=3) == "/admin/users/3"

    def test_fluent_name(self):
        router = Router()
        router.get("/", noop).name("home")
        assert router.url_for("home") == "/"

    def test_missing_url_parameter(self):
        router = Router()
        router.get("/users/{id}", noop, name="users.show")
        with pytest.raises(RouteActionError, match="id"):
            router.url_for("users.show")

    def test_unknown_route_name(self):
        with pytest.raises(RouteActionError):
            Router().named("nope")

    def test_decorator_registration(self):
        router = Router()

        @router.get("/hello")
        async def hello(request):
            return "hi"

        assert router.find("GET", "/hello")[0].action is hello


class TestDispatch:
    @pytest.mark.asyncio
    async def test_parameters_are_injected_and_converted(self):
        router = Router()

        @router.get("/users/{id}")
        async def show(request: Request, id: int):
            return {"id": id, "path": request.path}

        response = await router.dispatch(make_request(path="/users/5"))
        assert isinstance(response, JSONResponse)
        assert orjson.loads(response.body) == {"id": 5, "path": "/users/5"}

    @pytest.mark.asyncio
    async def test_unconvertible_parameter_is_not_found(self):
        router = Router()

        @router.get("/users/{id}")
        async def show(id: int):
            return {"id": id}

        response = await router.dispatch(make_request(path="/users/abc"))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_sync_actions_and_status_tuples(self):
        router = Router()
        router.post("/items", lambda request: ({"created": True}, 201))
        response = await router.dispatch(make_request("POST", "/items"))
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_strings_become_html_and_none_is_no_content(self):
        router = Router()
        router.get("/text", lambda: "<p>hi</p>")
        router.get("/empty", lambda: None)

        html = await router.dispatch(make_request(path="/text"))
        assert isinstance(html, HTMLResponse)
        assert html.text == "<p>hi</p>"
        assert (await router.dispatch(make_request(path="/empty"))).status_code == 204

    @pytest.mark.asyncio
    async def test_controller_action(self):
        class PageController:
            async def show(self, slug: str):
                return f"page {slug}"

        router = Router()
        router.get("/pages/{slug}", (PageController, "show"))
        response = await router.dispatch(make_request(path="/pages/about"))
        assert response.text == "page about"

    @pytest.mark.asyncio
    async def test_not_found_html(self):
        response = await Router().dispatch(make_request(path="/missing"))
        assert response.status_code == 404
        assert "Page Not Found" in response.text

    @pytest.mark.asyncio
    async def test_not_found_json(self):
        request = make_request(path="/missing", headers={"Accept": "application/json"})
        response = await Router().dispatch(request)
        assert response.status_code == 404
        assert orjson.loads(response.body) == {"message": "Page Not Found"}

    @pytest.mark.asyncio
    async def test_validation_errors_as_json(self):
        router = Router()

        @router.post("/register")
        async def register(request):
            raise ValidationException({"email": ["The email field is required."]})

        request = make_request("POST", "/register", headers={"Accept": "application/json"})
        response = await router.dispatch(request)
        assert response.status_code == 422
        assert orjson.loads(response.body) == {
            "message": "The given data was invalid.",
            "errors": {"email": ["The email field is required."]},
        }

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self):
        router = Router()

        @router.get("/boom")
        async def boom():
            raise RuntimeError("boom")

        response = await router.dispatch(make_request(path="/boom"))
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_route_middleware_alias(self):
        router = Router()
        calls = []

        async def tag(request, call_next):
            calls.append(request.path)
            response = await call_next(request)
            response.headers["X-Tag"] = "yes"
            return response

        router.alias_middleware("tag", tag)
        router.get("/tagged", noop, middleware=["tag"])
        response = await router.dispatch(make_request(path="/tagged"))
        assert response.headers["X-Tag"] == "yes"
        assert calls == ["/tagged"]

    @pytest.mark.asyncio
    async def test_unknown_middleware_alias_is_500(self):
        router = Router()
        router.get("/", noop, middleware=["missing"])
        response = await router.dispatch(make_request())
        assert response.status_code == 500
