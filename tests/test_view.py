"""Tests for the Niac lexer, parser and engine."""

import os
from pathlib import Path

import pytest

from maniac.view import (
    HtmlString,
    LayoutNotFoundError,
    NiacEngine,
    NiacLexer,
    NiacParser,
    NodeType,
    SectionMismatchError,
    TemplateSyntaxError,
    TokenType,
    ViewNotFoundError,
    ViewRenderError,
)


@pytest.fixture
def views(tmp_path: Path) -> Path:
    path = tmp_path / "views"
    path.mkdir()
    return path


@pytest.fixture
def engine(views: Path, tmp_path: Path) -> NiacEngine:
    return NiacEngine(views, tmp_path / "cache")


def write(views: Path, name: str, source: str) -> None:
    path = views / (name.replace(".", "/") + ".niac.html")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")


class TestLexer:
    def test_comments_are_dropped(self):
        tokens = NiacLexer("a{--- hidden {{ x }} ---}b").tokenize()
        assert [t.type for t in tokens] == [TokenType.TEXT, TokenType.EOF]
        assert tokens[0].value == "ab"

    def test_escaped_echo_is_literal(self):
        tokens = NiacLexer("@{{ name }}").tokenize()
        assert tokens[0].type is TokenType.TEXT
        assert tokens[0].value == "{{ name }}"

    def test_double_at_is_literal(self):
        tokens = NiacLexer("@@if").tokenize()
        assert tokens[0].value == "@if"

    def test_email_addresses_are_text(self):
        tokens = NiacLexer("mail me@example.com").tokenize()
        assert [t.type for t in tokens] == [TokenType.TEXT, TokenType.EOF]

    def test_openers_after_a_word_are_text(self):
        tokens = NiacLexer("ping ops@include.dev").tokenize()
        assert tokens[0].value == "ping ops@include.dev"

    def test_closers_after_a_word_are_directives(self):
        tokens = NiacLexer("A@endsection").tokenize()
        assert [(t.type, t.value) for t in tokens[:2]] == [(TokenType.TEXT, "A"), (TokenType.DIRECTIVE, "endsection")]

    def test_directive_arguments_keep_nested_parens(self):
        tokens = NiacLexer("@if(len(items) > 0)").tokenize()
        assert tokens[0].value == "if"
        assert tokens[0].args == "len(items) > 0"

    def test_unterminated_echo(self):
        with pytest.raises(TemplateSyntaxError, match="Unterminated echo"):
            NiacLexer("line\n{{ name").tokenize()

    def test_line_numbers(self):
        tokens = NiacLexer("a\nb\n{{ c }}").tokenize()
        assert tokens[1].type is TokenType.ECHO
        assert tokens[1].line == 3


class TestParser:
    def test_if_chain(self):
        ast = NiacParser().parse("@if(a) 1 @elseif(b) 2 @else 3 @endif")
        node = ast.root.children[0]
        assert node.type is NodeType.IF
        assert [condition for condition, _ in node.branches] == ["a", "b", None]

    def test_foreach_key_value(self):
        node = NiacParser().parse("@foreach(prices as name => price)@endforeach").root.children[0]
        assert node.target == "name, price"
        assert node.iterable == "prices"
        assert node.pairs

    def test_foreach_python_spelling(self):
        node = NiacParser().parse("@foreach(item in items)@endforeach").root.children[0]
        assert (node.target, node.iterable, node.pairs) == ("item", "items", False)

    def test_extends_is_recorded(self):
        ast = NiacParser().parse("@extends('layouts.app')")
        assert ast.layout == "'layouts.app'"
        assert ast.layout_line == 1

    def test_second_extends_is_rejected(self):
        with pytest.raises(TemplateSyntaxError, match="one layout"):
            NiacParser().parse("@extends('a')\n@extends('b')")

    def test_unexpected_closer_reports_line(self):
        with pytest.raises(TemplateSyntaxError) as info:
            NiacParser("page.niac.html").parse("a\nb\n@endif\n")
        assert info.value.line == 3
        assert "outside of @if" in str(info.value)

    def test_unclosed_block(self):
        with pytest.raises(TemplateSyntaxError, match="expected @endforeach"):
            NiacParser().parse("@foreach(items as item)\n{{ item }}")

    def test_unclosed_section(self):
        with pytest.raises(SectionMismatchError):
            NiacParser().parse("@section('content')\n<p>body</p>\n")

    def test_stray_endsection(self):
        with pytest.raises(SectionMismatchError):
            NiacParser().parse("<p>body</p>\n@endsection")

    def test_invalid_expression(self):
        with pytest.raises(TemplateSyntaxError, match="Invalid expression"):
            NiacParser().parse("{{ 1 + }}")

    def test_break_outside_loop(self):
        with pytest.raises(TemplateSyntaxError, match="@break outside"):
            NiacParser().parse("@break")

    def test_method_only_accepts_form_verbs(self):
        with pytest.raises(TemplateSyntaxError):
            NiacParser().parse("@method('GET')")


class TestRendering:
    def test_echo_escapes_and_raw_does_not(self, engine, views):
        write(views, "echo", "{{ value }}|{!! value !!}")
        assert engine.render("echo", {"value": "<b>"}) == "&lt;b&gt;|<b>"

    def test_none_renders_empty(self, engine, views):
        write(views, "none", "[{{ value }}]")
        assert engine.render("none", {"value": None}) == "[]"

    def test_html_string_is_not_escaped_again(self, engine, views):
        write(views, "safe", "{{ value }}")
        assert engine.render("safe", {"value": HtmlString("<i>x</i>")}) == "<i>x</i>"

    def test_escaped_echo_and_comment(self, engine, views):
        write(views, "literal", "@{{ name }}{--- note ---}")
        assert engine.render("literal", {"name": "x"}) == "{{ name }}"

    def test_shared_data(self, engine, views):
        write(views, "shared", "{{ app_name }}")
        engine.share("app_name", "Maniac")
        assert engine.render("shared") == "Maniac"

    def test_if_else(self, engine, views):
        write(views, "cond", "@if(count > 1)\nmany\n@elseif(count == 1)\none\n@else\nnone\n@endif\n")
        assert engine.render("cond", {"count": 5}) == "many\n"
        assert engine.render("cond", {"count": 1}) == "one\n"
        assert engine.render("cond", {"count": 0}) == "none\n"

    def test_foreach_loop_variable(self, engine, views):
        write(
            views, "list",
            "@foreach(items as item)\n{{ loop.iteration }}:{{ item }}@if(not loop.last),@endif\n@endforeach\n",
        )
        assert engine.render("list", {"items": ["a", "b", "c"]}) == "1:a,2:b,3:c"

    def test_forelse(self, engine, views):
        write(
            views, "forelse",
            "@forelse(items as item)\n<li>{{ item }}</li>\n@empty\n<li>none</li>\n@endforelse\n",
        )
        assert engine.render("forelse", {"items": ["a", "b"]}) == "<li>a</li>\n<li>b</li>\n"
        assert engine.render("forelse", {"items": []}) == "<li>none</li>\n"

    def test_switch_groups_cases(self, engine, views):
        write(
            views, "switch",
            "@switch(role)\n@case('admin')\nAdmin\n@break\n"
            "@case('editor')\n@case('author')\nWriter\n@break\n"
            "@default\nGuest\n@endswitch\n",
        )
        assert engine.render("switch", {"role": "admin"}) == "Admin\n"
        assert engine.render("switch", {"role": "editor"}) == "Writer\n"
        assert engine.render("switch", {"role": "author"}) == "Writer\n"
        assert engine.render("switch", {"role": "visitor"}) == "Guest\n"

    def test_isset_and_empty(self, engine, views):
        write(views, "checks", "@isset(user['name'])\nset\n@endisset\n@empty(tags)\nno tags\n@endempty\n")
        assert engine.render("checks", {"user": {}, "tags": []}) == "no tags\n"
        assert engine.render("checks", {"user": {"name": "x"}, "tags": ["a"]}) == "set\n"

    def test_php_block(self, engine, views):
        write(views, "php", "@php\ntotal = sum(values)\n@endphp{{ total }}")
        assert engine.render("php", {"values": [1, 2, 3]}) == "6"

    def test_asset_uses_asset_url_then_app_url(self, views, tmp_path):
        write(views, "assets", "<link href=\"@asset('/css/app.css')\">")

        engine = NiacEngine(views, tmp_path / "cache", url="https://example.com/")
        assert engine.render("assets") == '<link href="https://example.com/css/app.css">'

        engine = NiacEngine(views, tmp_path / "cache", url="https://example.com", asset_url="https://cdn.example.com/")
        assert engine.render("assets") == '<link href="https://cdn.example.com/css/app.css">'

    def test_method_field(self, engine, views):
        write(views, "form", "@method('put')")
        assert engine.render("form") == '<input type="hidden" name="_method" value="PUT">'

    def test_csrf_without_request(self, engine, views):
        write(views, "csrf", "@csrf")
        assert engine.render("csrf") == "<!-- CSRF field unavailable -->"

    def test_missing_view(self, engine):
        with pytest.raises(ViewNotFoundError):
            engine.render("nope")

    def test_render_error_reports_template_line(self, engine, views):
        write(views, "broken", "<p>ok</p>\n{{ missing_name }}\n")
        with pytest.raises(ViewRenderError) as info:
            engine.render("broken")
        assert info.value.line == 2
        assert "missing_name" in str(info.value)


class TestLayouts:
    def test_sections_and_yield(self, engine, views):
        write(views, "layouts.app", "<title>@yield('title', 'Default')</title><main>@yield('content')</main>")
        write(
            views, "home",
            "@extends('layouts.app')\n@section('title', 'Home')\n"
            "@section('content')\n<p>Hi {{ name }}</p>\n@endsection\n",
        )
        html = engine.render("home", {"name": "Ada"})
        assert html == "<title>Home</title><main>\n<p>Hi Ada</p>\n</main>"

    def test_sections_do_not_leak_between_renders(self, engine, views):
        write(views, "defines", "@section('x')leaked@endsection")
        write(views, "uses", "@yield('x', 'd')")
        engine.render("defines")
        assert engine.render("uses") == "d"

    def test_redefined_section_in_one_view_replaces_the_first(self, engine, views):
        write(views, "layouts.app", "[@yield('x')]")
        write(views, "page", "@extends('layouts.app')\n@section('x', 'first')\n@section('x', 'second')")
        assert engine.render("page") == "[second]"

    def test_child_section_wins_over_layout_section(self, engine, views):
        write(views, "layouts.app", "@section('x')layout@endsection[@yield('x')]")
        write(views, "page", "@extends('layouts.app')\n@section('x', 'child')")
        assert engine.render("page") == "[child]"

    def test_yield_default_is_escaped(self, engine, views):
        write(views, "layouts.app", "@yield('title', '<Default>')")
        write(views, "bare", "@extends('layouts.app')")
        assert engine.render("bare") == "&lt;Default&gt;"

    def test_output_outside_sections_is_dropped(self, engine, views):
        write(views, "layouts.app", "[@yield('content')]")
        write(views, "loose", "@extends('layouts.app')\nstray text\n@section('content')\nbody\n@endsection")
        assert engine.render("loose") == "[\nbody\n]"

    def test_section_closer_directly_after_text(self, engine, views):
        write(views, "inline", "@section('x')A@endsection @yield('x')")
        assert engine.render("inline") == "A"

    def test_missing_layout(self, engine, views):
        write(views, "orphan", "@extends('layouts.missing')\n@section('content')\nx\n@endsection")
        with pytest.raises(LayoutNotFoundError):
            engine.render("orphan")

    def test_include_merges_data(self, engine, views):
        write(views, "partials.greeting", "Hello {{ name }} from {{ city }}")
        write(views, "page", "@include('partials.greeting', {'name': 'Bob'})")
        assert engine.render("page", {"name": "Ann", "city": "Oslo"}) == "Hello Bob from Oslo"

    def test_component_with_slots(self, engine, views):
        write(views, "components.alert", '<div class="alert {{ type }}"><h4>{{ title }}</h4>{{ slot }}</div>')
        write(
            views, "page",
            "@component('components.alert', {'type': 'danger'})\n"
            "@slot('title') Oops @endslot\n<p>Broken</p>\n@endcomponent",
        )
        assert engine.render("page") == '<div class="alert danger"><h4>Oops</h4><p>Broken</p></div>'

    def test_title_and_meta(self, engine, views):
        write(views, "layouts.meta", "{{ __engine.get_title('Site') }}|{!! __engine.render_meta_tags() !!}")
        write(views, "article", "@extends('layouts.meta')\n@title('Post')\n@meta('author', 'Ann')")
        assert engine.render("article") == 'Post|<meta name="author" content="Ann">'


class TestCache:
    def test_compiled_views_are_cached(self, engine, views, tmp_path):
        write(views, "cached", "Hello {{ name }}")
        first = engine.render("cached", {"name": "a"})
        compiled = list((tmp_path / "cache").glob("*.py"))
        assert len(compiled) == 1

        assert engine.render("cached", {"name": "a"}) == first
        assert list((tmp_path / "cache").glob("*.py")) == compiled

    def test_recompiling_gives_the_same_output(self, engine, views, tmp_path):
        write(views, "stable", "@foreach(items as item){{ loop.iteration }}={{ item }};@endforeach")
        cached = engine.render("stable", {"items": ["a", "<b>"]})
        fresh = NiacEngine(views, tmp_path / "cache", debug=True)
        assert fresh.render("stable", {"items": ["a", "<b>"]}) == cached == "1=a;2=&lt;b&gt;;"

    def test_changed_source_is_recompiled(self, engine, views):
        write(views, "edited", "v1")
        assert engine.render("edited") == "v1"

        write(views, "edited", "v2")
        cache_file = next(engine.cache_path.glob("*.py"))
        later = cache_file.stat().st_mtime + 10
        os.utime(views / "edited.niac.html", (later, later))
        assert engine.render("edited") == "v2"

    def test_clear_cache(self, engine, views):
        write(views, "cached", "x")
        engine.render("cached")
        assert engine.clear_cache() == 1
        assert engine.clear_cache() == 0

    def test_namespaced_views(self, engine, tmp_path):
        mail = tmp_path / "mail"
        mail.mkdir()
        write(mail, "button", "<a>{{ label }}</a>")
        engine.add_namespace("mail", mail)
        assert engine.render("mail::button", {"label": "Go"}) == "<a>Go</a>"


class TestErrorPages:
    def test_error_view_is_used(self, engine, views):
        write(views, "errors.404", "Missing: {{ message }}")
        assert engine.render_error_page(404, "No such page") == "Missing: No such page"

    def test_default_error_view(self, engine, views):
        write(views, "errors.default", "{{ status }} {{ title }}")
        assert engine.render_error_page(403) == "403 Forbidden"

    def test_hard_coded_fallback(self, engine):
        html = engine.render_error_page(500)
        assert "<h1>500" in html

    def test_debug_page_shows_exception(self, views, tmp_path):
        engine = NiacEngine(views, tmp_path / "cache", debug=True)
        html = engine.render_error_page(500, exception=RuntimeError("boom <now>"))
        assert "RuntimeError: boom &lt;now&gt;" in html
