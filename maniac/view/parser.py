"""
Niac Parser
===========

Recursive-descent parser turning the lexer's token stream into a tree of
``Node`` objects. Every block directive must be closed by its matching end
directive; anything else is a ``TemplateSyntaxError`` reported with the
template line.

Expressions are Python. Directive arguments are split with the Python
parser itself, so ``@include('card', {'title': t, 'tags': [a, b]})`` has
exactly two arguments.

Loop headers accept three spellings:

    @foreach(items as item)
    @foreach(prices as name => price)
    @foreach(item in items)
"""

from __future__ import annotations

import ast
import re
import textwrap
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import FrozenSet, List, Optional, Tuple

from maniac.view.exceptions import SectionMismatchError, TemplateSyntaxError
from maniac.view.lexer import NiacLexer, Token, TokenType


class NodeType(Enum):
    """AST node types."""
    ROOT = auto()
    TEXT = auto()
    ECHO = auto()
    RAW_ECHO = auto()
    PYTHON = auto()
    IF = auto()
    FOREACH = auto()
    FORELSE = auto()
    FOR = auto()
    WHILE = auto()
    SWITCH = auto()
    BREAK = auto()
    CONTINUE = auto()
    SECTION = auto()
    YIELD = auto()
    INCLUDE = auto()
    COMPONENT = auto()
    SLOT = auto()
    CSRF = auto()
    METHOD = auto()
    ASSET = auto()
    TITLE = auto()
    META = auto()


@dataclass
class Node:
    """
    AST node for Niac templates.

    ``branches`` holds ``(condition, body)`` pairs for ``@if`` chains and
    ``(case values, body)`` pairs for ``@switch``; a ``None`` condition is
    the ``@else``/``@default`` branch. ``alternate`` is the ``@empty`` body
    of a ``@forelse``.
    """
    type: NodeType
    content: Optional[str] = None
    args: List[str] = field(default_factory=list)
    target: Optional[str] = None
    iterable: Optional[str] = None
    pairs: bool = False
    children: List["Node"] = field(default_factory=list)
    branches: List[Tuple[Optional[object], List["Node"]]] = field(default_factory=list)
    alternate: List["Node"] = field(default_factory=list)
    line: int = 0

    def find_by_type(self, node_type: NodeType) -> List["Node"]:
        """Find all descendant nodes with given type."""
        results = [self] if self.type == node_type else []
        for child in self._descendants():
            results.extend(child.find_by_type(node_type))
        return results

    def _descendants(self) -> List["Node"]:
        nodes = list(self.children)
        for _, body in self.branches:
            nodes.extend(body)
        nodes.extend(self.alternate)
        return nodes


@dataclass
class TemplateAST:
    """Parsed template plus the directives that apply to the whole file."""
    root: Node
    layout: Optional[str] = None
    layout_line: int = 0
    metadata: List[Node] = field(default_factory=list)


_AS_SPEC = re.compile(r"^(?P<iterable>.+)\s+as\s+(?P<target>.+)$", re.S)

# Closing directive -> the opening directive it belongs to
_CLOSERS = {
    "elseif": "if", "else": "if", "endif": "if",
    "endforeach": "foreach", "endforelse": "forelse", "endfor": "for",
    "endwhile": "while", "endisset": "isset", "endempty": "empty",
    "case": "switch", "default": "switch", "endswitch": "switch",
    "endcomponent": "component",
}


class NiacParser:
    """
    Parser for Niac templates.

    Example:
        ast = NiacParser("home.niac.html").parse(source)
        ast.root.find_by_type(NodeType.ECHO)
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self.tokens: List[Token] = []
        self.pos = 0
        self._contexts: List[str] = []
        self._layout: Optional[str] = None
        self._layout_line = 0
        self._metadata: List[Node] = []

    def parse(self, source: str) -> TemplateAST:
        """
        Parse template source into an AST.

        Raises:
            TemplateSyntaxError: Malformed or unbalanced directives
            SectionMismatchError: Unbalanced section or slot
        """
        self.tokens = NiacLexer(source, self.path).tokenize()
        self.pos = 0
        self._contexts = []
        self._layout = None
        self._metadata = []

        children, _ = self._parse_block(frozenset())
        return TemplateAST(
            root=Node(NodeType.ROOT, children=children),
            layout=self._layout,
            layout_line=self._layout_line,
            metadata=self._metadata,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, line: int) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, self.path, line)

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.type is not TokenType.EOF:
            self.pos += 1
        return token

    def _split_args(self, token: Token, minimum: int, maximum: int) -> List[str]:
        wrapper = f"f({token.args})"
        try:
            call = ast.parse(wrapper, mode="eval").body
        except SyntaxError as exc:
            raise self._error(f"Invalid arguments for @{token.value}: {exc.msg}", token.line) from None
        if call.keywords or not minimum <= len(call.args) <= maximum:
            expected = str(minimum) if minimum == maximum else f"{minimum} to {maximum}"
            raise self._error(f"@{token.value} expects {expected} positional argument(s)", token.line)
        return [ast.get_source_segment(wrapper, arg) for arg in call.args]

    def _expression(self, source: str, line: int, what: str = "expression") -> str:
        try:
            ast.parse(source.strip(), mode="eval")
        except SyntaxError as exc:
            raise self._error(f"Invalid {what} '{source.strip()}': {exc.msg}", line) from None
        return source.strip()

    def _loop_header(self, token: Token) -> Tuple[str, str, bool]:
        """Return ``(target, iterable, pairs)`` for a loop directive."""
        text = token.args or ""
        pairs = False
        match = _AS_SPEC.match(text)
        if match:
            iterable = match.group("iterable").strip()
            target = match.group("target").strip()
            if "=>" in target:
                key, value = (part.strip() for part in target.split("=>", 1))
                target = f"{key}, {value}"
                pairs = True
        else:
            try:
                loop = ast.parse(f"for {text}:\n    pass").body[0]
            except SyntaxError as exc:
                raise self._error(f"Invalid loop header '{text}': {exc.msg}", token.line) from None
            source = f"for {text}:\n    pass"
            target = ast.get_source_segment(source, loop.target)
            iterable = ast.get_source_segment(source, loop.iter)

        try:
            ast.parse(f"for {target} in ({iterable}):\n    pass")
        except SyntaxError as exc:
            raise self._error(f"Invalid loop header '{text}': {exc.msg}", token.line) from None
        return target, iterable, pairs

    @staticmethod
    def _is_blank(nodes: List[Node]) -> bool:
        return all(node.type is NodeType.TEXT and not node.content.strip() for node in nodes)

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def _parse_block(self, terminators: FrozenSet[str]) -> Tuple[List[Node], Optional[Token]]:
        nodes: List[Node] = []
        while True:
            token = self._advance()
            if token.type is TokenType.EOF:
                if terminators:
                    expected = " or ".join(f"@{name}" for name in sorted(terminators))
                    if terminators & {"endsection", "endslot"}:
                        raise SectionMismatchError(f"Unclosed section, expected {expected}", self.path, token.line)
                    raise self._error(f"Unexpected end of template, expected {expected}", token.line)
                return nodes, None

            if token.type is TokenType.DIRECTIVE and token.value in terminators:
                # ``@empty(expr)`` inside a forelse body opens its own block
                if not (token.value == "empty" and token.args is not None):
                    return nodes, token

            node = self._parse_token(token)
            if node is not None:
                nodes.append(node)

    def _parse_token(self, token: Token) -> Optional[Node]:
        if token.type is TokenType.TEXT:
            return Node(NodeType.TEXT, content=token.value, line=token.line)
        if token.type is TokenType.ECHO:
            return Node(NodeType.ECHO, content=self._expression(token.value, token.line), line=token.line)
        if token.type is TokenType.RAW_ECHO:
            return Node(NodeType.RAW_ECHO, content=self._expression(token.value, token.line), line=token.line)
        if token.type is TokenType.PYTHON:
            return self._parse_python(token)

        handler = getattr(self, f"_parse_{token.value}", None)
        if handler is None:
            if token.value in ("endsection", "endslot"):
                raise SectionMismatchError(f"@{token.value} without a matching opening directive", self.path, token.line)
            opener = _CLOSERS.get(token.value, token.value)
            raise self._error(f"Unexpected @{token.value} outside of @{opener}", token.line)
        return handler(token)

    def _parse_python(self, token: Token) -> Node:
        code = textwrap.dedent(token.value).strip("\n")
        try:
            ast.parse(code)
        except SyntaxError as exc:
            line = token.line + (exc.lineno or 1) - 1
            raise self._error(f"Invalid Python in @php block: {exc.msg}", line) from None
        return Node(NodeType.PYTHON, content=code, line=token.line)

    def _conditional(self, token: Token, condition: str, end: str) -> Node:
        node = Node(NodeType.IF, line=token.line)
        terminators = frozenset({"elseif", "else", end})
        while True:
            body, closing = self._parse_block(terminators)
            node.branches.append((condition, body))
            if closing.value == "elseif":
                condition = self._expression(self._split_args(closing, 1, 1)[0], closing.line, "condition")
                continue
            if closing.value == "else":
                body, _ = self._parse_block(frozenset({end}))
                node.branches.append((None, body))
            return node

    def _parse_if(self, token: Token) -> Node:
        condition = self._expression(self._split_args(token, 1, 1)[0], token.line, "condition")
        return self._conditional(token, condition, "endif")

    def _parse_isset(self, token: Token) -> Node:
        expression = self._expression(self._split_args(token, 1, 1)[0], token.line)
        return self._conditional(token, f"__isset(lambda: ({expression}))", "endisset")

    def _parse_empty(self, token: Token) -> Node:
        if token.args is None:
            raise self._error("Unexpected @empty outside of @forelse", token.line)
        expression = self._expression(self._split_args(token, 1, 1)[0], token.line)
        return self._conditional(token, f"__empty(lambda: ({expression}))", "endempty")

    def _loop(self, token: Token, type: NodeType, terminators: FrozenSet[str]) -> Tuple[Node, Optional[Token]]:
        target, iterable, pairs = self._loop_header(token)
        node = Node(type, target=target, iterable=iterable, pairs=pairs, line=token.line)
        self._contexts.append("loop")
        try:
            node.children, closing = self._parse_block(terminators)
        finally:
            self._contexts.pop()
        return node, closing

    def _parse_foreach(self, token: Token) -> Node:
        return self._loop(token, NodeType.FOREACH, frozenset({"endforeach"}))[0]

    def _parse_for(self, token: Token) -> Node:
        return self._loop(token, NodeType.FOR, frozenset({"endfor"}))[0]

    def _parse_forelse(self, token: Token) -> Node:
        node, closing = self._loop(token, NodeType.FORELSE, frozenset({"empty", "endforelse"}))
        if closing.value == "empty":
            node.alternate, _ = self._parse_block(frozenset({"endforelse"}))
        return node

    def _parse_while(self, token: Token) -> Node:
        condition = self._expression(self._split_args(token, 1, 1)[0], token.line, "condition")
        node = Node(NodeType.WHILE, content=condition, line=token.line)
        self._contexts.append("loop")
        try:
            node.children, _ = self._parse_block(frozenset({"endwhile"}))
        finally:
            self._contexts.pop()
        return node

    def _parse_switch(self, token: Token) -> Node:
        subject = self._expression(self._split_args(token, 1, 1)[0], token.line)
        node = Node(NodeType.SWITCH, content=subject, line=token.line)
        terminators = frozenset({"case", "default", "endswitch"})

        self._contexts.append("switch")
        try:
            leading, closing = self._parse_block(terminators)
            if not self._is_blank(leading):
                raise self._error("Only whitespace is allowed between @switch and the first @case", token.line)

            values: List[str] = []
            while closing.value == "case":
                values.append(self._expression(self._split_args(closing, 1, 1)[0], closing.line))
                body, following = self._parse_block(terminators)
                if following.value == "case" and self._is_blank(body):
                    closing = following
                    continue
                node.branches.append((values, body))
                values = []
                closing = following

            if closing.value == "default":
                body, following = self._parse_block(terminators)
                if following.value != "endswitch":
                    raise self._error(f"@{following.value} after @default", following.line)
                node.branches.append((None, body))
        finally:
            self._contexts.pop()
        return node

    def _parse_break(self, token: Token) -> Optional[Node]:
        if not self._contexts:
            raise self._error("@break outside of a loop or @switch", token.line)
        if self._contexts[-1] == "switch":
            return None
        return Node(NodeType.BREAK, line=token.line)

    def _parse_continue(self, token: Token) -> Node:
        if "loop" not in self._contexts:
            raise self._error("@continue outside of a loop", token.line)
        return Node(NodeType.CONTINUE, line=token.line)

    def _parse_section(self, token: Token) -> Node:
        args = self._split_args(token, 1, 2)
        node = Node(NodeType.SECTION, args=args, line=token.line)
        if len(args) == 1:
            node.children, _ = self._parse_block(frozenset({"endsection"}))
        return node

    def _parse_yield(self, token: Token) -> Node:
        return Node(NodeType.YIELD, args=self._split_args(token, 1, 2), line=token.line)

    def _parse_include(self, token: Token) -> Node:
        return Node(NodeType.INCLUDE, args=self._split_args(token, 1, 2), line=token.line)

    def _parse_component(self, token: Token) -> Node:
        node = Node(NodeType.COMPONENT, args=self._split_args(token, 1, 2), line=token.line)
        node.children, _ = self._parse_block(frozenset({"endcomponent"}))
        return node

    def _parse_slot(self, token: Token) -> Node:
        node = Node(NodeType.SLOT, args=self._split_args(token, 1, 1), line=token.line)
        node.children, _ = self._parse_block(frozenset({"endslot"}))
        return node

    def _parse_csrf(self, token: Token) -> Node:
        return Node(NodeType.CSRF, line=token.line)

    def _parse_method(self, token: Token) -> Node:
        argument = self._split_args(token, 1, 1)[0]
        try:
            method = str(ast.literal_eval(argument)).upper()
        except ValueError:
            raise self._error("@method expects a string literal", token.line) from None
        if method not in ("PUT", "POST", "DELETE", "PATCH"):
            raise self._error(f"@method does not support '{method}'", token.line)
        return Node(NodeType.METHOD, content=method, line=token.line)

    def _parse_asset(self, token: Token) -> Node:
        return Node(NodeType.ASSET, args=self._split_args(token, 1, 1), line=token.line)

    def _parse_title(self, token: Token) -> None:
        self._metadata.append(Node(NodeType.TITLE, args=self._split_args(token, 1, 1), line=token.line))
        return None

    def _parse_meta(self, token: Token) -> None:
        self._metadata.append(Node(NodeType.META, args=self._split_args(token, 2, 2), line=token.line))
        return None

    def _parse_extends(self, token: Token) -> None:
        if self._layout is not None:
            raise self._error("A template can only @extends one layout", token.line)
        self._layout = self._split_args(token, 1, 1)[0]
        self._layout_line = token.line
        return None
