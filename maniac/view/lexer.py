"""
Niac Lexer
==========

Splits Niac template source into a flat token stream.

Recognised constructs, in precedence order at any position:

    {--- comment ---}       dropped
    @{{ literal }}          emitted as the text ``{{ literal }}``
    @@word                  emitted as the text ``@word``
    {!! expr !!}            raw echo
    {{ expr }}              escaped echo
    @directive(args)        directive (only names in ``DIRECTIVES``)
    @php ... @endphp        block of Python statements (alias ``@py``)

Anything else, including ``@`` in e-mail addresses or unknown
``@words``, is plain text. Only ``@end...`` closers are recognised
directly after a letter or digit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from maniac.view.exceptions import TemplateSyntaxError


class TokenType(Enum):
    """Token types for the Niac lexer."""
    TEXT = auto()
    ECHO = auto()
    RAW_ECHO = auto()
    DIRECTIVE = auto()
    PYTHON = auto()
    EOF = auto()


@dataclass
class Token:
    """A lexer token. ``args`` is the raw text between a directive's parentheses."""
    type: TokenType
    value: str
    line: int
    args: Optional[str] = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, line={self.line})"


# Directives whose parenthesised arguments are mandatory
ARG_DIRECTIVES = frozenset({
    "if", "elseif", "foreach", "forelse", "for", "while", "isset", "switch",
    "case", "include", "yield", "section", "component", "slot", "extends",
    "title", "meta", "method", "asset",
})

# Directives that never take arguments
BARE_DIRECTIVES = frozenset({
    "else", "endif", "endforeach", "endforelse", "endfor", "endwhile",
    "endisset", "endempty", "endswitch", "default", "break", "continue",
    "csrf", "endsection", "endcomponent", "endslot",
})

# ``@empty(expr)`` opens a block, bare ``@empty`` separates a forelse
OPTIONAL_ARG_DIRECTIVES = frozenset({"empty"})

DIRECTIVES = ARG_DIRECTIVES | BARE_DIRECTIVES | OPTIONAL_ARG_DIRECTIVES

# Directives after which following whitespace is swallowed
TRIM_AFTER = frozenset({
    "if", "elseif", "else", "endif", "foreach", "endforeach", "forelse",
    "empty", "endforelse", "for", "endfor", "while", "endwhile", "isset",
    "endisset", "endempty", "switch", "case", "default", "break", "endswitch",
    "continue", "csrf", "endsection",
})

_OPENER = re.compile(r"\{---|@\{\{|@@(?=\w)|\{!!|\{\{|(?<![\w@])@(?:php|py)\b(?!\s*\()|(?<!@)@([A-Za-z]\w*)")
_PY_END = {"php": re.compile(r"@endphp\b"), "py": re.compile(r"@endpy\b")}
_WHITESPACE = re.compile(r"\s*")
_QUOTES = "'\""


def _find_closer(source: str, pos: int, closer: str) -> int:
    """
    Index of ``closer`` at bracket depth zero, skipping quoted strings.

    Returns -1 when the source ends first.
    """
    depth = 0
    quote: Optional[str] = None
    i = pos
    length = len(source)
    while i < length:
        char = source[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in _QUOTES:
            quote = char
        elif depth == 0 and source.startswith(closer, i):
            return i
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        i += 1
    return -1


class NiacLexer:
    """
    Tokenizer for Niac templates.

    Example:
        tokens = NiacLexer("Hello {{ name }}!", "greeting").tokenize()
    """

    def __init__(self, source: str, path: Optional[str] = None) -> None:
        self.source = source
        self.path = path
        self.pos = 0
        self.tokens: List[Token] = []

    def _line(self, pos: Optional[int] = None) -> int:
        return self.source.count("\n", 0, self.pos if pos is None else pos) + 1

    def _error(self, message: str, pos: Optional[int] = None) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, self.path, self._line(pos))

    def _text(self, text: str, pos: int) -> None:
        if not text:
            return
        if self.tokens and self.tokens[-1].type is TokenType.TEXT:
            self.tokens[-1].value += text
        else:
            self.tokens.append(Token(TokenType.TEXT, text, self._line(pos)))

    def _is_directive(self, name: str, pos: int) -> bool:
        if name not in DIRECTIVES:
            return False
        # Closers may follow text directly ("A@endsection"); openers may not ("me@include.dev")
        before = self.source[pos - 1] if pos else " "
        return not (before.isalnum() or before == "_") or name.startswith("end")

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source."""
        source = self.source
        while self.pos < len(source):
            match = _OPENER.search(source, self.pos)
            if match is None:
                self._text(source[self.pos:], self.pos)
                break

            self._text(source[self.pos:match.start()], self.pos)
            self.pos = match.start()
            opener = match.group(0)

            if opener == "{---":
                self._comment()
            elif opener == "@{{":
                self._escaped_echo()
            elif opener == "@@":
                self._text("@", self.pos)
                self.pos += 2
            elif opener == "{!!":
                self._echo(TokenType.RAW_ECHO, "{!!", "!!}")
            elif opener == "{{":
                self._echo(TokenType.ECHO, "{{", "}}")
            elif opener in ("@php", "@py"):
                self._python(opener[1:])
            elif self._is_directive(match.group(1), match.start()):
                self._directive(match.group(1), match.end())
            else:
                self._text(opener, self.pos)
                self.pos = match.end()

        self.tokens.append(Token(TokenType.EOF, "", self._line(len(source))))
        return self.tokens

    def _comment(self) -> None:
        end = self.source.find("---}", self.pos + 4)
        if end == -1:
            raise self._error("Unterminated comment, expected '---}'")
        self.pos = end + 4

    def _escaped_echo(self) -> None:
        end = self.source.find("}}", self.pos + 3)
        if end == -1:
            raise self._error("Unterminated escaped echo, expected '}}'")
        self._text(self.source[self.pos + 1:end + 2], self.pos)
        self.pos = end + 2

    def _echo(self, type: TokenType, opener: str, closer: str) -> None:
        start = self.pos + len(opener)
        end = _find_closer(self.source, start, closer)
        if end == -1:
            raise self._error(f"Unterminated echo, expected '{closer}'")
        expression = self.source[start:end].strip()
        if not expression:
            raise self._error(f"Empty expression in '{opener} {closer}'")
        self.tokens.append(Token(type, expression, self._line()))
        self.pos = end + len(closer)

    def _python(self, name: str) -> None:
        line = self._line()
        start = self.pos + len(name) + 1
        end = _PY_END[name].search(self.source, start)
        if end is None:
            raise self._error(f"Unterminated @{name} block, expected '@end{name}'")
        self.tokens.append(Token(TokenType.PYTHON, self.source[start:end.start()], line))
        self.pos = end.end()

    def _directive(self, name: str, pos: int) -> None:
        line = self._line()
        args: Optional[str] = None

        lookahead = pos
        while lookahead < len(self.source) and self.source[lookahead] in " \t":
            lookahead += 1
        has_parens = lookahead < len(self.source) and self.source[lookahead] == "("

        if name in ARG_DIRECTIVES or (name in OPTIONAL_ARG_DIRECTIVES and has_parens):
            if not has_parens:
                raise self._error(f"@{name} requires arguments")
            end = _find_closer(self.source, lookahead + 1, ")")
            if end == -1:
                raise self._error(f"Unclosed parenthesis after @{name}")
            args = self.source[lookahead + 1:end].strip()
            pos = end + 1

        if name in TRIM_AFTER:
            pos = _WHITESPACE.match(self.source, pos).end()

        self.tokens.append(Token(TokenType.DIRECTIVE, name, line, args))
        self.pos = pos
