"""
Maniac View Module
==================

The Niac template engine. Templates are tokenized, parsed into a syntax
tree and compiled to Python modules that are cached on disk.

Components:
- NiacLexer: Splits template source into tokens
- NiacParser: Builds the syntax tree
- NiacCompiler: Generates Python from the tree
- NiacEngine: Resolves, caches and renders views
"""

from maniac.view.compiler import NiacCompiler
from maniac.view.engine import NiacEngine
from maniac.view.exceptions import (
    LayoutNotFoundError,
    SectionMismatchError,
    TemplateCompileError,
    TemplateSyntaxError,
    ViewError,
    ViewNotFoundError,
    ViewRenderError,
)
from maniac.view.helpers import HtmlString, LoopContext, escape
from maniac.view.lexer import NiacLexer, Token, TokenType
from maniac.view.parser import NiacParser, Node, NodeType, TemplateAST

__all__ = [
    "NiacLexer",
    "Token",
    "TokenType",
    "NiacParser",
    "Node",
    "NodeType",
    "TemplateAST",
    "NiacCompiler",
    "NiacEngine",
    "HtmlString",
    "LoopContext",
    "escape",
    "ViewError",
    "ViewNotFoundError",
    "LayoutNotFoundError",
    "TemplateCompileError",
    "TemplateSyntaxError",
    "SectionMismatchError",
    "ViewRenderError",
]
