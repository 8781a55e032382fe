"""
Niac Compiler
=============

Generates Python module source from a parsed Niac template in a single
pass over the AST.

The generated module runs with ``exec`` in a fresh namespace holding the
view data, the view helpers and these runtime names:

    __engine    the NiacEngine rendering the view
    __data      the data dict the view was rendered with
    __write     appends a string to the current output buffer
    __escape    HTML-escapes a value (``None`` becomes ``""``)
    __raw       ``str()`` of a value (``None`` becomes ``""``)
    __loop      iterates with a LoopContext
    __pairs     key/value iteration for ``as key => value`` loops
    __isset     ``@isset`` check
    __empty     ``@empty`` check

Statements generated from a template line end with a ``# L<n>`` marker so
errors can be reported against the template.
"""

from __future__ import annotations

import re
from typing import List, Optional

from maniac.view.parser import Node, NodeType, TemplateAST

_LINE_MARKER = re.compile(r"#\s*L(\d+)\s*$")


class CompilerContext:
    """Compilation context for tracking state."""

    def __init__(self) -> None:
        self.indent_level = 0
        self.output_parts: List[str] = []
        self.temp_var_counter = 0

    def indent(self) -> str:
        """Get current indentation."""
        return "    " * self.indent_level

    def emit(self, code: str, line: Optional[int] = None) -> None:
        """Emit a line of code, tagged with its template line."""
        suffix = f"  # L{line}" if line else ""
        self.output_parts.append(f"{self.indent()}{code}{suffix}")

    def new_temp_var(self, prefix: str = "__t") -> str:
        """Generate a new temporary variable name."""
        self.temp_var_counter += 1
        return f"{prefix}{self.temp_var_counter}"

    def enter_scope(self) -> None:
        self.indent_level += 1

    def exit_scope(self) -> None:
        self.indent_level -= 1

    def get_code(self) -> str:
        return "\n".join(self.output_parts) + "\n"


def template_line(compiled_source: str, lineno: Optional[int]) -> Optional[int]:
    """
    Map a line of generated code back to its template line.

    Lines without a marker (bodies of ``@php`` blocks) take the marker of
    the closest preceding line.
    """
    if not lineno:
        return None
    lines = compiled_source.splitlines()
    for index in range(min(lineno, len(lines)) - 1, -1, -1):
        match = _LINE_MARKER.search(lines[index])
        if match:
            return int(match.group(1))
    return None


class NiacCompiler:
    """
    Compiles a Niac AST to Python source.

    Example:
        ast = NiacParser(path).parse(source)
        code = NiacCompiler().compile(ast, path)
    """

    def __init__(self) -> None:
        self.context: Optional[CompilerContext] = None

    def compile(self, ast: TemplateAST, name: str = "template") -> str:
        self.context = CompilerContext()
        self.context.emit(f"# Compiled Niac template: {name}")

        for node in ast.metadata:
            self._compile_node(node)

        self._compile_nodes(ast.root.children)

        if ast.layout is not None:
            self.context.emit(f"__write(__engine.render_layout({ast.layout}, globals()))", ast.layout_line)

        return self.context.get_code()

    def _compile_nodes(self, nodes: List[Node]) -> None:
        for node in nodes:
            self._compile_node(node)

    def _compile_body(self, nodes: List[Node], line: int) -> None:
        self.context.enter_scope()
        if nodes:
            self._compile_nodes(nodes)
        else:
            self.context.emit("pass", line)
        self.context.exit_scope()

    def _compile_node(self, node: Node) -> None:
        getattr(self, f"_compile_{node.type.name.lower()}")(node)

    def _compile_text(self, node: Node) -> None:
        if node.content:
            self.context.emit(f"__write({node.content!r})", node.line)

    def _compile_echo(self, node: Node) -> None:
        self.context.emit(f"__write(__escape({node.content}))", node.line)

    def _compile_raw_echo(self, node: Node) -> None:
        self.context.emit(f"__write(__raw({node.content}))", node.line)

    def _compile_python(self, node: Node) -> None:
        self.context.emit("pass", node.line)
        for line in node.content.splitlines():
            self.context.output_parts.append(f"{self.context.indent()}{line}" if line.strip() else "")

    def _compile_if(self, node: Node) -> None:
        for index, (condition, body) in enumerate(node.branches):
            if condition is None:
                self.context.emit("else:", node.line)
            else:
                keyword = "if" if index == 0 else "elif"
                self.context.emit(f"{keyword} {condition}:", node.line)
            self._compile_body(body, node.line)

    def _loop_target(self, node: Node) -> str:
        iterable = f"__pairs({node.iterable})" if node.pairs else node.iterable
        outer = self.context.new_temp_var()
        self.context.emit(f"{outer} = globals().get('loop')", node.line)
        self.context.emit(f"for loop, ({node.target}) in __loop({iterable}, {outer}):", node.line)
        return outer

    def _compile_foreach(self, node: Node) -> None:
        outer = self._loop_target(node)
        self._compile_body(node.children, node.line)
        self.context.emit(f"loop = {outer}", node.line)

    def _compile_forelse(self, node: Node) -> None:
        empty = self.context.new_temp_var()
        self.context.emit(f"{empty} = True", node.line)
        outer = self._loop_target(node)
        self.context.enter_scope()
        self.context.emit(f"{empty} = False", node.line)
        self._compile_nodes(node.children)
        self.context.exit_scope()
        self.context.emit(f"loop = {outer}", node.line)
        if node.alternate:
            self.context.emit(f"if {empty}:", node.line)
            self._compile_body(node.alternate, node.line)

    def _compile_for(self, node: Node) -> None:
        self.context.emit(f"for {node.target} in {node.iterable}:", node.line)
        self._compile_body(node.children, node.line)

    def _compile_while(self, node: Node) -> None:
        self.context.emit(f"while {node.content}:", node.line)
        self._compile_body(node.children, node.line)

    def _compile_switch(self, node: Node) -> None:
        subject = self.context.new_temp_var()
        self.context.emit(f"{subject} = {node.content}", node.line)
        cases = [(values, body) for values, body in node.branches if values is not None]
        default = next((body for values, body in node.branches if values is None), None)

        for index, (values, body) in enumerate(cases):
            keyword = "if" if index == 0 else "elif"
            test = " or ".join(f"{subject} == ({value})" for value in values)
            self.context.emit(f"{keyword} {test}:", node.line)
            self._compile_body(body, node.line)

        if default is not None:
            if cases:
                self.context.emit("else:", node.line)
                self._compile_body(default, node.line)
            else:
                self._compile_nodes(default)

    def _compile_break(self, node: Node) -> None:
        self.context.emit("break", node.line)

    def _compile_continue(self, node: Node) -> None:
        self.context.emit("continue", node.line)

    def _compile_section(self, node: Node) -> None:
        name = node.args[0]
        if len(node.args) == 2:
            self.context.emit(f"__engine.set_section({name}, __escape({node.args[1]}))", node.line)
            return
        self.context.emit(f"__engine.start_section({name})", node.line)
        self._compile_nodes(node.children)
        self.context.emit("__engine.stop_section()", node.line)

    def _compile_yield(self, node: Node) -> None:
        default = node.args[1] if len(node.args) == 2 else "''"
        self.context.emit(f"__write(__engine.yield_section({node.args[0]}, {default}))", node.line)

    def _compile_include(self, node: Node) -> None:
        data = node.args[1] if len(node.args) == 2 else "None"
        self.context.emit(f"__write(__engine.include({node.args[0]}, __data, {data}))", node.line)

    def _compile_component(self, node: Node) -> None:
        data = node.args[1] if len(node.args) == 2 else "None"
        self.context.emit(f"__engine.start_component({node.args[0]}, __data, {data})", node.line)
        self._compile_nodes(node.children)
        self.context.emit("__write(__engine.render_component())", node.line)

    def _compile_slot(self, node: Node) -> None:
        self.context.emit(f"__engine.start_slot({node.args[0]})", node.line)
        self._compile_nodes(node.children)
        self.context.emit("__engine.stop_slot()", node.line)

    def _compile_csrf(self, node: Node) -> None:
        self.context.emit("__write(csrf_field())", node.line)

    def _compile_method(self, node: Node) -> None:
        field = f'<input type="hidden" name="_method" value="{node.content}">'
        self.context.emit(f"__write({field!r})", node.line)

    def _compile_asset(self, node: Node) -> None:
        self.context.emit(f"__write(__escape(asset({node.args[0]})))", node.line)

    def _compile_title(self, node: Node) -> None:
        self.context.emit(f"__engine.set_title({node.args[0]})", node.line)

    def _compile_meta(self, node: Node) -> None:
        self.context.emit(f"__engine.set_meta({node.args[0]}, {node.args[1]})", node.line)
