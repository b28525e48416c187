"""
Análise estática de dependências de comandos e funções.

Este módulo inspeciona código Python (string de comando ou função
importada) sem executá-lo e descobre:

    - globals: nomes lidos que não são ligados localmente nem builtins
    - file_in / file_out: caminhos literais declarados pelos marcadores
    - warnings: usos de marcadores que não puderam ser resolvidos

Também produz a forma normalizada do código usada no fingerprint de
comandos e funções: a AST sem docstrings e sem o corpo de `ignore(...)`.
Comentários e formatação nunca alteram o fingerprint.

Limites explícitos:
    - A análise de escopo é aproximada: um nome ligado em qualquer ponto
      do código é considerado local em todo o código
    - Não resolve nomes (ver `graph.builder`)
    - Não executa código
"""

from __future__ import annotations

import ast
import builtins
import inspect
import textwrap
import types
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set, Union

import pandas as pd

from drakeflow.core.exceptions import AnalysisError

from .markers import FILE_MARKERS, OPAQUE_MARKERS


BUILTIN_NAMES: Set[str] = set(dir(builtins))


@dataclass
class CodeDependencies:
    """Dependências estáticas encontradas em um trecho de código."""

    globals: Set[str] = field(default_factory=set)
    file_in: Set[str] = field(default_factory=set)
    file_out: Set[str] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)

    def update(self, other: "CodeDependencies") -> None:
        self.globals |= other.globals
        self.file_in |= other.file_in
        self.file_out |= other.file_out
        self.warnings.extend(w for w in other.warnings if w not in self.warnings)


class _DependencyVisitor(ast.NodeVisitor):
    def __init__(self) -> None:
        self.loaded: Set[str] = set()
        self.bound: Set[str] = set()
        self.file_in: Set[str] = set()
        self.file_out: Set[str] = set()
        self.warnings: List[str] = []

    # -----------------------------
    # Nomes
    # -----------------------------
    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            self.loaded.add(node.id)
        else:
            self.bound.add(node.id)

    def visit_arg(self, node: ast.arg) -> None:
        self.bound.add(node.arg)
        self.generic_visit(node)

    def _visit_function(self, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> None:
        self.bound.add(node.name)
        self.generic_visit(node)

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.bound.add(node.name)
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.bound.add(alias.asname or alias.name.split(".")[0])

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            self.bound.add(alias.asname or alias.name)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self.bound.add(node.name)
        self.generic_visit(node)

    def visit_MatchAs(self, node: Any) -> None:  # pragma: no cover - py3.10+
        if getattr(node, "name", None):
            self.bound.add(node.name)
        self.generic_visit(node)

    # -----------------------------
    # Marcadores
    # -----------------------------
    def visit_Call(self, node: ast.Call) -> None:
        fname = node.func.id if isinstance(node.func, ast.Name) else None

        if fname in OPAQUE_MARKERS:
            return

        if fname in FILE_MARKERS:
            sink = self.file_in if fname == "file_in" else self.file_out
            for arg in node.args:
                if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
                    sink.add(arg.value)
                else:
                    self.warnings.append(
                        f"{fname}() com argumento não literal é ignorado na análise: {ast.unparse(arg)}"
                    )
                    self.visit(arg)
            for kw in node.keywords:
                self.visit(kw.value)
            return

        self.generic_visit(node)


def _dedent_parse(source: str) -> ast.Module:
    return ast.parse(textwrap.dedent(source))


def parse_code(code: str) -> ast.Module:
    """Faz o parse de um comando; SyntaxError vira AnalysisError."""
    if not isinstance(code, str):
        raise AnalysisError(
            message=f"Código deve ser string, recebido: {type(code).__name__}",
            details={"type": type(code).__name__},
        )
    try:
        return _dedent_parse(code)
    except SyntaxError as e:
        raise AnalysisError(
            message=f"Código inválido: {e.msg}",
            details={"code": code, "lineno": e.lineno, "offset": e.offset},
            hint="Comandos devem ser expressões ou blocos Python válidos.",
        ) from e


def function_tree(func: Callable[..., Any]) -> Optional[ast.Module]:
    """AST da definição de `func`, ou None quando o fonte não está disponível.

    Lambdas retornam None: `inspect.getsource` devolve a linha inteira,
    não apenas a expressão.
    """
    if getattr(func, "__name__", None) == "<lambda>":
        return None
    try:
        source = inspect.getsource(func)
    except (OSError, TypeError):
        return None
    try:
        return _dedent_parse(source)
    except SyntaxError:
        return None


def _function_code(func: Callable[..., Any]) -> Optional[types.CodeType]:
    return getattr(inspect.unwrap(func), "__code__", None)


def _code_object_dependencies(code: types.CodeType) -> CodeDependencies:
    names: Set[str] = set()
    bound: Set[str] = set(code.co_varnames) | set(code.co_cellvars)
    stack = [code]
    while stack:
        current = stack.pop()
        names |= set(current.co_names)
        names |= set(current.co_freevars)
        stack.extend(c for c in current.co_consts if isinstance(c, types.CodeType))
    return CodeDependencies(globals=names - bound - BUILTIN_NAMES)


def _visit_tree(tree: ast.AST) -> CodeDependencies:
    visitor = _DependencyVisitor()
    visitor.visit(tree)
    return CodeDependencies(
        globals=visitor.loaded - visitor.bound - BUILTIN_NAMES,
        file_in=visitor.file_in,
        file_out=visitor.file_out,
        warnings=visitor.warnings,
    )


def analyze_code(code: Union[str, Callable[..., Any]]) -> CodeDependencies:
    """
    Descobre as dependências estáticas de um comando ou função.

    Args:
        code: string de comando Python ou função.

    Returns:
        CodeDependencies: globals, file_in, file_out e warnings.

    Raises:
        AnalysisError: se `code` não é string nem função, ou não faz parse.
    """
    if isinstance(code, str):
        return _visit_tree(parse_code(code))

    if callable(code):
        tree = function_tree(code)
        if tree is not None:
            return _visit_tree(tree)
        co = _function_code(code)
        if co is not None:
            return _code_object_dependencies(co)
        return CodeDependencies()

    raise AnalysisError(
        message=f"Não é possível analisar objeto do tipo {type(code).__name__}",
        details={"type": type(code).__name__},
    )


# -----------------------------
# Normalização para fingerprint
# -----------------------------

class _Normalizer(ast.NodeTransformer):
    """Remove docstrings e o conteúdo de ignore(...)."""

    def _strip_docstring(self, node: Any) -> Any:
        body = getattr(node, "body", None)
        if (
            body
            and isinstance(body[0], ast.Expr)
            and isinstance(body[0].value, ast.Constant)
            and isinstance(body[0].value.value, str)
        ):
            node.body = body[1:] or [ast.Pass()]
        return node

    def visit_Module(self, node: ast.Module) -> Any:
        self.generic_visit(node)
        return self._strip_docstring(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> Any:
        self.generic_visit(node)
        return self._strip_docstring(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> Any:
        self.generic_visit(node)
        return self._strip_docstring(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> Any:
        self.generic_visit(node)
        return self._strip_docstring(node)

    def visit_Call(self, node: ast.Call) -> Any:
        if isinstance(node.func, ast.Name) and node.func.id == "ignore":
            node.args = []
            node.keywords = []
            return node
        return self.generic_visit(node)


def _normalize_code_object(code: types.CodeType) -> str:
    consts = []
    for c in code.co_consts:
        if isinstance(c, types.CodeType):
            consts.append(_normalize_code_object(c))
        else:
            consts.append(repr(c))
    return "|".join([code.co_code.hex(), ",".join(consts), ",".join(code.co_names)])


def normalize_code(code: Union[str, Callable[..., Any]]) -> str:
    """Forma canônica do código usada em fingerprints."""
    if isinstance(code, str):
        tree: Optional[ast.AST] = parse_code(code)
    else:
        tree = function_tree(code)
        if tree is None:
            co = _function_code(code)
            if co is None:
                return f"callable:{getattr(code, '__module__', '')}.{getattr(code, '__qualname__', repr(code))}"
            return "code:" + _normalize_code_object(co)

    tree = _Normalizer().visit(tree)
    return ast.dump(tree, annotate_fields=False, include_attributes=False)


def deps_code(code: Union[str, Callable[..., Any]]) -> pd.DataFrame:
    """Tabela (name, type) com as dependências de um comando ou função."""
    deps = analyze_code(code)
    rows = (
        [{"name": n, "type": "globals"} for n in sorted(deps.globals)]
        + [{"name": p, "type": "file_in"} for p in sorted(deps.file_in)]
        + [{"name": p, "type": "file_out"} for p in sorted(deps.file_out)]
    )
    return pd.DataFrame(rows, columns=["name", "type"])
