"""
Chunk Executor

Runs deck chunks in document order in one shared namespace and captures
printed output, the value of a trailing expression and matplotlib figures.
Chunks marked cache=TRUE are stored with joblib and restored on later
renders without executing.
"""

import ast
import hashlib
import importlib
import io
import json
import logging
import pickle
import traceback
import types
from contextlib import redirect_stdout, redirect_stderr
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List, Set

import joblib
import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .source import CodeChunk
from ..config import DECK_CONFIG

logger = logging.getLogger(__name__)


class ChunkExecutionError(RuntimeError):
    """A chunk raised while error=FALSE."""

    def __init__(self, label: str, line: int, original: BaseException):
        self.label = label
        self.line = line
        self.original = original
        super().__init__(
            f"Error in chunk '{label}' (line {line}): {type(original).__name__}: {original}"
        )


@dataclass
class ChunkResult:
    label: str
    executed: bool = False
    cached: bool = False
    stdout: str = ""
    value: Optional[str] = None
    error: Optional[str] = None
    figures: List[bytes] = field(default_factory=list)

    @property
    def text(self) -> str:
        parts = [p for p in (self.stdout.rstrip("\n"), self.value) if p]
        return "\n".join(parts)


def _format_value(value: Any) -> Optional[str]:
    """Text shown for a trailing expression, None for plot objects."""
    if value is None:
        return None
    if isinstance(value, (matplotlib.figure.Figure, matplotlib.axes.Axes)):
        return None
    if isinstance(value, np.ndarray) and value.dtype == object and value.size \
            and isinstance(value.flat[0], matplotlib.axes.Axes):
        return None
    if isinstance(value, (pd.DataFrame, pd.Series)):
        return value.to_string()
    return repr(value)


def _root_name(node: ast.AST) -> Optional[str]:
    while isinstance(node, (ast.Attribute, ast.Subscript)):
        node = node.value
    return node.id if isinstance(node, ast.Name) else None


def touched_names(tree: ast.AST) -> Set[str]:
    """
    Names a chunk may change in place.

    Covers attribute and item assignment or deletion, augmented assignment,
    method call receivers and names passed as call arguments.
    """
    names = set()
    for node in ast.walk(tree):
        if isinstance(node, (ast.Attribute, ast.Subscript)) and isinstance(node.ctx, (ast.Store, ast.Del)):
            names.add(_root_name(node))
        elif isinstance(node, ast.AugAssign):
            names.add(_root_name(node.target))
        elif isinstance(node, ast.Call):
            if isinstance(node.func, ast.Attribute):
                names.add(_root_name(node.func.value))
            for arg in list(node.args) + [kw.value for kw in node.keywords]:
                if isinstance(arg, ast.Starred):
                    arg = arg.value
                names.add(_root_name(arg))
    names.discard(None)
    return names


class ChunkExecutor:
    """
    Executes chunks against a shared namespace.

    The namespace starts with `params` so chunks can read deck parameters.
    """

    def __init__(
        self,
        params: Optional[Dict[str, Any]] = None,
        cache_dir: Optional[Path] = None,
        use_cache: bool = True
    ):
        self.params = dict(params or {})
        self.namespace: Dict[str, Any] = {"__name__": "__deck__", "params": self.params}
        self.cache_dir = Path(cache_dir) if cache_dir else DECK_CONFIG["cache_dir"]
        self.use_cache = use_cache

    def run(self, chunk: CodeChunk) -> ChunkResult:
        """Execute (or restore) one chunk."""
        options = chunk.options
        if not options.eval:
            return ChunkResult(label=chunk.label)

        if options.cache and self.use_cache:
            cached = self._load_cache(chunk)
            if cached is not None:
                return cached

        result, changed = self._execute(chunk)

        if options.cache and self.use_cache and result.error is None:
            self._store_cache(chunk, result, changed)
        return result

    def _execute(self, chunk: CodeChunk):
        filename = f"<chunk {chunk.label}>"
        result = ChunkResult(label=chunk.label, executed=True)
        before = {k: id(v) for k, v in self.namespace.items()}
        touched: Set[str] = set()
        buffer = io.StringIO()

        plt.close("all")
        rc = {
            "figure.figsize": (chunk.options.fig_width, chunk.options.fig_height),
            "figure.dpi": chunk.options.fig_dpi,
        }
        try:
            with plt.rc_context(rc), redirect_stdout(buffer), redirect_stderr(buffer):
                tree = ast.parse(chunk.code, filename=filename)
                touched = touched_names(tree)
                last_expr = None
                if tree.body and isinstance(tree.body[-1], ast.Expr):
                    last_expr = tree.body.pop()
                exec(compile(tree, filename, "exec"), self.namespace)
                if last_expr is not None:
                    value = eval(
                        compile(ast.Expression(last_expr.value), filename, "eval"),
                        self.namespace,
                    )
                    result.value = _format_value(value)
        except Exception as exc:
            if not chunk.options.error:
                plt.close("all")
                raise ChunkExecutionError(chunk.label, chunk.line, exc) from exc
            result.error = "".join(traceback.format_exception_only(type(exc), exc)).rstrip()
            logger.warning(f"Chunk '{chunk.label}' raised {type(exc).__name__}; continuing (error=TRUE)")
        finally:
            result.stdout = buffer.getvalue()

        result.figures = self._capture_figures(chunk.options.fig_dpi)

        # Rebound or new names, plus existing objects the chunk may have mutated
        changed = {
            k: v for k, v in self.namespace.items()
            if not k.startswith("__") and k != "params"
            and (k not in before or id(v) != before[k] or k in touched)
        }
        return result, changed

    @staticmethod
    def _capture_figures(dpi: int) -> List[bytes]:
        figures = []
        for number in plt.get_fignums():
            fig = plt.figure(number)
            png = io.BytesIO()
            fig.savefig(png, format="png", dpi=dpi, bbox_inches="tight")
            figures.append(png.getvalue())
        plt.close("all")
        return figures

    def cache_key(self, chunk: CodeChunk) -> str:
        """Hash of chunk code, options and deck params."""
        payload = json.dumps(
            {
                "code": chunk.code,
                "options": chunk.options.model_dump(),
                "params": self.params,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def _cache_path(self, chunk: CodeChunk) -> Path:
        return self.cache_dir / f"{chunk.label}-{self.cache_key(chunk)[:16]}.joblib"

    def _load_cache(self, chunk: CodeChunk) -> Optional[ChunkResult]:
        path = self._cache_path(chunk)
        if not path.exists():
            return None

        state = joblib.load(path)
        for name, value in state["namespace"].items():
            if isinstance(value, tuple) and len(value) == 2 and value[0] == "__module__":
                value = importlib.import_module(value[1])
            self.namespace[name] = value

        result = state["result"]
        result.executed = False
        result.cached = True
        logger.info(f"Chunk '{chunk.label}' restored from cache")
        return result

    def _store_cache(self, chunk: CodeChunk, result: ChunkResult, changed: Dict[str, Any]):
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        for stale in self.cache_dir.glob(f"{chunk.label}-*.joblib"):
            stale.unlink()

        namespace = {
            name: ("__module__", value.__name__) if isinstance(value, types.ModuleType) else value
            for name, value in changed.items()
        }
        path = self._cache_path(chunk)
        try:
            joblib.dump({"result": result, "namespace": namespace}, path)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            path.unlink(missing_ok=True)
            logger.warning(f"Chunk '{chunk.label}' not cached: {exc}")
            return
        logger.info(f"Chunk '{chunk.label}' cached to {path}")
