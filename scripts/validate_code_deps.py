#!/usr/bin/env python3
"""Check that stratlab's internal imports follow its layering.

A module may import from its own layer or any layer below it. Internal
import cycles are reported separately. Exit status 1 when anything is found.
"""

import ast
import sys
from pathlib import Path

PACKAGES = ("stratlab", "api")

# Most specific prefix wins, so list files before their directory.
LAYERS: list[tuple[str, int]] = [
    ("stratlab/core/exceptions", 0),
    ("stratlab/core/time", 0),
    ("stratlab/core/cache", 0),
    ("stratlab/core", 1),
    ("stratlab/backtest/indicators", 2),
    ("stratlab/backtest/io", 2),
    ("stratlab/backtest/models", 2),
    ("stratlab/backtest/validation", 3),
    ("stratlab/backtest/strategies", 3),
    ("stratlab/backtest/simulator", 4),
    ("stratlab/backtest/metrics", 4),
    ("stratlab/backtest/report", 4),
    ("stratlab/backtest/engine", 5),
    ("stratlab/cli", 6),
    ("api", 6),
]


def layer_of(module: str) -> int | None:
    path = module.replace(".", "/")
    for prefix, layer in LAYERS:
        if path == prefix or path.startswith(prefix + "/"):
            return layer
    return None


def internal_imports(file_path: Path) -> set[str]:
    tree = ast.parse(file_path.read_text(encoding="utf-8"))
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(a.name for a in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            names.add(node.module)
    return {n for n in names if n.split(".", 1)[0] in PACKAGES}


def find_cycles(graph: dict[str, set[str]]) -> list[str]:
    cycles: list[str] = []
    done: set[str] = set()

    def visit(module: str, stack: list[str]) -> None:
        if module in stack:
            cycles.append(" -> ".join(stack[stack.index(module) :] + [module]))
            return
        if module in done or module not in graph:
            return
        for dep in sorted(graph[module]):
            visit(dep, stack + [module])
        done.add(module)

    for module in sorted(graph):
        visit(module, [])
    return cycles


def collect_errors(repo_root: Path) -> tuple[list[str], int]:
    files = [
        f
        for pkg in PACKAGES
        for f in sorted((repo_root / pkg).glob("**/*.py"))
        if "__pycache__" not in f.parts
    ]

    errors: list[str] = []
    graph: dict[str, set[str]] = {}
    for f in files:
        module = f.relative_to(repo_root).with_suffix("").as_posix().replace("/", ".").removesuffix(".__init__")
        # `from pkg import submodule` inside pkg/__init__ names the package itself.
        deps = internal_imports(f) - {module}
        graph[module] = deps

        own = layer_of(module)
        if own is None:
            continue
        for dep in sorted(deps):
            dep_layer = layer_of(dep)
            if dep_layer is not None and dep_layer > own:
                errors.append(f"layer violation: {module} (layer {own}) imports {dep} (layer {dep_layer})")

    errors.extend(f"import cycle: {c}" for c in find_cycles(graph))
    return errors, len(files)


def main() -> int:
    errors, checked = collect_errors(Path(__file__).resolve().parent.parent)
    for e in errors:
        print(e)
    print(f"{checked} files checked, {len(errors)} problem(s)")
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
