"""
Import-boundary enforcement.

1. Kernel independence  -- hypermedia_kernel/** may not import
                            hypermedia_config.
2. Domain purity        -- hypermedia_kernel/domain/** may not import the
                            ORM, models, storage, services or db layers.
3. Storage direction    -- hypermedia_kernel/storage/** may not import
                            services.
4. Config centralisation -- outside hypermedia_config, only the package
                            entrypoint may be imported.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(str(_ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                rel = Path(filepath).relative_to(_ROOT)
                found.append(f"{rel}:{lineno} imports {module}")
    return found


class TestKernelBoundary:
    def test_scan_finds_files(self):
        assert _python_files("hypermedia_kernel/domain")
        assert _python_files("hypermedia_config")

    def test_kernel_never_imports_config(self):
        violations = _violations("hypermedia_kernel", ("hypermedia_config",))
        assert violations == [], "\n".join(violations)

    def test_domain_is_pure(self):
        forbidden = (
            "sqlalchemy",
            "hypermedia_kernel.db",
            "hypermedia_kernel.models",
            "hypermedia_kernel.storage",
            "hypermedia_kernel.services",
        )
        violations = _violations("hypermedia_kernel/domain", forbidden)
        assert violations == [], "\n".join(violations)

    def test_storage_below_services(self):
        violations = _violations("hypermedia_kernel/storage", ("hypermedia_kernel.services",))
        assert violations == [], "\n".join(violations)


class TestConfigCentralisation:
    _INTERNAL = (
        "hypermedia_config.loader",
        "hypermedia_config.validator",
        "hypermedia_config.compiler",
        "hypermedia_config.schema",
    )

    def test_only_entrypoint_used_outside_config(self):
        violations = []
        for package in ("hypermedia_kernel", "scripts"):
            violations.extend(_violations(package, self._INTERNAL))
        assert violations == [], "\n".join(violations)
