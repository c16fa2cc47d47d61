"""
Tests for the dependency direction between shared/ and the service packages.
"""

import ast
from pathlib import Path

import pytest

import shared


SHARED_DIR = Path(shared.__file__).parent
RUNTIME_MODULES = sorted(
    path for path in SHARED_DIR.glob("*.py") if path.name != "test_helpers.py"
)


def _imported_modules(path: Path):
    tree = ast.parse(path.read_text(encoding="utf-8"))
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name
        elif isinstance(node, ast.ImportFrom) and node.module:
            yield node.module


class TestSharedImports:
    """Test cases for imports inside shared/."""

    @pytest.mark.parametrize("path", RUNTIME_MODULES, ids=lambda path: path.name)
    def test_runtime_modules_do_not_import_services(self, path):
        """Test that runtime shared modules never depend on a service package."""
        imported = list(_imported_modules(path))

        assert not [name for name in imported if name.split(".")[0] == "service_authz"]

    def test_service_code_does_not_use_test_helpers(self):
        """Test that test_helpers stays out of service code."""
        service_dir = SHARED_DIR.parent / "service_authz" / "app"

        for path in service_dir.rglob("*.py"):
            assert "shared.test_helpers" not in list(_imported_modules(path)), path
