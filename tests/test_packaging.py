# tests/test_packaging.py

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


class TestProjectMetadata:
    def test_readme_is_not_the_requirements_document(self) -> None:
        project = tomllib.loads((ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]

        readme = project.get("readme")
        assert readme is None or (readme != "spec.md" and (ROOT / readme).is_file())
