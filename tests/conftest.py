from pathlib import Path

import pytest


@pytest.fixture
def write_files(tmp_path):
    """Write {relative path: source} into tmp_path and return the created paths in order."""

    def _write(files: dict[str, str]) -> list[Path]:
        paths = []
        for name, content in files.items():
            path = tmp_path / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            paths.append(path)
        return paths

    return _write
