# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from manifold import cli
from manifold.cli import main
from tests.conftest import library_manifest



class _RecordingEngine:
    def __init__(self, url: str) -> None:
        self.url = url
        self.disposed = False

    async def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def manifest_file(tmp_path: Path) -> Path:
    path = tmp_path / "manifest.yml"
    path.write_text(yaml.safe_dump(library_manifest(), sort_keys=False), encoding="utf-8")
    return path


class TestCheck:
    def test_valid_manifest(self, manifest_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["check", str(manifest_file)]) == 0
        out = capsys.readouterr().out
        assert "OK (4 entities)" in out
        assert "Book -> /api/books" in out

    def test_invalid_manifest(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "broken.yml"
        path.write_text("entities:\n  Book:\n    properties: [title]\n    belongsTo: [Writer]\n", encoding="utf-8")
        assert main(["check", str(path)]) == 1
        err = capsys.readouterr().err
        assert "error: Invalid manifest" in err
        assert "entities.Book.relationships.writer.target: unknown entity 'Writer'" in err

    def test_missing_file(self, tmp_path: Path) -> None:
        assert main(["check", str(tmp_path / "absent.yml")]) == 1


class TestOpenapi:
    def test_writes_file(self, manifest_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "openapi.json"
        assert main(["openapi", str(manifest_file), "-o", str(output)]) == 0
        document = json.loads(output.read_text(encoding="utf-8"))
        assert "/api/books/{id}/tags" in document["paths"]

    def test_prints_to_stdout(self, manifest_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["openapi", str(manifest_file)]) == 0
        assert json.loads(capsys.readouterr().out)["info"]["title"] == "Library"

    def test_engine_is_disposed(self, manifest_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        engines: list[_RecordingEngine] = []

        def recording_engine(url: str) -> _RecordingEngine:
            engines.append(_RecordingEngine(url))
            return engines[-1]

        monkeypatch.setattr(cli, "create_async_engine", recording_engine)
        assert main(["openapi", str(manifest_file)]) == 0
        assert [engine.disposed for engine in engines] == [True]


class TestSeed:
    def test_seeds_database(self, manifest_file: Path, database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["seed", str(manifest_file), "--count", "3", "--seed", "7", "--database-url", database_url]) == 0
        out = capsys.readouterr().out
        assert "Book: 3" in out
        assert "Tag: 3" in out
