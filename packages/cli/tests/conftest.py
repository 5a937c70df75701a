"""Fixtures for CLI testing.

Commands run end to end against a json graph store, a PDF directory and
the mock LLM backend, all under tmp_path.
"""

import fitz
import pytest
from typer.testing import CliRunner

from ideagraph_common import Settings


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Isolated settings, patched into the CLI module."""
    settings = Settings(
        _env_file=None,
        llm_backend="mock",
        graph_store_backend="json",
        graph_store_dir=str(tmp_path / "graphs"),
        pdf_storage_dir=str(tmp_path / "pdfs"),
        usage_state_path=str(tmp_path / "usage.json"),
        stage_timeout_seconds=5,
    )
    monkeypatch.setattr("ideagraph_cli.main.get_settings", lambda: settings)
    return settings


@pytest.fixture
def pdf_file(tmp_path):
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "Results. We observe a robust effect.")
    path = tmp_path / "smith2021.pdf"
    doc.save(str(path))
    doc.close()
    return path


@pytest.fixture
def text_file(tmp_path):
    path = tmp_path / "paper.txt"
    path.write_text("[Page 1]\nResults. We observe a robust effect.\n", encoding="utf-8")
    return path
