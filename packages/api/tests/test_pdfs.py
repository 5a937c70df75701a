"""Tests for PDF endpoints."""

from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_put_pdf(app_client, pdf_bytes):
    response = await app_client.put(
        "/papers/paper-1/pdf",
        content=pdf_bytes,
        headers={"X-Filename": "smith2021.pdf"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["paper_id"] == "paper-1"
    assert data["filename"] == "smith2021.pdf"
    assert data["file_size"] == len(pdf_bytes)


@pytest.mark.asyncio
async def test_put_rejects_non_pdf(app_client, services):
    response = await app_client.put("/papers/paper-1/pdf", content=b"hello world")

    assert response.status_code == 422
    assert not services.pdf_store.has("paper-1")


@pytest.mark.asyncio
async def test_replacing_pdf_invalidates_cached_text(app_client, services, pdf_bytes):
    await app_client.put("/papers/paper-1/pdf", content=pdf_bytes)
    await services.text_provider.get_text("paper-1")

    await app_client.put("/papers/paper-1/pdf", content=pdf_bytes)

    assert "paper-1" not in services.text_provider._cache


@pytest.mark.asyncio
async def test_get_pdf_metadata(app_client, pdf_bytes):
    assert (await app_client.get("/papers/paper-1/pdf")).status_code == 404

    await app_client.put("/papers/paper-1/pdf", content=pdf_bytes)
    response = await app_client.get("/papers/paper-1/pdf")

    assert response.status_code == 200
    assert response.json()["filename"] == "document.pdf"
