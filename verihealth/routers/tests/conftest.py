"""HTTP-level fixtures: the FastAPI app wired to an in-memory store."""

from __future__ import annotations

from typing import AsyncIterator

import httpx
import pytest
from fastapi import FastAPI

from verihealth.config import Settings, get_settings
from verihealth.dependencies import get_ingest_store
from verihealth.ingestion.tests.conftest import (
    DEVICE_A,
    PATIENT_1,
    SECRET_A,
    InMemoryIngestStore,
)
from verihealth.main import create_app

SERVICE_KEY = "test-provisioning-key"


@pytest.fixture
def store() -> InMemoryIngestStore:
    s = InMemoryIngestStore()
    s.assign(DEVICE_A, PATIENT_1)
    s.secrets[DEVICE_A] = SECRET_A
    return s


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        ingest_require_signature=True,
        provisioning_api_key=SERVICE_KEY,
    )


@pytest.fixture
def app(store: InMemoryIngestStore, api_settings: Settings) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_ingest_store] = lambda: store
    application.dependency_overrides[get_settings] = lambda: api_settings
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
