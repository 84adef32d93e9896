from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient

from dealerdesk.app.cache import QueryCache
from dealerdesk.app.notifier import LoggingNotifier
from dealerdesk.config.settings import Settings
from dealerdesk.gateway.memory import InMemoryGateway
from dealerdesk.main import create_app

STORE = "RN Multimarcas"
OTHER_STORE = "Roberto Automóveis"
NOW = datetime(2024, 6, 12, 15, 0, tzinfo=UTC)

MANAGER_HEADERS = {"X-User-Id": "user-1", "X-User-Role": "Gerente", "X-User-Level": "5"}


def sample_tables() -> dict[str, list[dict[str, Any]]]:
    return {
        "tasks": [
            {
                "id": "task-1",
                "title": "Criar anúncios para ABC1234",
                "description": "Veículo sem anúncios publicados",
                "ref_table": "vehicles",
                "ref_id": "veh-1",
                "vehicle_id": "veh-1",
                "priority": "high",
                "store": STORE,
                "status": "pending",
                "created_at": datetime(2024, 6, 10, 9, 0, tzinfo=UTC),
            },
            {
                "id": "task-2",
                "title": "Conferir documentação",
                "description": "Documento entregue",
                "priority": "low",
                "store": STORE,
                "status": "completed",
                "created_at": datetime(2024, 6, 1, 8, 0, tzinfo=UTC),
                "completed_at": datetime(2024, 6, 3, 8, 0, tzinfo=UTC),
            },
            {
                "id": "task-3",
                "title": "Task from the other store",
                "priority": "high",
                "store": OTHER_STORE,
                "status": "pending",
                "created_at": datetime(2024, 6, 11, 9, 0, tzinfo=UTC),
            },
        ],
        "advertisement_insights": [
            {
                "id": "ins-1",
                "advertisement_id": "ad-1",
                "insight_type": "sold_vehicle_advertised",
                "description": "Anúncio referencia veículo vendido",
                "store": STORE,
                "resolved": False,
                "created_at": datetime(2024, 6, 11, 12, 0, tzinfo=UTC),
            },
        ],
        "advertisements": [
            {
                "id": "ad-1",
                "platform": "OLX",
                "vehicle_plates": ["ABC1234"],
                "advertised_price": 45000.0,
                "store": STORE,
                "publicado": False,
                "created_at": datetime(2024, 6, 5, 10, 0, tzinfo=UTC),
            },
            {
                "id": "ad-2",
                "platform": "WhatsApp",
                "vehicle_plates": ["ABC1234"],
                "advertised_price": 45000.0,
                "store": STORE,
                "publicado": False,
                "created_at": datetime(2024, 6, 6, 10, 0, tzinfo=UTC),
            },
        ],
        "vehicles": [
            {
                "id": "veh-1",
                "plate": "ABC1234",
                "model": "Onix LT",
                "store": STORE,
                "status": "available",
                "description": "Short",
                "fotos_rn": False,
                "added_at": datetime(2024, 6, 1, 8, 0, tzinfo=UTC),
            },
        ],
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(polling_enabled=False)


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway(sample_tables())


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier(history=20)


@pytest.fixture
def client(gateway: InMemoryGateway, settings: Settings) -> TestClient:
    app = create_app(gateway=gateway, settings_override=settings)
    return TestClient(app)
