"""Vehicle pendencies detected from vehicle and advertisement rows.

These checks run locally on already fetched data; they complement the
server-side tasks rather than replace them.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .models import Advertisement, Vehicle

PendencyType = Literal["missing_photos", "missing_ads", "incomplete_info", "document_pending"]
PendencySeverity = Literal["critical", "high", "medium", "low"]

MAIN_PLATFORMS = ("OLX", "WhatsApp", "Mercado Livre", "ICarros")
PENDING_DOCUMENT_STATUSES = (
    "Fazendo Laudo",
    "Vistoria",
    "Transferência",
    "IPVA Atrasado",
    "Multas Pendentes",
)
MIN_DESCRIPTION_LENGTH = 50

# Photo flag each store requires on its vehicles.
STORE_PHOTO_FLAGS = {
    "Roberto Automóveis": "fotos_roberto",
    "RN Multimarcas": "fotos_rn",
}

SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class VehiclePendency(BaseModel):
    id: str
    vehicle_id: str
    plate: str
    type: PendencyType
    severity: PendencySeverity
    title: str
    description: str
    missing_platforms: list[str] = Field(default_factory=list)
    store: str | None = None
    created_at: datetime | None = None


class PendencyStats(BaseModel):
    total: int = 0
    critical: int = 0
    by_type: dict[str, int] = Field(
        default_factory=lambda: {
            "missing_photos": 0,
            "missing_ads": 0,
            "incomplete_info": 0,
            "document_pending": 0,
        }
    )
    by_store: dict[str, int] = Field(default_factory=dict)


def detect_vehicle_pendencies(
    vehicles: Iterable[Vehicle], advertisements: Iterable[Advertisement]
) -> list[VehiclePendency]:
    ads = list(advertisements)
    found: list[VehiclePendency] = []
    for vehicle in vehicles:
        found.extend(_vehicle_pendencies(vehicle, ads))
    # Stable sort keeps per-vehicle detection order within a severity.
    return sorted(found, key=lambda pendency: SEVERITY_ORDER[pendency.severity])


def pendency_stats(pendencies: Iterable[VehiclePendency]) -> PendencyStats:
    stats = PendencyStats()
    for pendency in pendencies:
        stats.total += 1
        stats.by_type[pendency.type] = stats.by_type.get(pendency.type, 0) + 1
        store = pendency.store or "unknown"
        stats.by_store[store] = stats.by_store.get(store, 0) + 1
        if pendency.severity == "critical":
            stats.critical += 1
    return stats


def _vehicle_pendencies(vehicle: Vehicle, ads: list[Advertisement]) -> list[VehiclePendency]:
    def pendency(suffix: str, **fields: object) -> VehiclePendency:
        return VehiclePendency(
            id=f"{vehicle.id}-{suffix}",
            vehicle_id=vehicle.id,
            plate=vehicle.plate,
            store=vehicle.store,
            created_at=vehicle.added_at,
            **fields,
        )

    found: list[VehiclePendency] = []

    photo_flag = STORE_PHOTO_FLAGS.get(vehicle.store or "")
    if photo_flag and not getattr(vehicle, photo_flag):
        found.append(
            pendency(
                "photos",
                type="missing_photos",
                severity="critical",
                title=f"Photos required - {vehicle.plate}",
                description=f"Vehicle {vehicle.model} needs photos for store {vehicle.store}",
            )
        )

    published = {ad.platform for ad in ads if ad.publicado and vehicle.plate in ad.vehicle_plates}
    missing = [platform for platform in MAIN_PLATFORMS if platform not in published]
    if missing:
        found.append(
            pendency(
                "ads",
                type="missing_ads",
                severity="critical" if len(missing) > 2 else "high",
                title=f"Missing advertisements - {vehicle.plate}",
                description=f"Missing advertisements on {len(missing)} platform(s): {', '.join(missing)}",
                missing_platforms=missing,
            )
        )

    if len((vehicle.description or "").strip()) < MIN_DESCRIPTION_LENGTH:
        found.append(
            pendency(
                "info",
                type="incomplete_info",
                severity="medium",
                title=f"Incomplete information - {vehicle.plate}",
                description=f"Vehicle {vehicle.model} needs a more detailed description",
            )
        )

    if vehicle.documentacao in PENDING_DOCUMENT_STATUSES:
        found.append(
            pendency(
                "docs",
                type="document_pending",
                severity="critical" if vehicle.documentacao == "IPVA Atrasado" else "high",
                title=f"Documentation pending - {vehicle.plate}",
                description=f"Status: {vehicle.documentacao}. Follow up on the process.",
            )
        )
    return found
