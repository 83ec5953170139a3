from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock

import pytest

import app.models  # noqa: F401  every mapper must be registered before models are instantiated
from app.auth import create_token
from app.exceptions import PatientNotFoundError
from app.repositories.health_repository import (
    SEVERITY_RANK,
    DiseaseOccurrence,
    MedicineStat,
    PrescriptionTotals,
    SideEffectEntry,
)
from app.services.health_intelligence_service import HealthIntelligenceService
from app.services.medicine_service import MedicineService
from app.services.risk_policies import STANDARD_POLICY


class FakeHealthRepository:
    """In-memory stand-in for HealthRepository with the same method surface."""

    def __init__(self):
        self.patients: dict[int, Optional[int]] = {}
        self.inactive: set[int] = set()
        self.diseases: list[tuple[int, str, date]] = []
        self.prescriptions: list[dict] = []
        self.catalog: list[SideEffectEntry] = []
        self.scores: dict[tuple[int, date], dict] = {}
        self.upsert_calls = 0
        self.failing: set[str] = set()

    # --- fixture helpers ---

    def add_patient(self, patient_id: int, age: Optional[int] = None, active: bool = True):
        self.patients[patient_id] = age
        if not active:
            self.inactive.add(patient_id)

    def add_disease(self, patient_id: int, name: str, days_ago: int = 10, times: int = 1):
        for i in range(times):
            self.diseases.append((patient_id, name, date.today() - timedelta(days=days_ago + i)))

    def add_prescription(
        self,
        patient_id: int,
        medicine: str,
        times: int = 1,
        days_ago: int = 5,
        doctor_id: int = 1,
        allergy: bool = False,
        side_effect: Optional[str] = None,
    ):
        for i in range(times):
            self.prescriptions.append({
                "patient_id": patient_id,
                "medicine_name": medicine,
                "created_at": datetime.now(timezone.utc) - timedelta(days=days_ago + i),
                "doctor_id": doctor_id,
                "reported_allergy": allergy,
                "side_effects": side_effect,
            })

    def _check(self, name: str):
        if name in self.failing:
            raise RuntimeError("database unavailable")

    def _prescriptions(self, patient_id: int, since: Optional[datetime] = None) -> list[dict]:
        return [
            p for p in self.prescriptions
            if p["patient_id"] == patient_id and (since is None or p["created_at"] >= since)
        ]

    # --- repository surface ---

    async def get_patient_age(self, patient_id: int) -> Optional[int]:
        self._check("get_patient_age")
        if patient_id not in self.patients or patient_id in self.inactive:
            raise PatientNotFoundError(patient_id)
        return self.patients[patient_id]

    async def get_disease_occurrences(self, patient_id: int, since: Optional[date] = None) -> list[DiseaseOccurrence]:
        self._check("get_disease_occurrences")
        if patient_id in self.inactive:
            return []
        grouped = defaultdict(list)
        for pid, name, diagnosed in self.diseases:
            if pid == patient_id and (since is None or diagnosed >= since):
                grouped[name].append(diagnosed)
        occurrences = [
            DiseaseOccurrence(name, len(dates), min(dates), max(dates))
            for name, dates in grouped.items()
        ]
        return sorted(occurrences, key=lambda o: (-o.count, o.disease_name))

    async def get_patient_disease_names(self, patient_id: int) -> list[str]:
        self._check("get_patient_disease_names")
        return sorted({name for pid, name, _ in self.diseases if pid == patient_id})

    async def get_medicine_stats(self, patient_id: int) -> list[MedicineStat]:
        self._check("get_medicine_stats")
        grouped = defaultdict(list)
        for p in self._prescriptions(patient_id):
            grouped[p["medicine_name"]].append(p)
        stats = [
            MedicineStat(
                medicine_name=name,
                count=len(rows),
                first_prescribed=min(r["created_at"] for r in rows),
                last_prescribed=max(r["created_at"] for r in rows),
                allergy_reports=sum(1 for r in rows if r["reported_allergy"]),
                side_effects=sorted({r["side_effects"] for r in rows if r["side_effects"]}),
            )
            for name, rows in grouped.items()
        ]
        return sorted(stats, key=lambda s: (-s.count, s.medicine_name))

    async def get_prescription_totals(self, patient_id: int, since: Optional[datetime] = None) -> PrescriptionTotals:
        self._check("get_prescription_totals")
        rows = self._prescriptions(patient_id, since)
        if not rows:
            return PrescriptionTotals()
        return PrescriptionTotals(
            total_prescriptions=len(rows),
            unique_medicines=len({r["medicine_name"] for r in rows}),
            first_prescription=min(r["created_at"] for r in rows),
            latest_prescription=max(r["created_at"] for r in rows),
        )

    async def get_allergy_incident_count(self, patient_id: int) -> int:
        self._check("get_allergy_incident_count")
        return sum(1 for p in self._prescriptions(patient_id) if p["reported_allergy"])

    async def get_doctor_count(self, patient_id: int) -> int:
        self._check("get_doctor_count")
        return len({p["doctor_id"] for p in self._prescriptions(patient_id)})

    async def get_known_side_effects(self, patient_id: int) -> list[SideEffectEntry]:
        self._check("get_known_side_effects")
        prescribed = {p["medicine_name"] for p in self._prescriptions(patient_id)}
        entries = [e for e in self.catalog if e.medicine_name in prescribed]
        return sorted(entries, key=lambda e: (SEVERITY_RANK[e.severity], e.medicine_name, e.side_effect))

    async def upsert_risk_score(self, patient_id, day, score, level, policy, factors) -> None:
        self._check("upsert_risk_score")
        self.upsert_calls += 1
        self.scores[(patient_id, day)] = {
            "risk_score": score,
            "risk_level": level,
            "policy": policy,
            "factors": factors,
        }


@pytest.fixture
def repo():
    return FakeHealthRepository()


@pytest.fixture
def cache():
    cache = AsyncMock()
    cache.get.return_value = None
    return cache


@pytest.fixture
def medicines(repo):
    return MedicineService(repo)


@pytest.fixture
def service(repo, medicines, cache):
    return HealthIntelligenceService(repo, medicines, cache, STANDARD_POLICY)


def make_token(role: str, patient_id: Optional[int] = None, doctor_id: Optional[int] = None) -> str:
    user = SimpleNamespace(
        username=f"test.{role}",
        display_name=f"Test {role.title()}",
        role=role,
        patient_id=patient_id,
        doctor_id=doctor_id,
    )
    return create_token(user)


def auth_header(role: str, **ids) -> dict:
    return {"Authorization": f"Bearer {make_token(role, **ids)}"}
