"""Tests for execution/rights_rag/storage.py and intake.py"""

import re

import pytest
from pydantic import ValidationError

from execution.rights_rag.intake import analyze_intake, generate_case_number
from execution.rights_rag.models import ExtractedEntities
from execution.rights_rag.storage import CaseNotFoundError, ReportNotFoundError

from conftest import FakeGenerationService


class TestCaseStore:

    def test_create_and_get(self, case_store):
        case = case_store.create("UNHCR-CH-2025-11111", "notes")
        assert case_store.get(case.id) == case
        assert case.status == "draft"
        assert case.created_at == case.updated_at

    def test_get_unknown_raises(self, case_store):
        with pytest.raises(CaseNotFoundError):
            case_store.get("missing")

    def test_update_replaces_record(self, case_store, diabetes_case):
        updated = case_store.update(
            diabetes_case.id,
            extracted_entities={"host_country": "Austria", "education_needs": ["German classes"]},
            status="verified",
        )
        assert updated.status == "verified"
        assert updated.extracted_entities.host_country == "Austria"
        assert updated.extracted_entities.medical_needs == []
        assert updated.id == diabetes_case.id
        assert updated.created_at == diabetes_case.created_at
        assert diabetes_case.status == "draft"

    def test_update_rejects_bad_status(self, case_store, diabetes_case):
        with pytest.raises(ValidationError):
            case_store.update(diabetes_case.id, status="archived")

    def test_update_unknown_raises(self, case_store):
        with pytest.raises(CaseNotFoundError):
            case_store.update("missing", status="verified")

    def test_list_newest_first(self, case_store):
        first = case_store.create("UNHCR-CH-2025-00001", "a")
        second = case_store.create("UNHCR-CH-2025-00002", "b")
        assert [c.id for c in case_store.list_all()] == [second.id, first.id]


class TestReportStore:

    def test_latest_report_per_case(self, report_store):
        old = report_store.create("case-1", "N-1", [], "disclaimer")
        new = report_store.create("case-1", "N-1", [], "disclaimer")
        assert report_store.get_by_case_id("case-1") == new
        assert report_store.get(old.id) == old

    def test_no_report_for_case(self, report_store):
        assert report_store.get_by_case_id("case-x") is None

    def test_get_unknown_report_raises(self, report_store):
        with pytest.raises(ReportNotFoundError):
            report_store.get("missing")


class TestIntake:

    def test_case_number_format(self):
        assert re.fullmatch(r"UNHCR-CH-2025-\d{5}", generate_case_number(2025))

    @pytest.mark.asyncio
    async def test_analyze_creates_draft_case(self, case_store):
        generation = FakeGenerationService(entities={
            "hostCountry": "Switzerland",
            "medicalNeeds": ["diabetes"],
            "educationNeeds": None,
            "age": 34,
            "familySize": 3,
            "complications": ["expired passport"],
            "urgencyLevel": "high",
        })

        case = await analyze_intake("Notes about the family.", generation, case_store)

        assert case.status == "draft"
        assert case.extracted_entities == ExtractedEntities(
            host_country="Switzerland",
            medical_needs=["diabetes"],
            age=34,
            family_size=3,
            complications=["expired passport"],
            urgency_level="high",
        )
        assert case_store.get(case.id) == case

    @pytest.mark.asyncio
    async def test_blank_notes_rejected(self, case_store):
        with pytest.raises(ValueError):
            await analyze_intake("  ", FakeGenerationService(), case_store)

    @pytest.mark.asyncio
    async def test_undecodable_entities_rejected(self, case_store):
        generation = FakeGenerationService(entities={"urgencyLevel": "apocalyptic"})
        with pytest.raises(ValueError, match="Could not decode"):
            await analyze_intake("notes", generation, case_store)
        assert len(case_store) == 0
