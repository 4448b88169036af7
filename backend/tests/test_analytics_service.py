"""
Analytics aggregator: means, fit/role/skill-gap/location counts, top-N ordering,
registry filtering and CSV export, report enrichment.
"""
from datetime import datetime, timezone

import pytest

from smarthire.services.analytics_service import (
    AnalyticsService,
    aggregate_reports,
    build_registry,
    enrich_reports,
    parse_created_at,
    registry_csv,
    top_n,
)
from smarthire.services.report_service import ReportService


class TestAggregateReports:
    def test_empty_input(self):
        stats = aggregate_reports([])
        assert stats.total_reports == 0
        assert stats.avg_score == 0.0
        assert stats.avg_experience == 0.0
        assert stats.fit_counts == {"EXCELLENT FIT": 0, "GOOD FIT": 0, "AVERAGE": 0, "POOR FIT": 0}

    def test_means_with_missing_experience(self):
        reports = [
            {"suitabilityScore": 80, "candidateSummary": {"yearsExperienceNum": 3}},
            {"suitabilityScore": 90, "candidateSummary": {"yearsExperienceNum": 5}},
            {"suitabilityScore": 70},
        ]
        stats = aggregate_reports(reports)
        assert stats.total_reports == 3
        assert stats.avg_score == 80.0
        assert stats.avg_experience == 4.0

    def test_missing_score_counts_as_zero(self):
        stats = aggregate_reports([{"suitabilityScore": 90}, {"jobRole": "QA"}])
        assert stats.avg_score == 45.0

    def test_non_numeric_values_do_not_raise(self):
        reports = [
            {"suitabilityScore": "n/a", "candidateSummary": {"yearsExperienceNum": "lots"}},
            {"suitabilityScore": None, "candidateSummary": None},
            {"suitabilityScore": 60, "candidateSummary": {"yearsExperienceNum": 2.5}},
        ]
        stats = aggregate_reports(reports)
        assert stats.avg_score == 20.0
        assert stats.avg_experience == 2.5

    def test_mean_rounded_to_one_decimal(self):
        stats = aggregate_reports([{"suitabilityScore": 70}, {"suitabilityScore": 71}, {"suitabilityScore": 71}])
        assert stats.avg_score == 70.7

    def test_fit_counts_only_known_levels(self):
        reports = [
            {"fitLevel": "EXCELLENT FIT"},
            {"fitLevel": "EXCELLENT FIT"},
            {"fitLevel": "POOR FIT"},
            {"fitLevel": "MAYBE"},
            {},
        ]
        stats = aggregate_reports(reports)
        assert stats.fit_counts == {"EXCELLENT FIT": 2, "GOOD FIT": 0, "AVERAGE": 0, "POOR FIT": 1}

    def test_role_counts_default_unknown(self):
        stats = aggregate_reports([{"jobRole": "Data Engineer"}, {"jobRole": ""}, {}])
        assert stats.role_counts == {"Data Engineer": 1, "Unknown Role": 2}

    def test_skill_gaps_normalized(self):
        reports = [
            {"skillGaps": ["Kubernetes.", " kubernetes", "AWS, GCP"]},
            {"skillGaps": ["KUBERNETES", 42, None]},
            {"skillGaps": "not a list"},
        ]
        stats = aggregate_reports(reports)
        assert stats.skill_gap_counts == {"kubernetes": 3, "aws gcp": 1}

    def test_locations_skip_unknown_and_empty(self):
        reports = [
            {"candidateLocation": "Dubai"},
            {"candidateLocation": "Dubai"},
            {"candidateLocation": "Unknown"},
            {"candidateLocation": ""},
            {"candidateLocation": "Riyadh"},
        ]
        stats = aggregate_reports(reports)
        assert stats.location_counts == {"Dubai": 2, "Riyadh": 1}

    def test_salary_data_count(self):
        reports = [
            {"salaryIndication": "AED 20k"},
            {"salaryIndication": "Not Specified"},
            {},
        ]
        assert aggregate_reports(reports).salary_data_count == 1


class TestTopN:
    def test_descending_by_count(self):
        assert top_n({"a": 1, "b": 5, "c": 3}, 2) == [("b", 5), ("c", 3)]

    def test_ties_keep_first_seen_order(self):
        counts = {"python": 2, "sql": 3, "go": 2, "rust": 2}
        assert top_n(counts, 3) == [("sql", 3), ("python", 2), ("go", 2)]

    def test_n_larger_than_input(self):
        assert top_n({"a": 1}, 5) == [("a", 1)]

    def test_zero(self):
        assert top_n({"a": 1}, 0) == []


USERS = [
    {"user_id": "u1", "name": "Ada", "designation": "HR Lead", "company": "Acme", "email": "ada@acme.io",
     "phone": "+971 50 000", "role": "RECRUITER", "registeredVia": "SMARTHIRE", "createdAt": 1_700_000_000_000},
    {"user_id": "admin", "name": "Ops", "role": "ADMIN", "createdAt": 1_800_000_000_000},
    {"user_id": "u2", "name": "Bo \"The\" Builder", "company": "Build, Inc", "email": "bo@build.io",
     "role": "RECRUITER", "createdAt": "2024-03-01T10:00:00Z"},
    {"user_id": "u3", "name": "Legacy", "role": "RECRUITER"},
]


class TestRegistry:
    def test_admins_excluded_and_newest_first(self):
        entries = build_registry(USERS)
        assert [e.user_id for e in entries] == ["u2", "u1", "u3"]

    def test_created_at_formats(self):
        assert parse_created_at(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert parse_created_at("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
        assert parse_created_at("1700000000000").year == 2023
        assert parse_created_at("garbage") is None
        assert parse_created_at(None) is None

    def test_csv_headers_defaults_and_quoting(self):
        now = datetime(2025, 1, 2, tzinfo=timezone.utc)
        content = registry_csv(build_registry(USERS), now=now)
        lines = content.strip().split("\n")

        assert lines[0] == "Full Name,Designation,Company,Email,Phone,Source App,Registered Date"
        assert lines[1] == '"Bo ""The"" Builder","","Build, Inc","bo@build.io","N/A","Legacy/Unknown","2024-03-01"'
        assert lines[2] == '"Ada","HR Lead","Acme","ada@acme.io","+971 50 000","SMARTHIRE","2023-11-14"'
        assert lines[3] == '"Legacy","","","","N/A","Legacy/Unknown","2025-01-02"'

    def test_empty_registry_is_header_only(self):
        assert registry_csv([]) == "Full Name,Designation,Company,Email,Phone,Source App,Registered Date\n"


class TestEnrichReports:
    def test_company_attached_by_owner(self):
        reports = [
            {"report_id": "r1", "owner_id": "u1"},
            {"report_id": "r2", "owner_id": "u3"},
            {"report_id": "r3", "owner_id": "ghost"},
            {"report_id": "r4"},
        ]
        enriched = enrich_reports(reports, USERS)
        assert [r["recruiter_company"] for r in enriched] == ["Acme", "Unknown Co.", "N/A", "N/A"]
        assert "recruiter_company" not in reports[0]

    def test_malformed_entries_skipped(self):
        enriched = enrich_reports([None, "junk", 42, {"report_id": "r1", "owner_id": "u1"}], USERS)
        assert [r["report_id"] for r in enriched] == ["r1"]


class TestAnalyticsService:
    @pytest.mark.asyncio
    async def test_summary_over_stored_reports(self, db, broker):
        for user in USERS:
            await db.users.insert_one(dict(user))
        reports = ReportService(db, broker)
        await reports.save_report("u1", {"jobRole": "Data Engineer", "suitabilityScore": 80,
                                         "fitLevel": "GOOD FIT", "skillGaps": ["Spark"]})
        await reports.save_report("u2", {"jobRole": "Data Engineer", "suitabilityScore": 60,
                                         "candidateLocation": "Dubai"})

        summary = await AnalyticsService(db, reports).summary()

        assert summary["stats"]["total_reports"] == 2
        assert summary["stats"]["avg_score"] == 70.0
        assert summary["top_roles"] == [{"name": "Data Engineer", "count": 2}]
        assert summary["top_skill_gaps"] == [{"name": "spark", "count": 1}]
        assert summary["top_locations"] == [{"name": "Dubai", "count": 1}]
        assert summary["registered_users"] == 3
        assert {r["recruiter_company"] for r in summary["recent_reports"]} == {"Acme", "Build, Inc"}

    @pytest.mark.asyncio
    async def test_registry_export(self, db, broker):
        for user in USERS:
            await db.users.insert_one(dict(user))
        content = await AnalyticsService(db, ReportService(db, broker)).registry_export()
        assert content.startswith("Full Name,")
        assert "Ops" not in content
