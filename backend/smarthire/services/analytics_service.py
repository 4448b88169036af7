"""Analytics Aggregator - cross-tenant admin dashboard.

Read-only: every figure is recomputed from the stored reports and users on
each call. Reports keep the AI's free-form schema, so every field read here
tolerates missing or malformed values instead of raising.

Provides:
- aggregate_reports: one-pass statistics over candidate reports
- build_registry / registry_csv: recruiter registry (ADMIN accounts excluded)
- enrich_reports: attaches each report owner's company
- AnalyticsService.summary: stats + top-N views for the dashboard
"""
import csv
import io
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from smarthire.database import USERS
from smarthire.models import RegistryEntry, ReportStats, UserRole
from smarthire.services.report_service import ReportService

logger = logging.getLogger(__name__)

REGISTRY_HEADERS = ["Full Name", "Designation", "Company", "Email", "Phone", "Source App", "Registered Date"]

TOP_ROLES = 6
TOP_SKILL_GAPS = 5
TOP_LOCATIONS = 4
RECENT_REPORTS = 20


# =============================================================================
# Field parsing
# =============================================================================

def _number(value: Any) -> Optional[float]:
    """Numeric value or None. Booleans and NaN do not count as numbers."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def normalize_skill_gap(gap: str) -> str:
    return gap.lower().strip().replace(".", "").replace(",", "")


def parse_created_at(value: Any) -> Optional[datetime]:
    """createdAt arrives as epoch millis, a datetime, or an ISO string."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.isdigit():
            value = int(raw)
        else:
            try:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    millis = _number(value)
    if millis is None:
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


# =============================================================================
# Aggregation
# =============================================================================

def aggregate_reports(reports: Iterable[Dict[str, Any]]) -> ReportStats:
    """
    Single pass over candidate reports.

    Score mean uses every report as denominator (missing score = 0); experience
    mean only counts reports that carry a numeric yearsExperienceNum.
    """
    stats = ReportStats()
    score_sum = 0.0
    exp_sum = 0.0
    exp_count = 0

    for report in reports:
        if not isinstance(report, dict):
            continue
        stats.total_reports += 1

        score_sum += _number(report.get("suitabilityScore")) or 0.0

        fit = report.get("fitLevel")
        if isinstance(fit, str) and fit in stats.fit_counts:
            stats.fit_counts[fit] += 1

        role = report.get("jobRole") or "Unknown Role"
        if not isinstance(role, str):
            role = str(role)
        stats.role_counts[role] = stats.role_counts.get(role, 0) + 1

        summary = report.get("candidateSummary")
        if isinstance(summary, dict):
            exp = _number(summary.get("yearsExperienceNum"))
            if exp is not None:
                exp_sum += exp
                exp_count += 1

        gaps = report.get("skillGaps")
        if isinstance(gaps, list):
            for gap in gaps:
                if not isinstance(gap, str):
                    continue
                key = normalize_skill_gap(gap)
                stats.skill_gap_counts[key] = stats.skill_gap_counts.get(key, 0) + 1

        location = report.get("candidateLocation")
        if isinstance(location, str) and location and location != "Unknown":
            stats.location_counts[location] = stats.location_counts.get(location, 0) + 1

        salary = report.get("salaryIndication")
        if salary and salary != "Not Specified":
            stats.salary_data_count += 1

    if stats.total_reports:
        stats.avg_score = round(score_sum / stats.total_reports, 1)
    if exp_count:
        stats.avg_experience = round(exp_sum / exp_count, 1)
    return stats


def top_n(counts: Dict[str, int], n: int = 5) -> List[Tuple[str, int]]:
    """Highest counts first; ties keep first-seen order (sorted() is stable)."""
    if n <= 0:
        return []
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:n]


# =============================================================================
# Registry
# =============================================================================

def build_registry(users: Iterable[Dict[str, Any]]) -> List[RegistryEntry]:
    """Non-admin accounts, newest registration first (undated last)."""
    entries: List[RegistryEntry] = []
    for user in users:
        if not isinstance(user, dict):
            continue
        if user.get("role") == UserRole.ADMIN.value:
            continue
        entries.append(
            RegistryEntry(
                user_id=str(user.get("user_id") or user.get("id") or ""),
                name=str(user.get("name") or ""),
                designation=str(user.get("designation") or ""),
                company=str(user.get("company") or ""),
                email=str(user.get("email") or ""),
                phone=user.get("phone") or None,
                role=str(user.get("role") or UserRole.RECRUITER.value),
                registered_via=user.get("registeredVia") or None,
                created_at=parse_created_at(user.get("createdAt")),
            )
        )

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    entries.sort(key=lambda e: e.created_at or epoch, reverse=True)
    return entries


def registry_csv(entries: Iterable[RegistryEntry], now: Optional[datetime] = None) -> str:
    """Registry export. Header row plain, every data field quoted."""
    generated = now or datetime.now(timezone.utc)
    output = io.StringIO()
    output.write(",".join(REGISTRY_HEADERS) + "\n")

    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for entry in entries:
        registered = entry.created_at or generated
        writer.writerow([
            entry.name,
            entry.designation,
            entry.company,
            entry.email,
            entry.phone or "N/A",
            entry.registered_via or "Legacy/Unknown",
            registered.strftime("%Y-%m-%d"),
        ])
    return output.getvalue()


def enrich_reports(
    reports: Iterable[Dict[str, Any]],
    users: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Copy reports with recruiter_company from the owner's user record."""
    companies: Dict[str, str] = {}
    for user in users:
        if not isinstance(user, dict):
            continue
        user_id = user.get("user_id") or user.get("id")
        if user_id:
            companies[str(user_id)] = user.get("company") or "Unknown Co."

    enriched = []
    for report in reports:
        if not isinstance(report, dict):
            continue
        owner = report.get("owner_id") or report.get("ownerId")
        enriched.append({**report, "recruiter_company": companies.get(owner, "N/A")})
    return enriched


# =============================================================================
# Service
# =============================================================================

class AnalyticsService:
    """Loads reports and users from the store and feeds the pure functions above."""

    def __init__(self, db, reports: ReportService):
        self.db = db
        self.reports = reports

    async def _load_users(self) -> List[Dict[str, Any]]:
        cursor = self.db[USERS].find({}, {"_id": 0}).sort("createdAt", -1)
        return await cursor.to_list(length=10000)

    async def registry(self) -> List[RegistryEntry]:
        return build_registry(await self._load_users())

    async def registry_export(self) -> str:
        entries = await self.registry()
        logger.info(f"Registry export generated ({len(entries)} users)")
        return registry_csv(entries)

    async def summary(self) -> Dict[str, Any]:
        reports = await self.reports.list_all_reports()
        users = await self._load_users()

        enriched = enrich_reports(reports, users)
        stats = aggregate_reports(enriched)

        def as_rows(pairs: List[Tuple[str, int]]) -> List[Dict[str, Any]]:
            return [{"name": name, "count": count} for name, count in pairs]

        return {
            "stats": stats.model_dump(),
            "top_roles": as_rows(top_n(stats.role_counts, TOP_ROLES)),
            "top_skill_gaps": as_rows(top_n(stats.skill_gap_counts, TOP_SKILL_GAPS)),
            "top_locations": as_rows(top_n(stats.location_counts, TOP_LOCATIONS)),
            "recent_reports": enriched[:RECENT_REPORTS],
            "registered_users": len(build_registry(users)),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
