"""Candidate report storage.

Reports keep the AI's camelCase schema untouched; this service only fills
display defaults and stamps ownership. Every change is announced on the
owner's report topic and on the cross-tenant admin topic.
"""
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from smarthire.database import CANDIDATE_REPORTS
from smarthire.services.event_broker import ALL_REPORTS_TOPIC, EventBroker, reports_topic

logger = logging.getLogger(__name__)

REPORT_DEFAULTS = {
    "jobRole": "Untitled Role",
    "candidateName": "Unknown Candidate",
    "candidateLocation": "Unknown",
    "salaryIndication": "Not Specified",
}

ADMIN_REPORT_LIMIT = 100


class ReportService:
    def __init__(self, db, broker: EventBroker):
        self.db = db
        self.broker = broker

    @property
    def _reports(self):
        return self.db[CANDIDATE_REPORTS]

    async def save_report(
        self,
        owner_id: str,
        report: Dict[str, Any],
        analysis_role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Persist one report for owner_id. Returns the stored document."""
        doc = dict(report)
        for field, default in REPORT_DEFAULTS.items():
            if not doc.get(field):
                doc[field] = default

        doc.pop("_id", None)
        doc["report_id"] = str(uuid.uuid4())
        doc["owner_id"] = owner_id
        doc["analysis_role"] = analysis_role
        doc["timestamp"] = int(time.time() * 1000)

        await self._reports.insert_one(doc)
        doc.pop("_id", None)

        logger.info(f"Report {doc['report_id']} saved for {owner_id}")
        self._announce("saved", owner_id, doc["report_id"])
        return doc

    async def list_reports(self, owner_id: str, limit: int = 500) -> List[Dict[str, Any]]:
        """One tenant's reports, newest first."""
        cursor = self._reports.find({"owner_id": owner_id}, {"_id": 0}).sort("timestamp", -1).limit(limit)
        return await cursor.to_list(length=limit)

    async def list_all_reports(self, limit: int = ADMIN_REPORT_LIMIT) -> List[Dict[str, Any]]:
        """Latest reports across every tenant (admin view)."""
        cursor = self._reports.find({}, {"_id": 0}).sort("timestamp", -1).limit(limit)
        return await cursor.to_list(length=limit)

    async def delete_report(self, owner_id: str, report_id: str) -> bool:
        """Delete a report owned by owner_id. False when nothing matched."""
        result = await self._reports.delete_one({"report_id": report_id, "owner_id": owner_id})
        if not result.deleted_count:
            return False
        logger.info(f"Report {report_id} deleted by {owner_id}")
        self._announce("deleted", owner_id, report_id)
        return True

    def _announce(self, action: str, owner_id: str, report_id: str) -> None:
        message = {"action": action, "owner_id": owner_id, "report_id": report_id}
        self.broker.publish(reports_topic(owner_id), message)
        self.broker.publish(ALL_REPORTS_TOPIC, message)
