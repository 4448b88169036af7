"""
Report store: defaults, ownership, ordering, deletion, change notifications.
"""
import pytest

from smarthire.services.event_broker import ALL_REPORTS_TOPIC, EventBroker, reports_topic
from smarthire.services.report_service import ReportService


@pytest.fixture
def reports(db, broker):
    return ReportService(db, broker)


class TestSaveReport:
    @pytest.mark.asyncio
    async def test_defaults_filled(self, reports):
        doc = await reports.save_report("u1", {"suitabilityScore": 70}, analysis_role="Backend Engineer")
        assert doc["jobRole"] == "Untitled Role"
        assert doc["candidateName"] == "Unknown Candidate"
        assert doc["candidateLocation"] == "Unknown"
        assert doc["salaryIndication"] == "Not Specified"
        assert doc["owner_id"] == "u1"
        assert doc["analysis_role"] == "Backend Engineer"
        assert isinstance(doc["timestamp"], int)
        assert "_id" not in doc

    @pytest.mark.asyncio
    async def test_existing_fields_kept(self, reports):
        doc = await reports.save_report("u1", {"jobRole": "QA", "candidateName": "Lina"})
        assert doc["jobRole"] == "QA"
        assert doc["candidateName"] == "Lina"

    @pytest.mark.asyncio
    async def test_client_cannot_spoof_owner(self, reports):
        doc = await reports.save_report("u1", {"owner_id": "someone-else"})
        assert doc["owner_id"] == "u1"


class TestListing:
    @pytest.mark.asyncio
    async def test_own_reports_newest_first(self, reports, db):
        await reports.save_report("u1", {"candidateName": "A"})
        await reports.save_report("u2", {"candidateName": "B"})
        await reports.save_report("u1", {"candidateName": "C"})
        # Force distinct timestamps regardless of clock resolution
        for i, doc in enumerate(db.candidate_reports.docs):
            doc["timestamp"] = 1000 + i

        mine = await reports.list_reports("u1")
        assert [r["candidateName"] for r in mine] == ["C", "A"]

        everyone = await reports.list_all_reports()
        assert [r["candidateName"] for r in everyone] == ["C", "B", "A"]

    @pytest.mark.asyncio
    async def test_admin_view_limited(self, reports):
        for i in range(5):
            await reports.save_report("u1", {"candidateName": str(i)})
        assert len(await reports.list_all_reports(limit=3)) == 3


class TestDelete:
    @pytest.mark.asyncio
    async def test_owner_can_delete(self, reports):
        doc = await reports.save_report("u1", {})
        assert await reports.delete_report("u1", doc["report_id"]) is True
        assert await reports.list_reports("u1") == []

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(self, reports):
        doc = await reports.save_report("u1", {})
        assert await reports.delete_report("u2", doc["report_id"]) is False
        assert len(await reports.list_reports("u1")) == 1


class TestNotifications:
    @pytest.mark.asyncio
    async def test_owner_and_admin_topics_notified(self, db):
        broker = EventBroker()
        reports = ReportService(db, broker)
        own = broker.subscribe(reports_topic("u1"))
        other = broker.subscribe(reports_topic("u2"))
        admin = broker.subscribe(ALL_REPORTS_TOPIC)

        doc = await reports.save_report("u1", {})

        assert own.get_nowait() == {"action": "saved", "owner_id": "u1", "report_id": doc["report_id"]}
        assert admin.get_nowait()["report_id"] == doc["report_id"]
        assert other.empty()


class TestEventBroker:
    def test_full_queue_drops_oldest(self):
        broker = EventBroker(max_queue_size=2)
        q = broker.subscribe("topic")
        for i in range(3):
            broker.publish("topic", i)
        assert [q.get_nowait(), q.get_nowait()] == [1, 2]

    def test_publish_without_subscribers(self):
        assert EventBroker().publish("nobody", "x") == 0

    def test_unsubscribe_removes_topic(self):
        broker = EventBroker()
        q = broker.subscribe("topic")
        broker.unsubscribe("topic", q)
        assert broker.subscriber_count("topic") == 0
        broker.unsubscribe("topic", q)
