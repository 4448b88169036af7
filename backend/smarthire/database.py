from motor.motor_asyncio import AsyncIOMotorClient
import logging

from smarthire.config import Settings

logger = logging.getLogger(__name__)

ENTITLEMENTS = "entitlements"
BILLING_CUSTOMER_INDEX = "billing_customer_index"
BILLING_EVENTS = "billing_events"
CANDIDATE_REPORTS = "candidate_reports"
USERS = "users"


class Database:
    client: AsyncIOMotorClient = None
    db = None

    def __init__(self, settings: Settings):
        self.settings = settings

    async def connect(self):
        try:
            self.client = AsyncIOMotorClient(self.settings.mongo_url)
            self.db = self.client[self.settings.db_name]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {self.settings.db_name}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for lookups used by the entitlement core."""
        try:
            # One entitlement document per tenant under the well-known tracker name
            await self.db[ENTITLEMENTS].create_index(
                [("tenant_id", 1), ("tracker", 1)], unique=True
            )
            # Reverse mapping used by cancellation fan-out
            await self.db[BILLING_CUSTOMER_INDEX].create_index(
                [("billing_customer_ref", 1), ("tenant_id", 1)], unique=True
            )
            # Stripe webhook idempotency - duplicate event_id must not process twice
            await self.db[BILLING_EVENTS].create_index("event_id", unique=True)

            await self.db[CANDIDATE_REPORTS].create_index("report_id", unique=True)
            await self.db[CANDIDATE_REPORTS].create_index([("owner_id", 1), ("timestamp", -1)])
            await self.db[CANDIDATE_REPORTS].create_index([("timestamp", -1)])

            await self.db[USERS].create_index("user_id", unique=True)
            await self.db[USERS].create_index([("createdAt", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist with other options, log but don't fail
            logger.warning(f"Index creation note: {e}")
