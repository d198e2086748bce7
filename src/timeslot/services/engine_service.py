"""
Engine Service

Main composite service that manages the storages and series services.
Singleton pattern - one instance per process.
"""
import logging
from typing import Optional

from ..config import Config
from ..schema.metadata import PostgresSchemaMetadata
from ..storage.data_access import PostgresDataAccess
from ..storage.series_storage import SeriesStorage
from .conflict_service import ConflictService
from .expansion_scheduler import ExpansionScheduler
from .recurring_service import RecurringService
from .series_service import SeriesService
from .version_store import SeriesVersionStore

logger = logging.getLogger("timeslot.services.engine")

# Singleton instance
_engine_service: Optional["EngineService"] = None


class EngineService:
    """
    Composite engine service.

    Manages:
    - PostgreSQL connections (data access + schema metadata)
    - Series services
    - Background expansion
    - Graceful shutdown
    """

    def __init__(self):
        """Initialize engine service with all storages"""
        self.postgres_dsn = Config.get_postgres_dsn()

        # Initialize storages
        self.data_access = PostgresDataAccess(self.postgres_dsn)
        self.schema_metadata = PostgresSchemaMetadata(self.postgres_dsn)
        self.series_storage = SeriesStorage(self.data_access, schema=Config.SERIES_SCHEMA)

        # Initialize services (after storages)
        self.conflict_service = ConflictService(self.data_access)
        self.version_store = SeriesVersionStore(self.series_storage)
        self.series_service = SeriesService(
            storage=self.series_storage,
            data=self.data_access,
            schema=self.schema_metadata,
            conflicts=self.conflict_service,
            versions=self.version_store,
        )
        self.recurring_service = RecurringService(self.series_service, self.conflict_service)

        # Started in initialize(), stopped in close()
        self.expansion_scheduler = ExpansionScheduler(
            self.series_service,
            poll_interval=Config.EXPANSION_INTERVAL,
            enabled=Config.EXPANSION_ENABLED,
        )

        self._initialized = False
        logger.info("EngineService created")

    async def initialize(self):
        """Initialize all storages"""
        if self._initialized:
            logger.info("EngineService already initialized")
            return

        logger.info("Initializing EngineService...")

        await self.data_access.init()
        await self.schema_metadata.init()

        # Start background expansion
        await self.expansion_scheduler.start()

        self._initialized = True
        logger.info("EngineService initialized successfully")

    async def close(self):
        """Close all connections"""
        logger.info("Closing EngineService...")

        await self.expansion_scheduler.stop()
        await self.data_access.close()
        await self.schema_metadata.close()

        self._initialized = False
        logger.info("EngineService closed")

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized"""
        return self._initialized

    @classmethod
    def get_instance(cls) -> "EngineService":
        """Get singleton instance"""
        return get_engine_service()


def get_engine_service() -> EngineService:
    """Get or create engine service singleton"""
    global _engine_service
    if _engine_service is None:
        _engine_service = EngineService()
    return _engine_service


async def init_engine_service() -> EngineService:
    """Initialize and return engine service"""
    service = get_engine_service()
    await service.initialize()
    return service
