"""Base services container for dependency injection."""

from datetime import timedelta

from config import Config
from db.manager import DatabaseManager


class Services:
    """Container for all application services.

    This class provides a centralized way to access all services and makes
    it easy to inject mock services for testing.

    Args:
        config: Application configuration object.
        db_manager: Optional database manager for testing. If provided, config is ignored.
        clock: Optional clock for the session registry (testing).
    """

    def __init__(self, config: Config, db_manager=None, clock=None):
        """Initialize services with configuration.

        Loads the import sessions still on disk into the session registry.

        Args:
            config: Config object containing application configuration.
            db_manager: Optional database manager for dependency injection (testing).
                       If None, creates DatabaseManager from config.
            clock: Optional callable returning the current aware datetime.
        """
        self.config = config
        self.db_manager = db_manager or DatabaseManager(config)

        # Lazy import to avoid circular dependencies
        from services.trades import TradeService
        from services.strategies import StrategyService
        from services.data_imports import DataImportService
        from services.file_store import FileStore
        from services.sessions import SessionRegistry
        from services.importer import ImportEngine
        from services.import_sessions import ImportSessionService

        self.trades = TradeService(self.db_manager)
        self.strategies = StrategyService(self.db_manager)
        self.data_imports = DataImportService(self.db_manager)

        self.file_store = FileStore(config.upload_dir, config.max_upload_bytes)
        self.sessions = SessionRegistry(
            config.sessions_dir,
            self.file_store,
            ttl=timedelta(minutes=config.session_ttl_minutes),
            clock=clock,
        )
        self.sessions.load()

        self.importer = ImportEngine(
            self.trades, self.strategies, self.data_imports, self.file_store
        )
        self.imports = ImportSessionService(
            self.sessions, self.importer, self.file_store, config.execute_policy
        )

    def cleanup_scheduler(self):
        """Create a CleanupScheduler for this container's session registry."""
        from services.cleanup import CleanupScheduler

        return CleanupScheduler(self.sessions, self.config.cleanup_interval_seconds)
