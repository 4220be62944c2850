"""Application entry point: wires the Local Store, API client and
background sync, then runs the Qt event loop headless."""

import logging
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from vip_dashboard.config import Config

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None):
    """Root logging at ``Config.LOG_LEVEL`` unless *level* is given."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    """Launch the VIP dashboard sync service."""
    configure_logging()

    # Import here so logging is configured before modules log
    from vip_dashboard.api.client import APIClient
    from vip_dashboard.auth.controller import AuthenticationController
    from vip_dashboard.auth.credentials import CredentialStore
    from vip_dashboard.database.connection import DatabaseConnection
    from vip_dashboard.database.repository import Repository
    from vip_dashboard.database.schema import initialize_database
    from vip_dashboard.sync.engine import SyncEngine
    from vip_dashboard.sync.scheduler import BackgroundSyncScheduler

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    auth = AuthenticationController(CredentialStore())
    auth.bootstrap()
    if not auth.is_authenticated:
        logger.error("No API key stored; set one before syncing")
        sys.exit(1)
    logger.info(f"Authenticated as {auth.user_facing_token} "
                f"(channel {Config.BUILD_CHANNEL})")

    app = QCoreApplication(sys.argv)
    app.setApplicationName("VIP Dashboard")

    client = APIClient(auth_provider=auth)
    engine = SyncEngine(client, repo)
    scheduler = BackgroundSyncScheduler()
    scheduler.register(engine.sync_all)
    scheduler.sync_finished.connect(
        lambda summary: logger.info(f"Synced: {summary} "
                                    f"last_error={engine.last_error}")
    )
    scheduler.start()

    # First sync as soon as the event loop is running
    QTimer.singleShot(0, scheduler.run_now)
    app.aboutToQuit.connect(engine.cancel)

    exit_code = app.exec()
    scheduler.stop()
    client.close()
    auth.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
