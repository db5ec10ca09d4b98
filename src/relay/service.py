"""Relay service: wires the extraction pipeline, sync channels and updater.

UI-change notifications are approximated by polling the tree accessor at a
short interval. Each pass runs extract -> reconcile -> dispatch; the
heartbeat runs the same pass on its own interval. The update watcher and
poller run independently of the pipeline.
"""

import threading
import time
from dataclasses import dataclass
from pathlib import Path

from common.constants import KEY_KDS_PACKAGE
from common.env import Environment
from common.logger import RollingLogHandler, get_logger
from common.settings import SettingsStore
from common.tasks import PeriodicLoop, TaskRunner
from extract.accessor import TreeAccessor
from extract.counters import extract_state
from extract.models import ObservedState
from extract.tree import dump_tree
from reconcile.heartbeat import HeartbeatDriver
from reconcile.reconciler import ReconcileResult, Reconciler
from sync.clients.base import CredentialsError
from sync.clients.primary_store import PrimaryStoreClient
from sync.clients.push import PushClient
from sync.clients.secondary_store import SecondaryStoreClient
from sync.credentials import RemoteCredentialsLoader, ServiceAccount, TokenManager
from sync.dispatcher import SyncDispatcher
from update.downloader import PackageDownloader
from update.guard import VersionGuard
from update.installer import CommandInstaller, Installer, LoggingInstaller
from update.poller import UpdatePoller
from update.updater import Updater
from update.watcher import UpdateStreamWatcher

logger = get_logger(__name__)

EVENT_LOG_INTERVAL = 10.0


@dataclass
class RelayConfig:
    """Runtime configuration of the relay service."""

    kds_package: str
    primary_store_url: str = ""
    secondary_config_url: str = ""
    service_account_file: Path | None = None
    push_project_id: str = ""
    push_topic: str = "kds_push"
    version_url: str = ""
    app_version: str = "0.0.0"
    install_command: str = ""
    update_dir: Path = Path("./data/updates")
    heartbeat_seconds: float = 30.0
    poll_seconds: float = 2.0
    update_poll_seconds: float = 3600.0
    secondary_min_interval: float = 10.0

    @classmethod
    def from_env(cls, env: Environment) -> "RelayConfig":
        return cls(
            kds_package=env.kds_package(),
            primary_store_url=env.primary_store_url(),
            secondary_config_url=env.secondary_config_url(),
            service_account_file=env.service_account_file(),
            push_project_id=env.push_project_id(),
            push_topic=env.push_topic(),
            version_url=env.version_url(),
            app_version=env.app_version(),
            install_command=env.install_command(),
            update_dir=env.update_dir(),
            heartbeat_seconds=env.heartbeat_seconds(),
            poll_seconds=env.poll_seconds(),
            update_poll_seconds=env.update_poll_seconds(),
            secondary_min_interval=env.secondary_min_interval_seconds(),
        )


def build_push_client(config: RelayConfig) -> PushClient | None:
    """Create the push client, or None if no service account is configured."""
    if config.service_account_file is None:
        logger.info("Push channel disabled (no service account)")
        return None
    try:
        account = ServiceAccount.from_file(config.service_account_file)
    except CredentialsError as e:
        logger.warning(f"Push channel disabled: {e}")
        return None
    project_id = config.push_project_id or account.project_id
    if not project_id:
        logger.warning("Push channel disabled: no project id")
        return None
    return PushClient(project_id, TokenManager(account), topic=config.push_topic)


def build_dispatcher(
    config: RelayConfig, runner: TaskRunner, rolling_log: RollingLogHandler | None
) -> SyncDispatcher:
    """Create the dispatcher with every channel the configuration enables."""
    primary = PrimaryStoreClient(config.primary_store_url) if config.primary_store_url else None
    if config.secondary_config_url:
        secondary = SecondaryStoreClient()
        credentials = RemoteCredentialsLoader(config.secondary_config_url)
    else:
        secondary, credentials = None, None
    return SyncDispatcher(
        runner=runner,
        primary=primary,
        secondary=secondary,
        secondary_credentials=credentials,
        push=build_push_client(config),
        log_tail=rolling_log.tail if rolling_log is not None else None,
        secondary_min_interval=config.secondary_min_interval,
    )


class RelayService:
    """The running relay: tree polling, heartbeat, dispatch and self-update."""

    def __init__(
        self,
        config: RelayConfig,
        accessor: TreeAccessor,
        settings: SettingsStore,
        dispatcher: SyncDispatcher,
        runner: TaskRunner,
        updater: Updater | None = None,
    ):
        self.config = config
        self.accessor = accessor
        self.settings = settings
        self.dispatcher = dispatcher
        self.runner = runner
        self.reconciler = Reconciler(dispatcher=dispatcher, settings=settings)
        self.heartbeat = HeartbeatDriver(self.reconciler, self.run_pass, config.heartbeat_seconds)
        self._poll_loop = PeriodicLoop("tree-poll", config.poll_seconds, self.run_pass, initial_delay=0)
        self._dump_requested = threading.Event()
        self._event_lock = threading.Lock()
        self._pass_count = 0
        self._last_event_log = 0.0

        self.update_watcher: UpdateStreamWatcher | None = None
        self.update_poller: UpdatePoller | None = None
        if updater is not None and config.version_url:
            self.update_watcher = UpdateStreamWatcher(config.version_url, updater, runner)
            self.update_poller = UpdatePoller(
                config.version_url, updater, interval=config.update_poll_seconds
            )

    @property
    def kds_package(self) -> str:
        return self.settings.get(KEY_KDS_PACKAGE) or self.config.kds_package

    def request_dump(self) -> None:
        """Dump and upload the tree on the next successful pass."""
        self._dump_requested.set()

    def run_pass(self) -> ReconcileResult | None:
        """Run one extract -> reconcile -> dispatch pass.

        Returns:
            The reconciliation result, or None if the tree was unavailable
        """
        package = self.kds_package
        self._log_pass_rate(package)

        root = self.accessor.current_root(package)
        if root is None:
            logger.debug(f"No tree available for {package}")
            return None

        if self._dump_requested.is_set():
            self._dump_requested.clear()
            self.dispatcher.publish_dump(package, dump_tree(root))

        observed: ObservedState = extract_state(root)
        # Drop the tree before dispatching so no node outlives the pass
        del root
        if observed.is_empty():
            logger.debug(f"No counters found in the {package} tree")
        return self.reconciler.reconcile(observed)

    def _log_pass_rate(self, package: str) -> None:
        with self._event_lock:
            self._pass_count += 1
            now = time.monotonic()
            if now - self._last_event_log <= EVENT_LOG_INTERVAL:
                return
            count, self._pass_count = self._pass_count, 0
            self._last_event_log = now
        logger.debug(f"{count} pass(es) since last report, target={package}")

    def start(self) -> None:
        logger.info(f"Relay started, KDS package={self.kds_package}")
        self._poll_loop.start()
        self.heartbeat.start()
        if self.update_watcher is not None:
            self.update_watcher.start()
        if self.update_poller is not None:
            self.update_poller.start()

    def stop(self) -> None:
        if self.update_watcher is not None:
            self.update_watcher.stop()
        if self.update_poller is not None:
            self.update_poller.stop()
        self.heartbeat.stop()
        self._poll_loop.stop()
        self.runner.shutdown(wait=False)
        logger.info("Relay stopped")


def build_updater(
    config: RelayConfig, dispatcher: SyncDispatcher | None = None
) -> Updater:
    """Create the shared update sequence from configuration."""
    installer: Installer = (
        CommandInstaller(config.install_command) if config.install_command else LoggingInstaller()
    )
    return Updater(
        guard=VersionGuard(config.app_version),
        downloader=PackageDownloader(config.update_dir),
        installer=installer,
        remote_log=dispatcher.publish_log if dispatcher is not None else None,
    )
