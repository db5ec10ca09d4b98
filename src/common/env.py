"""Environment configuration interface for kds-relay.

This module provides a clean interface for accessing environment variables,
centralizing all environment variable access in one place.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

from .constants import LOG_FILE_PATH, SETTINGS_PATH, UPDATE_DIR

# Load environment variables from .env file if it exists
load_dotenv()


class Environment:
    """Interface for accessing environment configuration."""

    @staticmethod
    def kds_package() -> str:
        """Get the package name of the observed KDS application.

        Returns:
            Package name, defaults to 'com.foodtechkorea.mate_kds'
        """
        return os.getenv("KDS_PACKAGE", "com.foodtechkorea.mate_kds")

    @staticmethod
    def primary_store_url() -> str:
        """Get the base URL of the primary (realtime database) store.

        Returns:
            Base URL without trailing slash, defaults to empty string (disabled)
        """
        return os.getenv("PRIMARY_STORE_URL", "").rstrip("/")

    @staticmethod
    def secondary_config_url() -> str:
        """Get the URL of the remote JSON document holding secondary store credentials.

        Returns:
            Config document URL, defaults to empty string (secondary store disabled)
        """
        return os.getenv("SECONDARY_CONFIG_URL", "")

    @staticmethod
    def service_account_file() -> Path | None:
        """Get the path of the push channel service account JSON file.

        Returns:
            Path to the service account file, or None if not configured
        """
        value = os.getenv("SERVICE_ACCOUNT_FILE", "")
        return Path(value) if value else None

    @staticmethod
    def push_project_id() -> str:
        """Get the project id used to build the push send endpoint.

        Returns:
            Project id, defaults to empty string
        """
        return os.getenv("PUSH_PROJECT_ID", "")

    @staticmethod
    def push_topic() -> str:
        """Get the push topic downstream devices subscribe to.

        Returns:
            Topic name, defaults to 'kds_push'
        """
        return os.getenv("PUSH_TOPIC", "kds_push")

    @staticmethod
    def version_url() -> str:
        """Get the URL of the remote version descriptor.

        Returns:
            Version descriptor URL, defaults to empty string (updates disabled)
        """
        return os.getenv("VERSION_URL", "")

    @staticmethod
    def app_version() -> str:
        """Get the version of the running relay.

        Returns:
            Version string, defaults to '0.0.0'
        """
        return os.getenv("APP_VERSION", "0.0.0")

    @staticmethod
    def install_command() -> str:
        """Get the command used to install a downloaded package.

        The placeholder ``{path}`` is replaced with the downloaded file.

        Returns:
            Command template, defaults to empty string (log only)
        """
        return os.getenv("INSTALL_COMMAND", "")

    @staticmethod
    def update_dir() -> Path:
        """Get the directory downloaded packages are written to."""
        return Path(os.getenv("UPDATE_DIR", str(UPDATE_DIR)))

    @staticmethod
    def settings_path() -> Path:
        """Get the settings store file path."""
        return Path(os.getenv("SETTINGS_PATH", str(SETTINGS_PATH)))

    @staticmethod
    def log_file() -> Path:
        """Get the rolling log file mirror path."""
        return Path(os.getenv("LOG_FILE", str(LOG_FILE_PATH)))

    @staticmethod
    def heartbeat_seconds() -> float:
        """Get the heartbeat interval.

        Returns:
            Interval in seconds, defaults to 30
        """
        return float(os.getenv("HEARTBEAT_SECONDS", "30"))

    @staticmethod
    def poll_seconds() -> float:
        """Get the interval between UI tree polls.

        Returns:
            Interval in seconds, defaults to 2
        """
        return float(os.getenv("POLL_SECONDS", "2"))

    @staticmethod
    def update_poll_seconds() -> float:
        """Get the interval between version descriptor polls.

        Returns:
            Interval in seconds, defaults to 3600
        """
        return float(os.getenv("UPDATE_POLL_SECONDS", "3600"))

    @staticmethod
    def secondary_min_interval_seconds() -> float:
        """Get the minimum interval between unchanged-count secondary store publishes.

        Returns:
            Interval in seconds, defaults to 10
        """
        return float(os.getenv("SECONDARY_MIN_INTERVAL_SECONDS", "10"))

    @staticmethod
    def adb_serial() -> str:
        """Get the adb device serial, empty for the default device."""
        return os.getenv("ADB_SERIAL", "")


# Singleton instance for convenient access
env = Environment()
