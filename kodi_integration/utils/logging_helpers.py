"""
Structured logging helpers for consistent log formatting.

Lifecycle sections (connect, disconnect, reconciliation passes) are logged as
start/end pairs; URLs go through `sanitize_url` before being logged.
"""
import logging
from datetime import datetime, timezone


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_probe_attempt(logger: logging.Logger, backend: str, attempt: int, total: int, url: str) -> None:
    """
    Log one liveness probe attempt.

    Args:
        logger: Logger instance
        backend: Backend name (kodi, tvheadend)
        attempt: Current attempt (1-based)
        total: Maximum number of attempts
        url: Probed URL, credentials are stripped
    """
    logger.info(f"Probing {backend} {attempt}/{total}: {sanitize_url(url)}")


def log_session_event(logger: logging.Logger, event: str, epoch: int) -> None:
    """Log a session lifecycle event with its epoch and a UTC timestamp."""
    logger.info(f"Session {event} (epoch {epoch}) at {datetime.now(timezone.utc).isoformat()}")


def log_mapping_summary(
    logger: logging.Logger,
    group: str,
    mapped: int,
    kodi_channels: int,
    tvheadend_channels: int
) -> None:
    """
    Log channel reconciliation summary.

    Args:
        logger: Logger instance
        group: Channel group name
        mapped: Number of joined channels
        kodi_channels: Size of the Kodi channel list
        tvheadend_channels: Size of the TVHeadend channel directory
    """
    logger.info(
        f"Mapping summary [{group}] - Mapped: {mapped}, "
        f"Kodi channels: {kodi_channels}, TVHeadend channels: {tvheadend_channels}"
    )


def sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
