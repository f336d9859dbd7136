"""Application bootstrap for fabtrail.

Startup order: config → logging → audit logger (sink, session lookup,
resolver).  Shutdown drains fire-and-forget audit writes for at most
``_SHUTDOWN_GRACE_SECONDS`` so a stuck sink cannot block process exit.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fabtrail import __version__
from fabtrail.audit import build_audit_logger
from fabtrail.config import load_config
from fabtrail.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from fabtrail.audit.logger import AuditLogger
    from fabtrail.models.config import FabtrailConfig

_SHUTDOWN_GRACE_SECONDS = 10


class FabtrailApp:
    """Owns the configured AuditLogger for a host application.

    ``stop()`` on an app that was never started (or already stopped) is safe.
    """

    def __init__(self, config: FabtrailConfig | None = None) -> None:
        self.config = config
        self._audit: AuditLogger | None = None
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            raise RuntimeError("FabtrailApp.start() has not been called")
        return self._audit

    def start(self) -> AuditLogger:
        """Load configuration, configure logging and build the audit logger."""
        if self.config is None:
            self.config = load_config()
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("fabtrail starting", version=__version__)

        self._audit = build_audit_logger(self.config)
        return self._audit

    async def stop(self) -> None:
        """Wait for pending audit writes, bounded by the shutdown grace period."""
        if self._audit is None:
            return
        log = self._log or get_logger("app")
        pending = self._audit.pending
        try:
            await asyncio.wait_for(self._audit.drain(), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("audit_drain_timeout", pending=self._audit.pending, grace_seconds=_SHUTDOWN_GRACE_SECONDS)
        else:
            log.info("fabtrail stopped", drained=pending)
        self._audit = None
