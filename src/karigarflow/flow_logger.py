"""
Structured Logging for KarigarFlow
Rotating file logs with immediate flush, plus a console handler.
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import flow_config as cfg


class FlowLogger:
    """Centralized logging for the ingestion pipeline with rotation and formatting"""

    def __init__(self, name="KarigarFlow", log_dir=None, log_level=None):
        """
        Initialize logger with rotating file handlers

        Args:
            name: Logger name
            log_dir: Directory for log files (defaults to KARIGARFLOW_LOG_DIR)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level or cfg.LOG_LEVEL, logging.INFO))
        self.logger.handlers.clear()
        self.logger.propagate = False

        log_path = Path(log_dir or cfg.LOG_DIR)
        log_path.mkdir(parents=True, exist_ok=True)

        log_format = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # 1. Main rotating file handler
        main_handler = RotatingFileHandler(
            log_path / 'karigarflow.log',
            maxBytes=cfg.LOG_FILE_MAX_MB * 1024 * 1024,
            backupCount=cfg.LOG_FILE_BACKUP_COUNT,
            encoding='utf-8'
        )
        main_handler.setLevel(logging.DEBUG)
        main_handler.setFormatter(log_format)
        self.logger.addHandler(main_handler)

        # 2. Error-only log file
        error_handler = RotatingFileHandler(
            log_path / 'errors.log',
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(log_format)
        self.logger.addHandler(error_handler)

        # 3. Console
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(log_format)
        self.logger.addHandler(console_handler)

    def debug(self, message, component=""):
        self._log(logging.DEBUG, message, component)

    def info(self, message, component=""):
        self._log(logging.INFO, message, component)

    def warning(self, message, component=""):
        self._log(logging.WARNING, message, component)

    def error(self, message, component="", exc_info=False):
        self._log(logging.ERROR, message, component, exc_info=exc_info)

    def _log(self, level, message, component="", exc_info=False):
        """Internal logging method with component prefix"""
        if component:
            message = f"[{component}] {message}"

        self.logger.log(level, message, exc_info=exc_info)

        for handler in self.logger.handlers:
            handler.flush()

    def log_parse_complete(self, filename, order_count, warning_count):
        self.info(
            f"{filename} - Parsed {order_count} order(s) with {warning_count} warning(s)",
            component="Parser"
        )

    def log_mapping_result(self, mapped_count, unmapped_count, unmapped_codes):
        self.info(
            f"Mapped {mapped_count} order(s), {unmapped_count} unmapped "
            f"({len(unmapped_codes)} unknown design code(s))",
            component="Mapping"
        )

    def log_reconciliation(self, matched, missing, unmapped):
        self.info(
            f"Reconciled batch - matched={matched} missing={missing} unmapped={unmapped}",
            component="Reconciliation"
        )

    def log_batch_queued(self, item_id, order_count, reason):
        self.warning(
            f"Submission failed, queued batch #{item_id} ({order_count} orders): {reason}",
            component="Sync"
        )

    def log_sync_summary(self, report):
        level = logging.WARNING if report.errors else logging.INFO
        self._log(
            level,
            f"Sync finished - {report.uploaded_orders} order(s) uploaded in "
            f"{report.uploaded_batches} batch(es), {report.failed_batches} batch(es) failed, "
            f"{report.remaining} still queued",
            component="Sync"
        )


_global_logger = None


def get_logger(log_level=None):
    """Get or create the global logger instance"""
    global _global_logger
    if _global_logger is None:
        _global_logger = FlowLogger(log_level=log_level)
    return _global_logger
