"""
This module provides classes for writing the application's log files.

Errors are appended to a human-readable text file (ErrorLog), while finished
batches are recorded in a machine-readable YAML file (BatchLog). Both are
optional: they are only written when a log directory is configured. Loguru
remains the primary log channel.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Union

import yaml
from loguru import logger

from ..config.common import BATCH_LOG_FILE_NAME, ERROR_LOG_FILE_NAME
from ..domain.report import BatchReport

# Log files are shared by all worker threads.
_file_lock = threading.Lock()


class Log:
    """
    Base class for the file logs.

    Resolves the log directory and makes sure it exists.
    """

    # A decorative separator line used in text-based logs for better readability.
    linesep_marker: str = "=" * 50

    def __init__(self, log_base_path: Path):
        """
        Args:
            log_base_path: The log directory, or a file path whose parent is used.
        """
        self.log_file_path: Path
        if log_base_path.suffix:
            self.log_dir: Path = log_base_path.parent.resolve()
        else:
            self.log_dir: Path = log_base_path.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, log_content: Union[dict, list, str]):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """
    Appends failure details to a plain text file.

    Each call writes one block followed by a separator, so the file is a
    chronological record of what went wrong.
    """

    def __init__(self, error_log_dir: Path, filename: str = ERROR_LOG_FILE_NAME):
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        """
        Writes one or more error messages as a single block.

        If the file cannot be written, the messages are sent to the main logger
        instead so they are not lost.
        """
        if not error_messages:
            return

        content_to_write = "\n".join(error_messages) + "\n" + self.linesep_marker + "\n"
        try:
            with _file_lock, self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            logger.error("Original error messages attempted to log:")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class BatchLog(Log):
    """
    Records finished batches in a YAML file.

    The file always holds a list. Every entry is a `BatchReport.to_dict()`
    with an index and the time the batch ended.
    """

    def __init__(self, log_dir: Path, filename: str = BATCH_LOG_FILE_NAME):
        super().__init__(log_dir)
        self.log_file_path = self.log_dir / filename

    def _read_entries(self) -> List[Dict]:
        if not self.log_file_path.is_file():
            return []
        try:
            with self.log_file_path.open("r", encoding="utf-8") as f:
                loaded_entries = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error reading/parsing batch log {self.log_file_path}: {e}. Starting a new log.")
            return []
        if loaded_entries is None:
            return []
        if not isinstance(loaded_entries, list):
            logger.warning(f"Batch log {self.log_file_path} contained unexpected data. Starting a new log.")
            return []
        return loaded_entries

    def write(self, report: Union[BatchReport, dict]):
        """Appends one batch to the YAML file, rewriting it as a whole."""
        new_log_entry = report.to_dict() if isinstance(report, BatchReport) else dict(report)
        new_log_entry["ended_datetime"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        with _file_lock:
            log_entries = self._read_entries()
            current_max_index = max(
                (entry.get("index", 0) for entry in log_entries if isinstance(entry, dict)),
                default=0,
            )
            new_log_entry["index"] = current_max_index + 1
            log_entries.append(new_log_entry)
            try:
                with self.log_file_path.open("w", encoding="utf-8") as f:
                    yaml.dump(
                        log_entries,
                        f,
                        default_flow_style=False,
                        sort_keys=False,
                        allow_unicode=True,
                        indent=4,
                        width=220,
                    )
            except OSError as e:
                logger.error(f"Failed to write to batch log {self.log_file_path}: {e}")
                return
        logger.debug(f"Batch {new_log_entry.get('batch_id')} written to {self.log_file_path}")
