import json
import logging
import random
import time
from datetime import datetime, date
from datetime import time as dt_time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from schedule_scrapers.config import settings


# --- Logger Setup ---
_loggers: Dict[str, logging.Logger] = {}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"


def setup_logger(logger_name: str, log_file_prefix: str, level: int = logging.INFO) -> logging.Logger:
    """Configures and returns a logger that outputs to console and a timestamped file."""
    if logger_name in _loggers:
        return _loggers[logger_name]

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    log_dir = settings.file_outputs.log_output_directory
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_path = log_dir / f"{log_file_prefix}_{timestamp}.log"
        fh = logging.FileHandler(log_file_path)
        fh.setLevel(level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)
    except OSError as e:
        logger.error(f"Failed to create file handler for logger {logger_name} at {log_dir}: {e}", exc_info=True)

    _loggers[logger_name] = logger
    logger.info(f"Logger '{logger_name}' initialized. Logging to console and file (if path valid).")
    return logger


def random_delay(min_ms: int, max_ms: int, multiplier: float = 1.0) -> None:
    """Sleep for a random duration between min_ms and max_ms (scaled by multiplier)."""
    actual_min = min_ms * multiplier
    actual_max = max_ms * multiplier
    if actual_min > actual_max:
        actual_min = actual_max
    if actual_max <= 0:
        return
    time.sleep(max(0.0, random.uniform(actual_min, actual_max)) / 1000.0)


# --- File Output Utilities ---

def _ensure_output_dir_exists(base_dir_path: Path, sub_folder_name: Optional[str], logger_obj: logging.Logger) -> Optional[Path]:
    """Helper to create output directory: base_dir_path / sub_folder_name."""
    target_dir = base_dir_path / sub_folder_name if sub_folder_name else base_dir_path
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger_obj.error(f"Could not create output directory {target_dir}: {e}", exc_info=True)
        return None
    return target_dir


def _serialize_item(item: Any) -> Any:
    """json.dump default hook for the types our results carry."""
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    if isinstance(item, (datetime, date, dt_time)):
        return item.isoformat()
    if isinstance(item, Path):
        return str(item)
    return str(item)


def save_to_json_file(
    data_to_save: Union[List[Any], Dict[str, Any], BaseModel],
    filename_prefix: str,
    sub_folder: Optional[str] = None,
    logger_obj: Optional[logging.Logger] = None
) -> Optional[Path]:
    current_logger = logger_obj or logging.getLogger(__name__)
    if not settings.file_outputs.enable_json_output:
        current_logger.debug(f"JSON output disabled globally. Skipping save for '{filename_prefix}'.")
        return None

    if not data_to_save:
        current_logger.info(f"No data provided to save_to_json_file for prefix '{filename_prefix}'.")
        return None

    output_path = _ensure_output_dir_exists(settings.file_outputs.base_output_directory, sub_folder or filename_prefix, current_logger)
    if not output_path:
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_path / f"{filename_prefix}_{timestamp}.json"

    try:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data_to_save, f, indent=4, ensure_ascii=False, default=_serialize_item)
    except (OSError, TypeError) as e:
        current_logger.error(f"Error saving data to JSON file {filepath}: {e}", exc_info=True)
        return None
    current_logger.info(f"Data successfully saved to JSON file: {filepath}")
    return filepath
