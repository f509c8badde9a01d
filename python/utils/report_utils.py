"""
Utility functions for writing the migration report.
"""
import json
from pathlib import Path
from typing import Any

from utils.logging_utils import get_logger

logger = get_logger(__name__)


def save_json(path: str, data: Any) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file; missing parent directories are created
        data: Data to save

    Returns:
        Path to the saved file
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)
