from loguru import logger
import os
import sys
from pathlib import Path


def enrich_record(record):
    file_path = Path(record["file"].path)
    try:
        relative_path = file_path.relative_to(Path.cwd())
    except ValueError:
        relative_path = file_path
    record["extra"]["rel_path"] = str(relative_path)

    # deployment / stage context is rendered as a prefix when present
    prefix_keys = [k for k in ("deployment", "stage", "host") if k in record["extra"]]
    if prefix_keys:
        record["extra"]["formatted_prefix"] = " ".join(f"[{record['extra'][k]}]" for k in prefix_keys) + " "
    else:
        record["extra"]["formatted_prefix"] = ""

    return True


def configure_logger(level: str | None = None):
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or os.getenv("LOG_LEVEL", "DEBUG"),
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSSSSS}</green> | <level>{level: <8}</level> | <cyan>{extra[rel_path]}</cyan>:<cyan>{line}</cyan> - <level>{extra[formatted_prefix]}{message}</level>",
        colorize=True,
        filter=enrich_record
    )
