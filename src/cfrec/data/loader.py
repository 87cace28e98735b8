from pathlib import Path

import pandas as pd

from cfrec.utils.errors import DataError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)

EVENT_COLUMNS = ["user_id", "item_id"]


def validate_events(events: pd.DataFrame) -> pd.DataFrame:
    """Project a raw event frame onto (user_id, item_id) and reject malformed rows."""
    missing = set(EVENT_COLUMNS) - set(events.columns)
    if missing:
        raise DataError(f"Event log missing required columns: {sorted(missing)}. Found columns: {list(events.columns)}")

    projected = events[EVENT_COLUMNS]
    null_rows = projected.isnull().any(axis=1)
    if null_rows.any():
        raise DataError(f"Event log contains {int(null_rows.sum())} rows with missing identifiers")

    return projected


def load_events(path: str | Path, *, user_col: str = "user_id", item_col: str = "item_id") -> pd.DataFrame:
    """Read a CSV event log and rename its id columns to the pipeline's names."""
    try:
        raw = pd.read_csv(path)
    except (OSError, pd.errors.EmptyDataError, pd.errors.ParserError) as err:
        raise DataError(f"Cannot read event log {path}: {err}") from err
    events = raw.rename(columns={user_col: "user_id", item_col: "item_id"})
    events = validate_events(events)

    logger.info(f"Loaded {len(events):,} events from {path}")
    return events
