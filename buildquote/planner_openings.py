"""
Door and window membership tables for planner scenes.

The planner reports doors and windows in one bucket keyed by its own catalog
ids. These tables say which of those ids are doors and which are windows.

Lookup chain:
1. JSON file at settings.PLANNER_OPENINGS_PATH ({"windows": [...], "doors": [...]})
2. DEFAULT_WINDOW_IDS / DEFAULT_DOOR_IDS from this file
"""

import json
import logging
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Planner catalog ids: single/double casement windows, skylights
DEFAULT_WINDOW_IDS = (
    "n_window_1", "n_window_2", "n_window_3", "n_window_4",
    "n_window_5", "n_window_6", "n_window_double_1", "n_window_double_2",
    "n_skylight_1",
)

# Planner catalog ids: interior doors, entrance doors
DEFAULT_DOOR_IDS = (
    "n_door_1", "n_door_2", "n_door_3", "n_door_4",
    "n_door_double_1", "n_door_sliding_1",
    "n_entrance_door_1", "n_entrance_door_2",
)


class OpeningTables:
    """Static window/door membership, passed to PlannerReconciler."""

    def __init__(self, window_ids: Iterable[str], door_ids: Iterable[str]):
        self.window_ids = frozenset(window_ids)
        self.door_ids = frozenset(door_ids)

    def is_window(self, planner_id: str) -> bool:
        return planner_id in self.window_ids

    def is_door(self, planner_id: str) -> bool:
        return planner_id in self.door_ids

    def partition(self, planner_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Split ids into (door ids, window ids), keeping input order. Unknown ids are dropped."""
        doors, windows = [], []
        for planner_id in planner_ids:
            if self.is_door(planner_id):
                doors.append(planner_id)
            elif self.is_window(planner_id):
                windows.append(planner_id)
        return doors, windows

    @classmethod
    def default(cls) -> "OpeningTables":
        return cls(DEFAULT_WINDOW_IDS, DEFAULT_DOOR_IDS)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "OpeningTables":
        if not path:
            return cls.default()
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not load planner opening tables from %s: %s, using defaults", path, e)
            return cls.default()
        if not isinstance(data, dict):
            logger.warning("Planner opening tables in %s are not a JSON object, using defaults", path)
            return cls.default()
        tables = cls(data.get("windows", DEFAULT_WINDOW_IDS), data.get("doors", DEFAULT_DOOR_IDS))
        logger.info("Loaded %d window and %d door ids from %s",
                    len(tables.window_ids), len(tables.door_ids), path)
        return tables
