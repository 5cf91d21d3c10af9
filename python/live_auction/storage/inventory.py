"""Inventory reference table.

CSV with a header row containing Name and Price. Prices are read as the
digits of the cell, so "₹1,200" becomes 1200.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, List

from ..errors import NotFoundError
from ..models.types import InventoryItem

logger = logging.getLogger(__name__)


def parse_price(raw: str) -> int:
    """Digits-only integer price; no digits means 0."""
    digits = "".join(ch for ch in (raw or "") if ch in "0123456789")
    return int(digits) if digits else 0


def read_inventory(path: str) -> List[InventoryItem]:
    """Read inventory rows from a CSV file.

    Raises:
        NotFoundError: the file does not exist
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise NotFoundError(f"Inventory file not found at {path}")

    items = []
    with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
        for row in csv.DictReader(f):
            name = (row.get("Name") or "").strip()
            if not name:
                continue
            items.append(InventoryItem(name=name, starting_price=parse_price(row.get("Price"))))
    return items


def load_inventory(path: str) -> Dict[str, int]:
    """Name -> starting price map.

    A missing file degrades to an empty map with a warning.
    """
    try:
        items = read_inventory(path)
    except NotFoundError:
        logger.warning(f"Inventory file not found at {path}. Price multipliers will be 0.")
        return {}

    inventory = {item.name: item.starting_price for item in items}
    logger.info(f"Loaded {len(inventory)} items from inventory")
    return inventory
