# planhub/services/vendor_catalog.py
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from planhub.core.config import settings
from planhub.schemas.vendors import VendorRecord

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "vendors.json"


@lru_cache
def load_vendor_catalog(path: str = "") -> Tuple[VendorRecord, ...]:
    """Reads the catalog once per path. Records are frozen."""
    source = Path(path or settings.VENDOR_CATALOG_PATH or DEFAULT_CATALOG_PATH)
    with source.open("r", encoding="utf-8") as fh:
        rows = json.load(fh)

    if not isinstance(rows, list):
        raise ValueError(f"Vendor catalog must be a JSON list: {source}")

    vendors = tuple(VendorRecord.model_validate(r) for r in rows)
    logger.info("Loaded %d vendors from %s", len(vendors), source)
    return vendors


def get_vendor(vendor_id: str, path: str = "") -> Optional[VendorRecord]:
    for v in load_vendor_catalog(path):
        if v.vendor_id == vendor_id:
            return v
    return None
