"""
Pump Advisor: Catalog Repository

Read-only pump catalog loaded once from JSON. Offers model/id lookup and
competitor cross-referencing through each pump's equivalents table.
"""
from __future__ import annotations
import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from pydantic import ValidationError

from config import get_settings
from models import CatalogPump

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """The catalog file is missing or malformed."""


def normalize_model(text: str) -> str:
    """'Stratos 25/1-8' -> 'STRATOS2518' for punctuation-insensitive compare."""
    return re.sub(r'[^A-Z0-9]', '', text.upper())


class PumpCatalog:
    """Immutable in-memory catalog."""

    def __init__(self, pumps: Iterable[CatalogPump], brand: str = "Grundfos",
                 version: Optional[str] = None):
        self._pumps: tuple[CatalogPump, ...] = tuple(pumps)
        self.brand = brand
        self.version = version
        self._model_index: dict[str, CatalogPump] = {}
        self._id_index: dict[str, CatalogPump] = {}
        for p in self._pumps:
            self._model_index[normalize_model(p.model)] = p
            self._id_index[p.id] = p

    def __iter__(self) -> Iterator[CatalogPump]:
        return iter(self._pumps)

    def __len__(self) -> int:
        return len(self._pumps)

    @property
    def pumps(self) -> tuple[CatalogPump, ...]:
        return self._pumps

    def get_by_model(self, model: str) -> Optional[CatalogPump]:
        return self._model_index.get(normalize_model(model))

    def get_by_id(self, pump_id: str) -> Optional[CatalogPump]:
        return self._id_index.get(pump_id)

    def families(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for p in self._pumps:
            counts[p.family] = counts.get(p.family, 0) + 1
        return counts

    def find_competitor_match(self, brand: str,
                              model: Optional[str] = None) -> Optional[CatalogPump]:
        """
        Catalog pump listed as the equivalent of a competitor's model.

        Substring match on the raw text first, then on the normalized form.
        Without a model the first pump cross-referencing the brand is
        returned; with a model there is no brand-only fallback.
        """
        if not brand:
            return None
        brand_key = brand.strip().lower()
        candidates = [
            (p, equiv) for p in self._pumps
            for b, equiv in p.competitor_equivalents.items()
            if b.lower() == brand_key
        ]
        if not candidates:
            return None
        if not model:
            return candidates[0][0]

        wanted = model.strip().lower()
        for p, equiv in candidates:
            if wanted in equiv.lower() or equiv.lower() in wanted:
                return p

        wanted_norm = normalize_model(model)
        if not wanted_norm:
            return None
        for p, equiv in candidates:
            equiv_norm = normalize_model(equiv)
            if wanted_norm in equiv_norm or equiv_norm in wanted_norm:
                return p
        return None


# ============================================================
# Loading
# ============================================================

def load_catalog(path: Union[str, Path]) -> PumpCatalog:
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise CatalogError(f"Catalog file not found: {path}")
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog is not valid JSON ({path}): {e}")

    entries = raw.get("pumps") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise CatalogError(f"Catalog has no pump list: {path}")

    try:
        pumps = [CatalogPump(**entry) for entry in entries]
    except (TypeError, ValidationError) as e:
        raise CatalogError(f"Invalid catalog entry in {path}: {e}")

    brand = raw.get("brand", "Grundfos") if isinstance(raw, dict) else "Grundfos"
    version = raw.get("version") if isinstance(raw, dict) else None
    catalog = PumpCatalog(pumps, brand=brand, version=version)
    logger.info(f"Loaded {len(catalog)} pumps from {path} (version={version})")
    return catalog


@lru_cache
def get_catalog() -> PumpCatalog:
    """Process-wide catalog, loaded on first use from settings.catalog_path."""
    return load_catalog(get_settings().catalog_file)
