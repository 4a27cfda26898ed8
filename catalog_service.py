import json
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from filters import FilterState
from listing_normalizer import ListingRecord, normalize
from location_keywords import LocationGazetteer, extract_location_keywords
from log import log_message
from property_prompt import QueryPrompt, generate_property_query_prompt
from refine_engine import QueryResult, query_properties


@dataclass(frozen=True)
class CatalogSnapshot:
    catalog_id: str
    version: int
    listings: Tuple[ListingRecord, ...]
    name: Optional[str] = None
    skipped: int = 0
    skipped_reasons: Dict[str, int] = field(default_factory=dict, compare=False, hash=False)


def read_raw_listings(path: str) -> List[Dict[str, Any]]:
    """Raw records from .jsonl, .json (list or {"listings": [...]}) or .csv."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        df = pd.read_csv(path)
        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient="records")
    with open(path, "r", encoding="utf-8") as f:
        if ext == ".jsonl":
            return [json.loads(line) for line in f if line.strip()]
        obj = json.load(f)
    if isinstance(obj, dict):
        obj = obj.get("listings") or obj.get("properties") or []
    if not isinstance(obj, list):
        raise ValueError(f"{path}: expected a list of listings")
    return obj


class CatalogService:
    """
    In-memory catalog store. Every load replaces the catalog and bumps its
    version; the location gazetteer is cached per version (cache-aside) and
    computed outside the lock, so concurrent first reads may both compute it.
    A gazetteer computed for a version that has since been replaced is not
    stored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._catalogs: Dict[str, CatalogSnapshot] = {}
        self._gazetteers: Dict[str, Tuple[int, LocationGazetteer]] = {}
        self._versions: Dict[str, int] = {}

    def load_catalog(
        self,
        catalog_id: str,
        raw_listings: Iterable[Any],
        name: Optional[str] = None,
    ) -> CatalogSnapshot:
        result = normalize(raw_listings)
        with self._lock:
            version = self._versions.get(catalog_id, 0) + 1
            self._versions[catalog_id] = version
            snap = CatalogSnapshot(
                catalog_id=catalog_id,
                version=version,
                listings=tuple(result.listings),
                name=name,
                skipped=result.skipped,
                skipped_reasons=dict(result.skipped_reasons),
            )
            self._catalogs[catalog_id] = snap
            dropped = self._gazetteers.pop(catalog_id, None)
        if dropped is not None:
            log_message("INFO", f"gazetteer invalidated catalog={catalog_id} old_version={dropped[0]}")
        log_message(
            "INFO",
            f"catalog loaded id={catalog_id} version={version} listings={len(snap.listings)} skipped={snap.skipped}",
        )
        return snap

    def drop_catalog(self, catalog_id: str) -> None:
        with self._lock:
            self._catalogs.pop(catalog_id, None)
            self._gazetteers.pop(catalog_id, None)

    def catalog_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._catalogs.keys())

    def snapshot(self, catalog_id: str) -> CatalogSnapshot:
        with self._lock:
            snap = self._catalogs.get(catalog_id)
        if snap is None:
            raise KeyError(f"unknown catalog '{catalog_id}'")
        return snap

    def cached_gazetteer(self, catalog_id: str, version: int) -> Optional[LocationGazetteer]:
        with self._lock:
            hit = self._gazetteers.get(catalog_id)
        if hit is None or hit[0] != version:
            return None
        return hit[1]

    def put_gazetteer(self, catalog_id: str, version: int, gazetteer: LocationGazetteer) -> bool:
        with self._lock:
            current = self._catalogs.get(catalog_id)
            if current is None or current.version != version:
                stale = True
            else:
                stale = False
                self._gazetteers[catalog_id] = (version, gazetteer)
        if stale:
            log_message("DEBUG", f"gazetteer discarded catalog={catalog_id} stale_version={version}")
            return False
        return True

    def gazetteer(self, catalog_id: str) -> LocationGazetteer:
        snap = self.snapshot(catalog_id)
        cached = self.cached_gazetteer(catalog_id, snap.version)
        if cached is not None:
            log_message("DEBUG", f"gazetteer cache hit catalog={catalog_id} version={snap.version}")
            return cached
        log_message("DEBUG", f"gazetteer cache miss catalog={catalog_id} version={snap.version}")
        gaz = extract_location_keywords(snap.listings)
        self.put_gazetteer(catalog_id, snap.version, gaz)
        return gaz

    def query(self, catalog_id: str, filter_state: Optional[FilterState] = None) -> QueryResult:
        snap = self.snapshot(catalog_id)
        return query_properties(snap.listings, filter_state)

    def prompt(self, catalog_id: str) -> QueryPrompt:
        snap = self.snapshot(catalog_id)
        return generate_property_query_prompt(
            catalog_id,
            snap.listings,
            gazetteer=self.gazetteer(catalog_id),
            catalog_name=snap.name,
        )
