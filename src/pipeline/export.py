"""
Export - CSV/JSON Output for Extraction Results

Writes the {name, phone} records produced by the pipeline. Every listing
item has a row, including items where no phone was found, unless the caller
asks for phone-bearing rows only.

Key Features:
- Flat CSV (name, phone, phone_digits, detail_url, outcome)
- JSON array, optionally with a run metadata envelope
- Result dedupe by detail URL for merging several runs (load_results + dedupe_results)
"""

import csv
import json
import re
from datetime import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..schemas import ExtractionResult, JobOutcome


CSV_FIELDS = ["name", "phone", "phone_digits", "detail_url", "outcome"]


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def _quality_tuple(r: ExtractionResult) -> tuple:
    """Higher is better: a found phone beats any failure outcome."""
    return (1 if r.has_phone else 0, 1 if r.outcome == JobOutcome.NOT_FOUND else 0)


def dedupe_results(results: List[ExtractionResult]) -> List[ExtractionResult]:
    """Keep one result per detail URL (first seen order), preferring ones with a phone.

    Results without a detail_url are kept as-is.
    """
    if not results:
        return []
    best: Dict[str, ExtractionResult] = {}
    order: List[Union[str, ExtractionResult]] = []
    for r in results:
        if not r.detail_url:
            order.append(r)
            continue
        prev = best.get(r.detail_url)
        if prev is None:
            order.append(r.detail_url)
            best[r.detail_url] = r
        elif _quality_tuple(r) > _quality_tuple(prev):
            best[r.detail_url] = r
    kept = [best[k] if isinstance(k, str) else k for k in order]
    removed = len(results) - len(kept)
    if removed > 0:
        print(f"🧹 Dedupe: kept {len(kept)} of {len(results)}")
    return kept


def load_results(path: Union[str, Path]) -> List[ExtractionResult]:
    """Read a previous JSON export (plain array or metadata envelope).

    Raises ValueError on anything that is not a contacts export.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("contacts")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of contacts")
    results: List[ExtractionResult] = []
    for row in data:
        if not isinstance(row, dict):
            raise ValueError(f"{path}: contact rows must be objects")
        try:
            outcome = JobOutcome(row.get("outcome") or JobOutcome.NOT_FOUND.value)
        except ValueError as e:
            raise ValueError(f"{path}: unknown outcome {row.get('outcome')!r}") from e
        results.append(ExtractionResult(
            name=row.get("name") or "",
            phone=row.get("phone") or "",
            detail_url=row.get("detail_url") or "",
            outcome=outcome,
        ))
    return results


class ResultExporter:
    """
    Exports extraction results to CSV/JSON files under one output directory.
    """

    def __init__(self, output_dir: Union[str, Path] = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def filter_with_phone(self, results: List[ExtractionResult]) -> List[ExtractionResult]:
        kept = [r for r in results if r.has_phone]
        print(f"📊 Export filtering: {len(kept)} with phone, {len(results) - len(kept)} without (excluded)")
        return kept

    def _path(self, filename: Optional[str], suffix: str) -> Path:
        if filename is None:
            timestamp = dt.now().strftime("%Y%m%d_%H%M%S")
            filename = f"contacts_{timestamp}.{suffix}"
        return self.output_dir / filename

    @staticmethod
    def to_row(result: ExtractionResult) -> Dict[str, str]:
        return {
            "name": result.name,
            "phone": result.phone,
            "phone_digits": digits_only(result.phone),
            "detail_url": result.detail_url,
            "outcome": result.outcome.value,
        }

    def to_csv(
        self,
        results: List[ExtractionResult],
        filename: Optional[str] = None,
        with_phone_only: bool = False,
    ) -> Path:
        """
        Export results to CSV. An empty result list still yields a file with a header.
        """
        if with_phone_only:
            results = self.filter_with_phone(results)
        csv_path = self._path(filename, "csv")
        with open(csv_path, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
            writer.writeheader()
            for r in results:
                writer.writerow(self.to_row(r))
        print(f"💾 CSV exported: {csv_path} ({len(results)} contacts)")
        return csv_path

    def to_json(
        self,
        results: List[ExtractionResult],
        filename: Optional[str] = None,
        with_phone_only: bool = False,
        pretty: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """
        Export results to JSON.

        Without metadata the file is a plain array of {name, phone, ...}
        objects; with metadata it is {"metadata": ..., "contacts": [...]}.
        """
        if with_phone_only:
            results = self.filter_with_phone(results)
        json_path = self._path(filename, "json")
        rows = [self.to_row(r) for r in results]
        payload: Any = rows
        if metadata is not None:
            payload = {
                "metadata": {**metadata, "exported_at": dt.now().isoformat(), "total": len(rows)},
                "contacts": rows,
            }
        with open(json_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2 if pretty else None)
        print(f"💾 JSON exported: {json_path} ({len(rows)} contacts)")
        return json_path
