"""Persist scrape results as JSON files and list previous runs."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from compra_agil.services.scrape_runner import ScrapeOptions, ScrapeRunResult

_RESULT_FILE = re.compile(r"^compra-agil-.*\.json$")
_SAFE_RESULT_NAME = re.compile(r"^compra-agil-[A-Za-z0-9._-]+\.json$")


class InvalidResultName(ValueError):
    """Requested name is not a result file this service writes."""


def classify_result_file(filename: str) -> str:
    if "-enriched" in filename:
        return "enriched"
    if "-summary" in filename:
        return "summary"
    return "full"


class ResultWriter:
    """Write the full, summary and enriched views of a run."""

    def __init__(self, results_dir: str | Path) -> None:
        self._dir = Path(results_dir)

    def _suffix(self, options: ScrapeOptions) -> str:
        region = f"-region{options.region}" if options.region else ""
        rubros = "-misrubros" if options.mis_rubros else ""
        return f"{region}{rubros}"

    def write(
        self, result: ScrapeRunResult, *, now: Optional[datetime] = None
    ) -> Dict[str, Path]:
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d_%H-%M-%S")
        suffix = self._suffix(result.options)
        self._dir.mkdir(parents=True, exist_ok=True)

        written = {
            "full": self._dump(
                f"compra-agil{suffix}-{stamp}.json",
                [item.model_dump(by_alias=True, mode="json") for item in result.opportunities],
            ),
            "summary": self._dump(
                f"compra-agil-summary{suffix}-{stamp}.json", result.summary()
            ),
        }
        if result.options.enrich:
            written["enriched"] = self._dump(
                f"compra-agil-enriched{suffix}-{stamp}.json",
                [item.model_dump(by_alias=True, mode="json") for item in result.enriched],
            )
        return written

    def list_files(self) -> List[Dict[str, Any]]:
        if not self._dir.exists():
            return []
        files = []
        for path in self._dir.iterdir():
            if not path.is_file() or not _RESULT_FILE.match(path.name):
                continue
            stat = path.stat()
            files.append(
                {
                    "filename": path.name,
                    "type": classify_result_file(path.name),
                    "size": stat.st_size,
                    "modified": datetime.fromtimestamp(
                        stat.st_mtime, tz=timezone.utc
                    ).isoformat(),
                    "modified_ms": int(stat.st_mtime * 1000),
                }
            )
        return sorted(files, key=lambda item: item["modified_ms"], reverse=True)

    def read(self, filename: str) -> Any:
        """Return the parsed content of one result file.

        Raises ``InvalidResultName`` for names outside the result pattern and
        ``FileNotFoundError`` when the file does not exist.
        """
        if not _SAFE_RESULT_NAME.match(filename):
            raise InvalidResultName(filename)
        path = self._dir / Path(filename).name
        return json.loads(path.read_text(encoding="utf-8"))

    def _dump(self, filename: str, data: Any) -> Path:
        path = self._dir / filename
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        return path


__all__ = ["InvalidResultName", "ResultWriter", "classify_result_file"]
