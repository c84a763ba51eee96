"""Static service-line mapping table loaded from YAML.

File layout::

    master_service_lines:
      AUD:
        name: Audit & Assurance
        service_lines: [AUD01, AUD02]
      TAX:
        name: Tax
        service_lines: [TAX01]
"""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]

from ledger_analytics.config.settings import get_settings
from ledger_analytics.models import ServiceLineMapping


def load_service_line_mappings(path: str | Path) -> dict[str, ServiceLineMapping]:
    """Load a service line to master service line table from a YAML file."""
    path = Path(path)
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}

    masters = data.get("master_service_lines")
    if masters is None:
        return {}
    if not isinstance(masters, dict):
        raise ValueError(f"{path.name}: master_service_lines must be a mapping")

    mappings: dict[str, ServiceLineMapping] = {}
    for master_code, entry in masters.items():
        if not isinstance(entry, dict):
            raise ValueError(f"{path.name}: entry for {master_code!r} must be a mapping")
        service_lines = entry.get("service_lines") or []
        if not isinstance(service_lines, list):
            raise ValueError(f"{path.name}: service_lines for {master_code!r} must be a list")

        name = str(entry.get("name") or master_code)
        for code in service_lines:
            code = str(code).strip()
            existing = mappings.get(code)
            if existing and existing.master_code != str(master_code):
                raise ValueError(
                    f"{path.name}: service line {code!r} mapped to both "
                    f"{existing.master_code!r} and {master_code!r}"
                )
            mappings[code] = ServiceLineMapping(
                service_line=code, master_code=str(master_code), master_name=name
            )

    return mappings


class StaticServiceLineSource:
    """Service-line mapping source backed by a YAML file, read once."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._mappings: dict[str, ServiceLineMapping] | None = None

    @classmethod
    def from_settings(cls) -> StaticServiceLineSource:
        """Source for the file named by ``SERVICE_LINE_MAP_PATH``."""
        path = get_settings().service_line_map_path
        if not path:
            raise ValueError("SERVICE_LINE_MAP_PATH is not set")
        return cls(path)

    async def fetch_service_line_mappings(self) -> dict[str, ServiceLineMapping]:
        if self._mappings is None:
            self._mappings = load_service_line_mappings(self._path)
        return dict(self._mappings)
