"""JSON snapshots of search and autocomplete results."""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping, Optional

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def snapshot_name(prefix: str, *parts: object, suffix: str = ".json") -> str:
    """File name built from ``prefix`` and ``parts`` with anything path-unsafe collapsed to ``_``."""
    tokens = [_UNSAFE.sub("_", str(part)).strip("_") for part in (prefix, *parts) if part not in (None, "")]
    return "-".join(token for token in tokens if token) + suffix


class JsonStore:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    async def write(
        self,
        data: Iterable[Mapping[str, object]],
        *,
        filename: str,
        subdir: str | None = None,
        meta: Optional[Mapping[str, object]] = None,
    ) -> Path:
        target_dir = self.root / subdir if subdir else self.root
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        serialisable = {
            "generated_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            **dict(meta or {}),
            "items": [dict(item) for item in data],
        }
        path.write_text(json.dumps(serialisable, indent=2, ensure_ascii=False), encoding="utf-8")
        return path
