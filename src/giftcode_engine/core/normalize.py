from __future__ import annotations

import re
from typing import Any, Iterable

from .errors import ValidationError
from .types import RedemptionTarget

_CODE_RE = re.compile(r"^[A-Za-z0-9]{4,20}$")


def normalize_code(value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError("gift code must be a string")
    code = value.strip()
    if not _CODE_RE.match(code):
        raise ValidationError(f"invalid gift code {code!r}: expected 4-20 alphanumeric characters")
    return code


def normalize_targets(raw: Iterable[Any] | None) -> list[RedemptionTarget]:
    """Coerce targets, dicts ``{"fid", "display_name"|"nickname"}`` or bare fids."""
    targets: list[RedemptionTarget] = []
    for item in raw or []:
        if isinstance(item, RedemptionTarget):
            target = RedemptionTarget(fid=str(item.fid or "").strip(), display_name=item.display_name)
        elif isinstance(item, dict):
            name = item.get("display_name", item.get("nickname"))
            target = RedemptionTarget(
                fid=str(item.get("fid") or "").strip(),
                display_name=str(name).strip() if name is not None else None,
            )
        else:
            target = RedemptionTarget(fid=str(item if item is not None else "").strip())
        if not target.fid:
            raise ValidationError("redemption target is missing an identifier")
        targets.append(target)
    if not targets:
        raise ValidationError("no redemption targets supplied")
    return targets
