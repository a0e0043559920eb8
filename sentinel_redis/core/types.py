from __future__ import annotations

from typing import Any, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

type ReplyRecord = dict[str | int, Any]
