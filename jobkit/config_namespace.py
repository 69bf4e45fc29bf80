"""Config-map reader with consumed-key tracking for `jobkit`."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable

_MISSING = object()

_EXPRESSION_RE = re.compile(r"^\$\{\{.+\}\}$", re.DOTALL)


def _join_path(parent: str, key: str) -> str:
    if not parent:
        return key
    return f"{parent}.{key}"


def is_expression(value: Any) -> bool:
    """True for a ``${{ ... }}`` expression string."""

    return isinstance(value, str) and bool(_EXPRESSION_RE.match(value.strip()))


@dataclass
class ConfigNamespace:
    """Helper for parsing one config mapping while tracking which keys were read.

    Strict callers finish with `assert_consumed()`; tolerant callers use
    `log_unconsumed()` so unknown keys degrade to a warning.
    """

    data: Mapping[str, Any]
    path: str
    _consumed: set[str] = field(default_factory=set, init=False, repr=False)
    _effective: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def empty(cls, *, path: str) -> "ConfigNamespace":
        return cls({}, path=path)

    def _consume(self, key: str) -> None:
        self._consumed.add(key)

    def has(self, key: str) -> bool:
        return key in self.data

    def consumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._consumed))

    def unconsumed_keys(self) -> tuple[str, ...]:
        return tuple(sorted(str(k) for k in self.data.keys() if k not in self._consumed))

    def assert_consumed(self) -> None:
        unknown = list(self.unconsumed_keys())
        if unknown:
            path = self.path or "<root>"
            consumed = ", ".join(self.consumed_keys()) or "<none>"
            raise ValueError(
                f"Unknown config keys under {path}: {', '.join(unknown)} (consumed: {consumed})"
            )

    def log_unconsumed(self, logger: logging.Logger) -> tuple[str, ...]:
        """Warn about unknown keys and return their dotted paths."""

        ignored = [_join_path(self.path, key) for key in self.unconsumed_keys()]
        if ignored:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))
        return tuple(ignored)

    def effective_values(self) -> dict[str, Any]:
        return dict(self._effective)

    def _record_effective(self, key: str, value: Any) -> None:
        self._effective[key.strip()] = value

    def _get_raw(self, key: str, *, default: Any) -> Any:
        if not isinstance(key, str) or not key.strip():
            raise TypeError("ConfigNamespace key must be a non-empty string")
        normalized = key.strip()

        if normalized not in self.data:
            if default is _MISSING:
                raise ValueError(f"Missing required config key: {_join_path(self.path, normalized)}")
            self._consume(normalized)
            return default

        self._consume(normalized)
        return self.data.get(normalized)

    def get_raw(self, key: str, *, default: Any = None) -> Any:
        """Return the value untouched (for opaque fragments such as step lists)."""

        value = self._get_raw(key, default=default)
        self._record_effective(key, value)
        return value

    def get_bool(self, key: str, *, default: bool | object = _MISSING) -> bool:
        if default is not _MISSING and not isinstance(default, bool):
            raise TypeError(f"{_join_path(self.path, key.strip())} default must be a boolean")

        raw = self._get_raw(key, default=default)
        if not isinstance(raw, bool):
            raise TypeError(
                f"{_join_path(self.path, key.strip())} must be a boolean (type={type(raw).__name__})"
            )
        self._record_effective(key, raw)
        return raw

    def get_templatable_int(
        self,
        key: str,
        *,
        default: int | None | object = _MISSING,
        min_value: int | None = None,
    ) -> int | str | None:
        """Parse an int that may also be given as a ``${{ ... }}`` expression.

        Numeric strings (``"3"``) are accepted and converted. Expressions are
        returned verbatim since they are only resolved at run time.
        """

        raw = self._get_raw(key, default=default)
        if raw is None:
            self._record_effective(key, None)
            return None
        if is_expression(raw):
            value: int | str = raw.strip()
            self._record_effective(key, value)
            return value
        if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
            raw = int(raw.strip())
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise TypeError(
                f"{_join_path(self.path, key.strip())} must be an int or a ${{{{ }}}} expression "
                f"(type={type(raw).__name__})"
            )
        if min_value is not None and raw < int(min_value):
            raise ValueError(
                f"{_join_path(self.path, key.strip())} must be >= {int(min_value)} (got {raw})"
            )
        self._record_effective(key, raw)
        return raw

    def get_str(
        self,
        key: str,
        *,
        default: str | None | object = _MISSING,
        allow_empty: bool = False,
        choices: Iterable[str] | None = None,
    ) -> str | None:
        if default is not _MISSING and default is not None and not isinstance(default, str):
            raise TypeError(f"{_join_path(self.path, key.strip())} default must be a string or None")

        raw = self._get_raw(key, default=default)
        if raw is None:
            self._record_effective(key, None)
            return None

        if not isinstance(raw, str):
            raise TypeError(
                f"{_join_path(self.path, key.strip())} must be a string (type={type(raw).__name__})"
            )
        value = raw.strip()
        if not value and not allow_empty:
            raise ValueError(f"{_join_path(self.path, key.strip())} cannot be empty")
        if choices is not None:
            choice_set = {str(item).strip() for item in choices if str(item).strip()}
            if value not in choice_set:
                allowed = ", ".join(sorted(choice_set)) or "<none>"
                raise ValueError(
                    f"{_join_path(self.path, key.strip())} must be one of: {allowed} (got {value!r})"
                )
        self._record_effective(key, value)
        return value

    def get_list_str(
        self,
        key: str,
        *,
        default: list[str] | tuple[str, ...] | object = _MISSING,
        allow_empty: bool = False,
        allow_scalar: bool = False,
    ) -> list[str]:
        """Parse a list of non-empty strings.

        With ``allow_scalar`` a single string is treated as a one-item list.
        """

        if default is not _MISSING and not isinstance(default, (list, tuple)):
            raise TypeError(f"{_join_path(self.path, key.strip())} default must be a list[str]")

        raw = self._get_raw(key, default=default)
        if raw is None and default is not _MISSING:
            raw = list(default)  # type: ignore[arg-type]
        if allow_scalar and isinstance(raw, str):
            raw = [raw]

        if not isinstance(raw, (list, tuple)):
            raise TypeError(
                f"{_join_path(self.path, key.strip())} must be a list[str] (type={type(raw).__name__})"
            )

        items: list[str] = []
        for idx, item in enumerate(raw):
            if not isinstance(item, str):
                raise TypeError(
                    f"{_join_path(self.path, key.strip())}[{idx}] must be a string (type={type(item).__name__})"
                )
            trimmed = item.strip()
            if not trimmed:
                raise ValueError(f"{_join_path(self.path, key.strip())}[{idx}] cannot be empty")
            items.append(trimmed)

        if not items and not allow_empty:
            raise ValueError(f"{_join_path(self.path, key.strip())} cannot be empty")

        self._record_effective(key, list(items))
        return items
