"""Shared validation helpers for settings and lobby addressing."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

# Lobby ids are short numeric strings. Hosts issue 6 digits; longer ids are
# accepted for compatibility with hosts that issue up to 12.
LOBBY_ID_PATTERN = re.compile(r"[0-9]{4,12}")


def is_valid_lobby_id(value: str) -> bool:
    return LOBBY_ID_PATTERN.fullmatch(value) is not None


def _origins_from_text(text: str) -> list[str]:
    if not text.startswith("["):
        return [part.strip() for part in text.split(",") if part.strip()]
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON array: {e}") from e
    if not isinstance(parsed, list) or any(not isinstance(item, str) for item in parsed):
        raise ValueError("JSON value must be an array of strings")
    return parsed


def parse_origin_list(value: str | list[str]) -> list[str]:
    """
    Normalise BINGO_CORS_ORIGINS.

    Takes a list, a JSON array ('["a","b"]') or comma-separated text ('a,b').
    Raises ValueError when nothing usable is left.
    """
    origins = value if isinstance(value, list) else _origins_from_text(value.strip())
    if not origins:
        raise ValueError("origin list must not be empty")
    return origins


class OriginListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that hands cors_origins to its validator as a raw string.

    pydantic-settings JSON-decodes list-typed env values before validators run,
    which would reject the comma-separated form.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name == "cors_origins" and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
