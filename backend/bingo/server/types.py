from pydantic import BaseModel, ConfigDict, Field

from bingo.logic.enums import CallingMode, Language, MarkingMode, WinningPattern
from bingo.messaging.types import RawCard


class LobbySettingsUpdate(BaseModel):
    """Partial lobby settings change. Omitted fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    pattern: WinningPattern | None = None
    call_interval_seconds: float | None = Field(default=None, gt=0)
    stake: float | None = Field(default=None, ge=0)
    language: Language | None = None
    calling_mode: CallingMode | None = None
    marking_mode: MarkingMode | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


class HostCardsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cards: list[RawCard] = Field(max_length=50)


class HostMarkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    player_id: str = Field(min_length=1, max_length=100)
    row: int = Field(ge=0, le=4)
    col: int = Field(ge=0, le=4)
