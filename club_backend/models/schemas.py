"""
Pydantic models for service inputs and outputs.
"""

from typing import Dict, Optional, List
from pydantic import BaseModel, Field, ConfigDict, model_validator

from club_backend.utils.constants import MIN_RANKING, MAX_RANKING, PREFERRED_POSITIONS


def _check_ranking(name: str, value: Optional[int]) -> None:
    if value is not None and not MIN_RANKING <= value <= MAX_RANKING:
        raise ValueError(f"{name} must be between {MIN_RANKING} and {MAX_RANKING}")


# --- Lineup Schemas ---


class PlayerDetail(BaseModel):
    """Display record for a player in a lineup."""

    id: str
    first_name: str
    last_name: str
    gender: Optional[str] = None


class LineupAssignment(BaseModel):
    """One player placed at one lineup position (player_id None leaves it open)."""

    position: str
    player_id: Optional[str] = None


# --- Player Schemas ---


class UpdatePlayerRequest(BaseModel):
    """Partial update of a player's sports data."""

    model_config = ConfigDict(populate_by_name=True)

    singles_ranking: Optional[int] = Field(default=None, alias="singlesRanking")
    doubles_ranking: Optional[int] = Field(default=None, alias="doublesRanking")
    preferred_positions: Optional[List[str]] = Field(default=None, alias="preferredPositions")
    is_active_player: Optional[bool] = Field(default=None, alias="isActivePlayer")
    team_ids: Optional[List[str]] = Field(default=None, alias="teamIds")

    @model_validator(mode="after")
    def validate_rankings(self):
        _check_ranking("singles_ranking", self.singles_ranking)
        _check_ranking("doubles_ranking", self.doubles_ranking)
        if self.preferred_positions is not None:
            invalid = [p for p in self.preferred_positions if p not in PREFERRED_POSITIONS]
            if invalid:
                raise ValueError(f"Invalid preferred position: {', '.join(invalid)}")
        return self


class BatchPlayerUpdate(BaseModel):
    """
    Updates applied to many players at once.

    A ranking offset and the absolute ranking for the same field may both be
    sent; the offset wins and the absolute value is dropped for that call.
    """

    model_config = ConfigDict(populate_by_name=True)

    is_active_player: Optional[bool] = Field(default=None, alias="isActivePlayer")
    singles_ranking: Optional[int] = Field(default=None, alias="singlesRanking")
    doubles_ranking: Optional[int] = Field(default=None, alias="doublesRanking")
    singles_ranking_offset: Optional[int] = Field(default=None, alias="singlesRankingOffset")
    doubles_ranking_offset: Optional[int] = Field(default=None, alias="doublesRankingOffset")
    add_to_teams: List[str] = Field(default_factory=list, alias="addToTeams")
    remove_from_teams: List[str] = Field(default_factory=list, alias="removeFromTeams")

    @model_validator(mode="after")
    def resolve_ranking_offsets(self):
        if self.singles_ranking_offset is not None:
            self.singles_ranking = None
        if self.doubles_ranking_offset is not None:
            self.doubles_ranking = None
        _check_ranking("singles_ranking", self.singles_ranking)
        _check_ranking("doubles_ranking", self.doubles_ranking)
        return self

    def field_values(self) -> Dict[str, object]:
        """Absolute field assignments left after offset resolution."""
        values = {}
        if self.is_active_player is not None:
            values["is_active_player"] = self.is_active_player
        if self.singles_ranking is not None:
            values["singles_ranking"] = self.singles_ranking
        if self.doubles_ranking is not None:
            values["doubles_ranking"] = self.doubles_ranking
        return values

    def ranking_offsets(self) -> Dict[str, int]:
        """Relative ranking increments."""
        offsets = {}
        if self.singles_ranking_offset is not None:
            offsets["singles_ranking"] = self.singles_ranking_offset
        if self.doubles_ranking_offset is not None:
            offsets["doubles_ranking"] = self.doubles_ranking_offset
        return offsets


class BatchUpdateResult(BaseModel):
    """Result of a batch player update."""

    modified_count: int


class BatchPlayerEntityResult(BaseModel):
    """Outcome of creating Player entities for many users; failures don't stop the batch."""

    player_ids: List[str]
    errors: List[str]


# --- Team Schemas ---


class TeamStatsResponse(BaseModel):
    """Player counts of a team with gender breakdown."""

    total: int = 0
    male: int = 0
    female: int = 0
