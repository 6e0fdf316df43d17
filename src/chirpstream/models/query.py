"""
Filter Query
============

Predicates for the filter stream endpoint.

At least one of follow, track or locations must be set for the
endpoint to accept the request.

Example:
    from chirpstream.models.query import FilterQuery

    query = FilterQuery(track=["python", "asyncio"], language=["en"])
    params = query.to_params(stall_warnings=True)
    # {"track": "python,asyncio", "language": "en", "stall_warnings": "true"}
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class FilterQuery(BaseModel):
    """
    Filter predicates sent as form parameters.

    Attributes:
        count: Backfill count (elevated access only)
        follow: User IDs whose statuses are delivered
        track: Keywords to match
        locations: Bounding boxes as (sw_lon, sw_lat, ne_lon, ne_lat)
        language: BCP 47 language codes
        filter_level: none, low or medium
    """

    count: int = Field(default=0, description="Backfill count (0 = none)")
    follow: List[int] = Field(default_factory=list)
    track: List[str] = Field(default_factory=list)
    locations: List[Tuple[float, float, float, float]] = Field(default_factory=list)
    language: List[str] = Field(default_factory=list)
    filter_level: Optional[str] = Field(default=None)

    @field_validator("filter_level")
    @classmethod
    def _check_filter_level(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in ("none", "low", "medium"):
            raise ValueError("filter_level must be one of: none, low, medium")
        return value

    @property
    def is_empty(self) -> bool:
        """True when no predicate would select any status."""
        return not (self.follow or self.track or self.locations)

    def to_params(self, stall_warnings: Optional[bool] = None) -> Dict[str, str]:
        """
        Build the form parameters for the filter request.

        Args:
            stall_warnings: Adds the stall_warnings parameter when not None

        Returns:
            Dict of parameter name to comma-joined value
        """
        params: Dict[str, str] = {}
        if self.count:
            params["count"] = str(self.count)
        if self.follow:
            params["follow"] = ",".join(str(user_id) for user_id in self.follow)
        if self.track:
            params["track"] = ",".join(self.track)
        if self.locations:
            params["locations"] = ",".join(
                str(coord) for box in self.locations for coord in box
            )
        if self.language:
            params["language"] = ",".join(self.language)
        if self.filter_level:
            params["filter_level"] = self.filter_level
        if stall_warnings is not None:
            params["stall_warnings"] = "true" if stall_warnings else "false"
        return params
