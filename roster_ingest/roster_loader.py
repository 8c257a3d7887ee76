"""
Roster Loader for the lead intake engine.

Handles loading team member records from CSV or JSON files.
"""

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from lead_scoring.models import Availability, TeamMember

logger = logging.getLogger(__name__)

_LIST_SEPARATORS = re.compile(r"[;|,]")


class MemberSpec(BaseModel):
    """Team member record as it appears in a roster file."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    team: str = Field(min_length=1)
    max_load: int = Field(gt=0)
    current_load: int = Field(default=0, ge=0)
    specialties: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=lambda: ["en"])
    availability: Availability = Availability.AVAILABLE

    @field_validator("specialties", "languages", mode="before")
    @classmethod
    def _split_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [v.strip() for v in _LIST_SEPARATORS.split(value) if v.strip()]
        return value

    @field_validator("team", mode="before")
    @classmethod
    def _normalize_team(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace(" ", "_")
        return value

    @model_validator(mode="after")
    def _check_load(self) -> "MemberSpec":
        if self.current_load > self.max_load:
            raise ValueError(f"current_load {self.current_load} exceeds max_load {self.max_load}")
        return self

    def to_member(self) -> TeamMember:
        return TeamMember(
            id=self.id,
            name=self.name,
            team=self.team,
            max_load=self.max_load,
            current_load=self.current_load,
            specialties=frozenset(self.specialties),
            languages=frozenset(self.languages),
            availability=self.availability,
        )


class RosterLoader:
    """
    Loads team rosters.

    Supports:
    - CSV files (one member per row, list columns separated by ';', '|' or ',')
    - JSON files (a list of members, or {"members": [...]})

    Invalid rows are skipped with a warning.
    """

    def load(self, file_path: Union[str, Path]) -> List[TeamMember]:
        """Load a roster file, choosing the parser from the extension."""
        path = Path(file_path)
        if path.suffix == ".csv":
            return self.load_from_csv(path)
        if path.suffix == ".json":
            return self.load_from_json(path)
        raise ValueError(f"Unsupported roster format: {path.suffix}")

    def load_from_csv(self, file_path: Union[str, Path]) -> List[TeamMember]:
        """
        Load a roster from a CSV file.

        Expected columns:
        - id, name, team, max_load, current_load, specialties, languages, availability

        Args:
            file_path: Path to the CSV file

        Returns:
            List of TeamMember records
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            rows = [
                {k.strip(): v for k, v in row.items() if v not in (None, "")}
                for row in csv.DictReader(f)
            ]

        members = self._parse_rows(rows)
        logger.info(f"Loaded {len(members)} members from {file_path}")
        return members

    def load_from_json(self, file_path: Union[str, Path]) -> List[TeamMember]:
        """
        Load a roster from a JSON file.

        Args:
            file_path: Path to the JSON file

        Returns:
            List of TeamMember records
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"JSON file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if isinstance(data, dict):
            data = data.get("members", [])

        members = self._parse_rows(data)
        logger.info(f"Loaded {len(members)} members from {file_path}")
        return members

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[TeamMember]:
        members: List[TeamMember] = []
        seen = set()
        for row in rows:
            if not isinstance(row, dict):
                logger.warning(f"Skipping roster entry that is not an object: {row!r}")
                continue
            try:
                member = MemberSpec(**row).to_member()
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping invalid roster row {row.get('id', '?')}: {e}")
                continue
            if member.id in seen:
                logger.warning(f"Duplicate member id {member.id}, keeping the last entry")
                members = [m for m in members if m.id != member.id]
            seen.add(member.id)
            members.append(member)
        return members
