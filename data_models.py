"""
Shared data models used across the application.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

NOT_AVAILABLE = "N/A"

# A single job-link record keyed by the table's header names.
JobLinkRow = Dict[str, Any]

STACKS = (
    "Frontend",
    "Backend",
    "Fullstack",
    "DevOps",
    "QA",
    "Mobile",
    "Data Science",
    "Data Engineer",
    "Data Analyst",
    "ML Engineer",
    "AI Engineer",
    "Software Engineer",
    "Cloud Engineer",
    "Database Administrator",
    "Network Engineer",
    "Site Reliability Engineer",
    "UX/UI Designer",
)


class RemoteMode(str, Enum):
    REMOTE = "Remote"
    HYBRID = "Hybrid"
    ON_SITE = "On-site"
    NOT_AVAILABLE = NOT_AVAILABLE


class Industry(str, Enum):
    FINANCE = "finance"
    HEALTHCARE = "healthcare"
    NOT_AVAILABLE = NOT_AVAILABLE


class SalaryBucket(str, Enum):
    FROM_30K = "30K <"
    FROM_60K = "60K <"
    FROM_100K = "100K <"
    FROM_160K = "160K <"
    FROM_200K = "200K <"
    NOT_AVAILABLE = NOT_AVAILABLE


class Level(str, Enum):
    MIDDLE = "Middle"
    SENIOR = "Senior"
    STAFF = "Staff"
    PRINCIPAL = "Principal"
    LEAD = "Lead"
    ARCHITECT = "Architect"
    NOT_AVAILABLE = NOT_AVAILABLE


def enum_values(enum_cls) -> tuple:
    """Return the allowed string values of a vocabulary enum."""
    return tuple(member.value for member in enum_cls)


@dataclass
class Classification:
    """Schema-validated description of a single job posting."""

    remote: str = NOT_AVAILABLE
    best_stack: str = NOT_AVAILABLE
    all_possible_stacks: List[str] = field(default_factory=list)
    has_special_phrase: bool = False
    matched_special_phrases: List[str] = field(default_factory=list)
    industry: str = NOT_AVAILABLE
    annual_salary: str = NOT_AVAILABLE
    level: str = NOT_AVAILABLE

    @classmethod
    def default(cls) -> "Classification":
        """Uninformative classification used whenever a row cannot be analysed."""
        return cls()


@dataclass
class Table:
    """Snapshot of the whole job-links worksheet."""

    sheet_name: str
    headers: List[str]
    rows: List[JobLinkRow]
