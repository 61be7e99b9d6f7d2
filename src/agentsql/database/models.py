"""Database models for agentsql statements and result sets."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence


class ExecutionKind(str, Enum):
    """How a statement is executed and what it returns.

    DIRECT yields rows when the statement produces them and a row count
    otherwise. QUERY must yield a result set. UPDATE yields an affected row
    count and never a cursor.
    """
    DIRECT = "direct"
    QUERY = "query"
    UPDATE = "update"


@dataclass(frozen=True)
class ColumnInfo:
    """Result set column information from the driver's cursor description."""
    name: str
    type_code: Any = None
    display_size: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: Optional[bool] = None

    @classmethod
    def from_description(cls, description: Sequence[Any]) -> "ColumnInfo":
        """Build from one DB-API ``cursor.description`` entry."""
        entry = list(description) + [None] * (7 - len(description))
        return cls(
            name=str(entry[0]),
            type_code=entry[1],
            display_size=entry[2],
            precision=entry[4],
            scale=entry[5],
            is_nullable=entry[6],
        )


@dataclass
class StatementResult:
    """Outcome of one executed statement."""
    kind: ExecutionKind
    row_count: int
    columns: List[ColumnInfo]
    has_result_set: bool
    execution_time: float = 0.0
