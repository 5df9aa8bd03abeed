"""
DefectRecord model representing one defect observation exported by a line machine.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field


class DefectRecord(BaseModel):
    """
    One production-defect observation parsed from a CSV export row.

    Records are deduplicated on (timestamp, line, model, defect, station, reason).
    Quantity is not part of that identity: a second row that only differs in
    quantity is a duplicate and is dropped.

    Attributes:
        timestamp: Day the defect was observed (column A)
        line: Production line name as written by the machine (column B)
        model: Product model (column C)
        defect: Defect code (column D)
        reason: Defect reason (column E)
        station: Station where the defect was found (column F)
        quantity: Number of defective units (column G)
    """

    timestamp: date
    line: str
    model: str
    defect: str
    reason: str
    station: str
    quantity: int = Field(0, ge=0)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "timestamp": "2025-12-01",
                "line": "LINE-A",
                "model": "X100",
                "defect": "SCRATCH",
                "reason": "Handling",
                "station": "ST-04",
                "quantity": 3
            }
        }

    def identity_key(self) -> tuple[date, str, str, str, str, str]:
        """Return the tuple used for duplicate detection (quantity excluded)."""
        return (self.timestamp, self.line, self.model, self.defect, self.station, self.reason)

    def as_params(self) -> dict[str, Any]:
        """
        Named parameters for the destination table statements.

        Keys follow the destination column names.
        """
        return {
            "DateTime": self.timestamp,
            "Line": self.line,
            "Model": self.model,
            "Defect": self.defect,
            "Reason_Defect": self.reason,
            "Station": self.station,
            "Quantity": self.quantity,
        }
