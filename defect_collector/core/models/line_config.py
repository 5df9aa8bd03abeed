"""
LineConfig model describing one monitored production line.
"""

from pydantic import BaseModel, Field, field_validator

from defect_collector.utils.validation import sanitize_table_name


class LineConfig(BaseModel):
    """
    Static description of a monitored line, loaded once at startup.

    Attributes:
        name: Display name used in logs and metrics
        ip: Network address of the machine exposing the shared folder.
            A line with an empty address is skipped by the scanner.
        table_name: Destination table (optionally schema-qualified)
    """

    name: str = Field(..., min_length=1, max_length=255)
    ip: str = ""
    table_name: str

    @field_validator("ip")
    @classmethod
    def strip_address(cls, v: str) -> str:
        return v.strip()

    @field_validator("table_name")
    @classmethod
    def check_table_name(cls, v: str) -> str:
        """Reject anything that is not a plain (schema.)table identifier."""
        return sanitize_table_name(v)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "Line A",
                "ip": "10.20.1.11",
                "table_name": "defect_line_a"
            }
        }
