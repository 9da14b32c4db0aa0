"""Shared field types for request and response DTOs."""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, Field

from ..core.timezone_utils import ensure_utc

# SQLite hands back naive datetimes; responses always carry UTC offsets
UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]

MonthStr = Annotated[str, Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$", examples=["2024-02"])]
HHMM = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$", examples=["16:00"])]
Cents = Annotated[int, Field(ge=0, description="Amount in cents")]
