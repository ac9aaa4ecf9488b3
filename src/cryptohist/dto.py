from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Quote(BaseModel):
    """One instrument's hourly market state, priced in USD."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    time: int  # unix timestamp, hour aligned
    close: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    open: float = Field(..., ge=0)
    volume_from: float = Field(0.0, ge=0, alias="volumefrom")
    volume_to: float = Field(0.0, ge=0, alias="volumeto")

    @property
    def is_sentinel(self) -> bool:
        return is_sentinel(self)

    def to_row(self) -> dict[str, Any]:
        """Column mapping for the instrument table"""
        return {
            "time": self.time,
            "close": self.close,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "volume_from": self.volume_from,
            "volume_to": self.volume_to,
        }


class CryptoCompareResponse(BaseModel):
    """Envelope returned by the histohour endpoint"""

    model_config = ConfigDict(populate_by_name=True)

    response: str = Field("Success", alias="Response")
    message: str | None = Field(None, alias="Message")
    type: int | None = Field(None, alias="Type")
    aggregated: bool = Field(False, alias="Aggregated")
    time_from: int | None = Field(None, alias="TimeFrom")
    time_to: int | None = Field(None, alias="TimeTo")
    data: list[Quote] = Field(default_factory=list, alias="Data")

    @property
    def is_error(self) -> bool:
        return self.response.lower() == "error"


def is_sentinel(quote: Quote) -> bool:
    """True when the quote is the API's zero-priced "no data here" placeholder.

    The API pads pages past the start of an instrument's history with rows
    whose open, high, low and close are all zero, so a sentinel at the end of
    a page means nothing older exists.
    """
    return quote.open == 0 and quote.high == 0 and quote.low == 0 and quote.close == 0
