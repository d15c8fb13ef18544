"""Event record data model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _quantity(value: Any) -> int:
    """Parse a JSON-RPC quantity (``"0x1a"`` or an int) into an int."""
    if isinstance(value, bool):
        raise ValueError("quantity must be an integer or hex string")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    raise ValueError(f"quantity must be an integer or hex string, got {type(value).__name__}")


class Record(BaseModel):
    """Opaque on-chain event record.

    Identity for deduplication is ``(transaction_id, sequence_index)``;
    ``block_number`` orders records and anchors approximate timestamps.
    ``timestamp`` stays ``None`` until a time model has been applied, so
    "not computed" is never confused with a real value.
    """

    transaction_id: str = Field(..., min_length=1)
    sequence_index: int = Field(..., ge=0)
    block_number: int = Field(..., ge=0)
    payload: Any = None
    timestamp: int | None = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @field_validator("sequence_index", "block_number", mode="before")
    @classmethod
    def parse_quantity(cls, v: Any) -> int:
        return _quantity(v)

    @property
    def identity(self) -> tuple[str, int]:
        return (self.transaction_id, self.sequence_index)

    @classmethod
    def from_rpc_log(cls, entry: dict[str, Any]) -> Record:
        """Build a record from an ``eth_getLogs`` result entry.

        The whole entry is kept as the payload.
        """
        return cls(
            transaction_id=entry["transactionHash"],
            sequence_index=entry["logIndex"],
            block_number=entry["blockNumber"],
            payload=entry,
        )
