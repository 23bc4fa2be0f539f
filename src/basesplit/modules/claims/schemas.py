from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClaimRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Left loosely typed so shape errors come back as INVALID_REQUEST, not a 422.
    item_ids: Any = Field(default=None, alias="itemIds")
    claimed_by: Any = Field(default=None, alias="claimedBy")
    tx_hash: Any = Field(default=None, alias="txHash")


class ClaimOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    items_claimed: int = Field(alias="itemsClaimed")
