"""
Data models for queue messages.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List


class DeleteRequest(BaseModel):
    """
    Request to soft-delete short links on behalf of their owner.

    Published by the API and consumed by the delete worker. It lives only
    in the queue: once consumed (or dropped on shutdown) it is gone.
    """

    owner_id: str = Field(..., description="Identity the short IDs must belong to")
    short_ids: List[str] = Field(default_factory=list, description="Short IDs to delete, in request order")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "owner_id": "6f1c2a9e-3d4b-4e8f-9a51-0c7d2b3e4f60",
                "short_ids": ["q3Xz8fLm", "A1b2C3d4"]
            }
        }
    )
