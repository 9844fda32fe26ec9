from pydantic import BaseModel, HttpUrl, Field, computed_field
from shortener.config import settings


def build_short_url(short_id: str) -> str:
    return f"{settings.base_url}/{short_id}"


class URLBase(BaseModel):
    long_url: HttpUrl = Field(..., description="The original URL to be shortened")


class URLCreate(URLBase):
    pass


class URLResponse(BaseModel):
    """Result of a create request

    @computed_field turns short_id into the full link clients follow.
    """
    short_id: str
    long_url: str
    existed: bool = False

    @computed_field
    @property
    def short_url(self) -> str:
        """Computed field - automatically generated from short_id"""
        return build_short_url(self.short_id)


class BatchURLItem(BaseModel):
    correlation_id: str = Field(..., description="Client-chosen key echoed back in the response")
    original_url: HttpUrl


class BatchURLResult(BaseModel):
    correlation_id: str
    short_url: str


class UserURL(BaseModel):
    short_url: str
    original_url: str
