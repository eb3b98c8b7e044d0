from pydantic import BaseModel


class CountResponse(BaseModel):
    count: int


class CleanupResponse(BaseModel):
    deleted_count: int
