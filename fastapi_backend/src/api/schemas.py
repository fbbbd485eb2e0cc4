from pydantic import BaseModel, ConfigDict, Field


class APIError(BaseModel):
    detail: str = Field(..., description="Human readable error message")


class User(BaseModel):
    id: int = Field(..., description="Database-assigned identifier")
    name: str
    email: str


class UserCreate(BaseModel):
    # Clients may echo back an "id"; it is dropped, the database assigns one.
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address (stored as given)")
