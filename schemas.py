"""
Database Schemas for EcoCollect

Each Pydantic model represents a MongoDB collection.
Collection name = lowercase of class name (User -> "user", Pickup -> "pickup").

Emails are stored exactly as the client sent them; every lookup uses the
same raw string.
"""

from pydantic import AfterValidator, BaseModel, Field
from pydantic.networks import validate_email
from typing import Annotated, Optional, Literal, List

PickupStatus = Literal['Scheduled', 'Completed']


def _check_email(value: str) -> str:
    validate_email(value)  # raises on malformed addresses; the normalized form is discarded
    return value


Email = Annotated[str, AfterValidator(_check_email)]


class User(BaseModel):
    email: Email = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="Hashed password")
    xp: int = Field(0, ge=0, description="Experience points")
    streak: int = Field(0, ge=0, description="Completed pickups in a row")
    badges: List[str] = Field(default_factory=list, description="Badge labels in the order earned")


class PickupRequest(BaseModel):
    user: str = Field(..., min_length=1, description="Owner email")
    date: Optional[str] = Field(None)
    location: Optional[str] = Field(None)
    pickupType: Optional[str] = Field(None, description="Kind of pickup, free text")
    time: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    materials: List[str] = Field(default_factory=list, description="Material labels, one per item")
    notes: Optional[str] = Field(None)


class Pickup(PickupRequest):
    status: PickupStatus = Field('Scheduled')


class Pledge(BaseModel):
    user: str = Field(..., description="Owner email")
    pledge: str = Field(..., min_length=1, description="Pledge statement")


# ---------- Request bodies ----------

class RegisterRequest(BaseModel):
    email: Email
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: Email
    password: str
