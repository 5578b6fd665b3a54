from typing import Optional
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

PHONE_PATTERN = r"^[+]?[\d\s\-()]{7,15}$"
NATIONAL_ID_PATTERN = r"^\d{6,12}$"

def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v

class PersonCreate(BaseModel):
    """Input schema to register a borrower."""
    name: str = Field(..., min_length=2, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    national_id: Optional[str] = Field(None, max_length=20, pattern=NATIONAL_ID_PATTERN)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True

    model_config = {
        "str_strip_whitespace": True,
        "json_schema_extra": {
            "example": {
                "name": "María",
                "surname": "Gómez",
                "national_id": "1032456789",
                "phone": "+57 300 555 1234",
                "email": "maria@example.com",
                "notes": "Referida por Juan",
            }
        },
    }

    @field_validator("surname", "national_id", "phone", "email", "address", "notes", mode="before")
    @classmethod
    def _empty_as_null(cls, v):
        return _blank_to_none(v)

class PersonUpdate(BaseModel):
    """Partial update schema for a borrower."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    national_id: Optional[str] = Field(None, max_length=20, pattern=NATIONAL_ID_PATTERN)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None

    model_config = {"str_strip_whitespace": True}

    @field_validator("surname", "national_id", "phone", "email", "address", "notes", mode="before")
    @classmethod
    def _empty_as_null(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("at least one field is required")
        return self
