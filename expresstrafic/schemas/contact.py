from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from expresstrafic.services.validators import is_valid_phone


class ContactIn(BaseModel):
    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, alias="telephone")
    phone_code: Optional[str] = Field(None, alias="indicatif", max_length=8)
    subject: str = Field(..., alias="sujet", min_length=1, max_length=100)
    sub_subject: Optional[str] = Field(None, alias="sousSujet", max_length=100)
    message: str = Field(..., min_length=10, max_length=2000)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        if v and not is_valid_phone(v):
            raise ValueError("Invalid phone number")
        return v or None
