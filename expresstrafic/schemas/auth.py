from typing import Optional

from pydantic import BaseModel, Field


class RegisterIn(BaseModel):
    email: str
    password: str
    first_name: str = Field(..., alias="prenom")
    last_name: str = Field(..., alias="nom")
    phone: Optional[str] = Field(None, alias="telephone")
    phone_code: Optional[str] = Field(None, alias="indicatif")

    model_config = {"populate_by_name": True}


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    refresh_token: str


class RefreshIn(BaseModel):
    refresh_token: str


class UserOut(BaseModel):
    id: int
    email: str
    prenom: Optional[str] = None
    nom: Optional[str] = None
    telephone: Optional[str] = None
    role: str
    email_verified: bool
    statut: str
