from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional
from bson import ObjectId


class CompanyAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CompanyInfo(BaseModel):
    """Company data a user may register; drives the provider block of the PDF."""
    name: Optional[str] = None
    cif: Optional[str] = None
    address: CompanyAddress = Field(default_factory=CompanyAddress)
    is_autonomous: bool = False


class UserInDB(BaseModel):
    """User database schema (identity store, read-only here)."""
    id: ObjectId = Field(alias="_id")
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    nif: Optional[str] = None  # personal tax id
    company_id: Optional[ObjectId] = None  # shared by company members and guests
    company: Optional[CompanyInfo] = None
    role: str = "user"
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        arbitrary_types_allowed=True
    )

    @property
    def _id(self) -> ObjectId:
        """Alias for id to match MongoDB naming."""
        return self.id

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def has_company(self) -> bool:
        return bool(self.company and self.company.name)
