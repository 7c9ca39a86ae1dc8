"""
Request bodies for the JSON endpoints.
"""

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PrintSettings(BaseModel):
    paperSize: str = "A4"
    colorType: str = "blackwhite"
    paperQuality: str = "standard"
    copies: int = Field(1, ge=1)


class UploadedFile(BaseModel):
    name: str
    url: Optional[str] = None
    size: Optional[int] = None
    pages: Optional[int] = Field(None, ge=1)


class QuoteRequest(BaseModel):
    shop_owner_id: Optional[UUID] = None
    files: List[UploadedFile]
    print_settings: PrintSettings = PrintSettings()


class CreatePrintJobsRequest(BaseModel):
    shop_owner_id: UUID
    files: List[UploadedFile]
    print_settings: PrintSettings = PrintSettings()
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    notes: Optional[str] = None


class BulkPrintRequest(BaseModel):
    job_ids: List[UUID]


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class CreateBookingRequest(BaseModel):
    shop_id: UUID
    time_slot_id: UUID
    customer_info: CustomerInfo = CustomerInfo()
    files: List[UploadedFile] = []
    print_settings: PrintSettings = PrintSettings()


class OperatingHoursEntry(BaseModel):
    day_of_week: str
    open_time: Optional[str] = "09:00"
    close_time: Optional[str] = "17:00"
    is_open: bool = False


class SlotConfigRequest(BaseModel):
    settings: Dict[str, Any] = {}
    operating_hours: Optional[List[OperatingHoursEntry]] = None


class GenerateSlotsRequest(BaseModel):
    slot_date: date


class ShopProfileRequest(BaseModel):
    shop_name: str
    description: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    email_address: Optional[str] = None
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    services_offered: Optional[List[str]] = None


class ShopSettingsRequest(BaseModel):
    shop: Optional[ShopProfileRequest] = None
    pricing_rules: Optional[List[Dict[str, Any]]] = None
    equipment: Optional[List[Dict[str, Any]]] = None
    notifications: Optional[Dict[str, bool]] = None


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
