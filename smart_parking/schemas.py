from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    # camelCase on the wire, snake_case in code
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class VehicleOut(_ApiModel):
    license_plate: str = Field(..., alias="licensePlate")
    vehicle_type: str = Field(..., alias="vehicleType")
    entry_time: datetime = Field(..., alias="entryTime")
    assigned_slot_id: str = Field(..., alias="assignedSlotId")


class SlotOut(_ApiModel):
    slot_id: str = Field(..., alias="slotId")
    category: str
    occupied: bool
    reserved: bool
    parked_vehicle: Optional[VehicleOut] = Field(None, alias="parkedVehicle")


class ParkRequest(_ApiModel):
    # presence is checked by the route so it can answer 400 like the rest of the API
    license_plate: Optional[str] = Field(None, alias="licensePlate")
    vehicle_type: Optional[str] = Field(None, alias="vehicleType")


class UnparkRequest(_ApiModel):
    slot_id: Optional[str] = Field(None, alias="slotId")


class ParkResponse(_ApiModel):
    message: str
    slot_id: str = Field(..., alias="slotId")
    vehicle: VehicleOut


class UnparkResponse(_ApiModel):
    message: str
    slot_id: str = Field(..., alias="slotId")
    vehicle: VehicleOut
    exit_time: datetime = Field(..., alias="exitTime")
    fee: Optional[float] = None


class CategoryCount(_ApiModel):
    total: int = 0
    occupied: int = 0
    free: int = 0


class OccupancySummary(_ApiModel):
    total: int
    occupied: int
    free: int
    categories: Dict[str, CategoryCount]


class Message(BaseModel):
    message: str
