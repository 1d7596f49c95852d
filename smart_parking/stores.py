"""Narrow store interfaces used by the allocation policy.

The policy only ever needs the handful of queries declared here, so it does
not depend on any particular storage technology. ``SqlSlotStore`` and
``SqlVehicleStore`` implement them on top of a SQLAlchemy session; they never
commit, the caller owns the transaction.
"""

from typing import List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .db import ParkingSlot, Vehicle


class SlotStore(Protocol):
    def get(self, slot_id: str) -> Optional[ParkingSlot]: ...

    def find_first_available_by_category(self, category: str) -> Optional[ParkingSlot]: ...

    def find_first_available_unreserved(self) -> Optional[ParkingSlot]: ...

    def save(self, slot: ParkingSlot) -> None: ...

    def list_all(self) -> List[ParkingSlot]: ...

    def count(self) -> int: ...


class VehicleStore(Protocol):
    def exists(self, license_plate: str) -> bool: ...

    def get(self, license_plate: str) -> Optional[Vehicle]: ...

    def save(self, vehicle: Vehicle) -> None: ...

    def delete_by_id(self, license_plate: str) -> None: ...


class SqlSlotStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, slot_id: str) -> Optional[ParkingSlot]:
        return self._session.get(ParkingSlot, slot_id)

    def find_first_available_by_category(self, category: str) -> Optional[ParkingSlot]:
        stmt = (
            select(ParkingSlot)
            .where(ParkingSlot.occupied.is_(False), ParkingSlot.category == category)
            .order_by(ParkingSlot.number)
            .limit(1)
        )
        return self._session.scalar(stmt)

    def find_first_available_unreserved(self) -> Optional[ParkingSlot]:
        stmt = (
            select(ParkingSlot)
            .where(ParkingSlot.occupied.is_(False), ParkingSlot.reserved.is_(False))
            .order_by(ParkingSlot.number)
            .limit(1)
        )
        return self._session.scalar(stmt)

    def save(self, slot: ParkingSlot) -> None:
        self._session.add(slot)

    def list_all(self) -> List[ParkingSlot]:
        return list(self._session.scalars(select(ParkingSlot).order_by(ParkingSlot.number)).unique())

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(ParkingSlot)) or 0


class SqlVehicleStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def exists(self, license_plate: str) -> bool:
        return self._session.get(Vehicle, license_plate) is not None

    def get(self, license_plate: str) -> Optional[Vehicle]:
        return self._session.get(Vehicle, license_plate)

    def save(self, vehicle: Vehicle) -> None:
        self._session.add(vehicle)

    def delete_by_id(self, license_plate: str) -> None:
        # ORM delete so the flush orders it after the slot update that drops the reference
        vehicle = self._session.get(Vehicle, license_plate)
        if vehicle is not None:
            self._session.delete(vehicle)
