"""Slot allocation for the parking lot.

Reserved categories (HANDICAP, EV_CHARGING) are a soft set-aside: a HANDICAP or
EV vehicle first looks for a free slot of its own category and falls back to the
standard pool when none is left, while every other vehicle type only ever
searches unreserved slots. Specialized vehicles can therefore consume standard
capacity, but standard vehicles can never consume reserved capacity.

Candidates are always the lowest-numbered eligible slot (S1 before S2 before S10).
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .db import ParkingSlot, Vehicle
from .fees import FeeCalculator
from .schemas import CategoryCount, OccupancySummary, SlotOut, VehicleOut
from .stores import SlotStore, SqlSlotStore, SqlVehicleStore

logger = logging.getLogger(__name__)

HANDICAP = "HANDICAP"
EV_CHARGING = "EV_CHARGING"
STANDARD = "STANDARD"
CATEGORIES = (HANDICAP, EV_CHARGING, STANDARD)

EV = "EV"
# vehicle types that may claim a reserved slot before falling back
SPECIALIZED_VEHICLE_TYPES = (HANDICAP, EV)


class StorageFailure(Exception):
    """The slot or vehicle store could not be read or written."""


@dataclass(frozen=True)
class Parked:
    slot: SlotOut

    @property
    def vehicle(self) -> VehicleOut:
        return self.slot.parked_vehicle


@dataclass(frozen=True)
class AlreadyParked:
    license_plate: str


@dataclass(frozen=True)
class LotFull:
    vehicle_type: str


@dataclass(frozen=True)
class Unparked:
    slot_id: str
    vehicle: VehicleOut
    exit_time: datetime
    fee: Optional[float] = None


@dataclass(frozen=True)
class InvalidOrEmptySlot:
    slot_id: str


ParkResult = Union[Parked, AlreadyParked, LotFull]
UnparkResult = Union[Unparked, InvalidOrEmptySlot]


def required_category(vehicle_type: str) -> str:
    if vehicle_type == EV:
        return EV_CHARGING
    return vehicle_type


def select_slot(vehicle_type: str, slots: SlotStore) -> Optional[ParkingSlot]:
    """Pick the slot a new vehicle of ``vehicle_type`` should get, or None when the lot is full for it."""
    candidate = None
    if vehicle_type in SPECIALIZED_VEHICLE_TYPES:
        candidate = slots.find_first_available_by_category(required_category(vehicle_type))
    if candidate is None:
        candidate = slots.find_first_available_unreserved()
    return candidate


def lot_layout(total: int, handicap: int, ev: int) -> List[ParkingSlot]:
    """Build the fixed slot inventory: handicap first, then EV charging, then standard."""
    if handicap < 0 or ev < 0 or handicap + ev > total:
        raise ValueError(f"Invalid lot layout: total={total} handicap={handicap} ev={ev}")
    slots = []
    for n in range(1, total + 1):
        if n <= handicap:
            category = HANDICAP
        elif n <= handicap + ev:
            category = EV_CHARGING
        else:
            category = STANDARD
        slots.append(
            ParkingSlot(
                slot_id=f"S{n}",
                number=n,
                category=category,
                occupied=False,
                reserved=category != STANDARD,
            )
        )
    return slots


class ParkingManager:
    """Runs park/unpark/status against the slot and vehicle stores.

    Each call is one transaction. A process-wide lock serializes the
    read-then-write sequences so two requests cannot claim the same slot.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        fee_calculator: Optional[FeeCalculator] = None,
        clock: Callable[[], datetime] = datetime.now,
        total_slots: int = settings.TOTAL_SLOTS,
        handicap_slots: int = settings.HANDICAP_SLOTS,
        ev_slots: int = settings.EV_SLOTS,
    ) -> None:
        self._session_factory = session_factory
        self._fee_calculator = fee_calculator
        self._clock = clock
        self._layout = (total_slots, handicap_slots, ev_slots)
        self._lock = threading.Lock()

    def _session(self) -> Session:
        return self._session_factory()

    def initialize(self) -> int:
        """Seed the lot if the inventory is empty. Returns the number of slots created."""
        with self._lock, self._session() as session:
            try:
                slots = SqlSlotStore(session)
                existing = slots.count()
                if existing:
                    logger.info("Parking lot already initialized with %d slots.", existing)
                    return 0
                layout = lot_layout(*self._layout)
                for slot in layout:
                    slots.save(slot)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageFailure("Failed to initialize parking slots") from exc
        logger.info("Initialized %d parking slots with zones.", len(layout))
        return len(layout)

    def park(self, license_plate: str, vehicle_type: str) -> ParkResult:
        with self._lock, self._session() as session:
            try:
                slots = SqlSlotStore(session)
                vehicles = SqlVehicleStore(session)

                if vehicles.exists(license_plate):
                    logger.info("Vehicle %s is already parked", license_plate)
                    return AlreadyParked(license_plate)

                slot = select_slot(vehicle_type, slots)
                if slot is None:
                    logger.info("No slot available for %s (%s)", license_plate, vehicle_type)
                    return LotFull(vehicle_type)

                vehicle = Vehicle(
                    license_plate=license_plate,
                    vehicle_type=vehicle_type,
                    entry_time=self._clock(),
                    assigned_slot_id=slot.slot_id,
                )
                vehicles.save(vehicle)
                slot.occupied = True
                slot.parked_vehicle = vehicle
                slots.save(slot)
                session.commit()
                result = Parked(SlotOut.model_validate(slot))
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageFailure(f"Failed to park vehicle {license_plate}") from exc

        logger.info("Parked %s (%s) in %s", license_plate, vehicle_type, result.slot.slot_id)
        return result

    def unpark(self, slot_id: str) -> UnparkResult:
        with self._lock, self._session() as session:
            try:
                slots = SqlSlotStore(session)
                vehicles = SqlVehicleStore(session)

                slot = slots.get(slot_id)
                if slot is None or not slot.occupied or slot.parked_vehicle is None:
                    logger.info("Unpark rejected: slot %s is invalid or already empty", slot_id)
                    return InvalidOrEmptySlot(slot_id)

                departed = VehicleOut.model_validate(slot.parked_vehicle)
                exit_time = self._clock()
                fee = None
                if self._fee_calculator is not None:
                    # before the commit: a failing tariff leaves the vehicle parked
                    fee = self._fee_calculator.calculate(departed, exit_time)
                slot.parked_vehicle = None
                slot.occupied = False
                slots.save(slot)
                # same transaction as the slot update, so no vehicle record can dangle
                vehicles.delete_by_id(departed.license_plate)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageFailure(f"Failed to unpark slot {slot_id}") from exc

        logger.info("Unparked %s from %s", departed.license_plate, slot_id)
        return Unparked(slot_id=slot_id, vehicle=departed, exit_time=exit_time, fee=fee)

    def status(self) -> List[SlotOut]:
        with self._session() as session:
            try:
                return [SlotOut.model_validate(s) for s in SqlSlotStore(session).list_all()]
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to read parking status") from exc

    def summary(self) -> OccupancySummary:
        counts: Dict[str, CategoryCount] = {c: CategoryCount() for c in CATEGORIES}
        for slot in self.status():
            entry = counts.setdefault(slot.category, CategoryCount())
            entry.total += 1
            if slot.occupied:
                entry.occupied += 1
            else:
                entry.free += 1
        total = sum(c.total for c in counts.values())
        occupied = sum(c.occupied for c in counts.values())
        return OccupancySummary(total=total, occupied=occupied, free=total - occupied, categories=counts)
