from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from smart_parking.allocation import (
    AlreadyParked,
    InvalidOrEmptySlot,
    LotFull,
    Parked,
    ParkingManager,
    StorageFailure,
    Unparked,
    lot_layout,
)
from smart_parking.db import Base, ParkingSlot, Vehicle
from smart_parking.fees import FeeCalculator

from conftest import ENTRY_TIME


def _occupied(manager):
    return [s.slot_id for s in manager.status() if s.occupied]


def _fill_standard(manager, count=90, prefix="CAR"):
    for i in range(count):
        assert isinstance(manager.park(f"{prefix}-{i}", "CAR"), Parked)


def test_initialize_seeds_lot_layout(manager):
    slots = manager.status()
    assert len(slots) == 100
    assert [s.slot_id for s in slots] == [f"S{n}" for n in range(1, 101)]
    for slot in slots[:5]:
        assert (slot.category, slot.reserved) == ("HANDICAP", True)
    for slot in slots[5:10]:
        assert (slot.category, slot.reserved) == ("EV_CHARGING", True)
    for slot in slots[10:]:
        assert (slot.category, slot.reserved) == ("STANDARD", False)
    assert not any(s.occupied or s.parked_vehicle for s in slots)


def test_initialize_is_idempotent(manager):
    manager.park("AB-123", "CAR")
    before = manager.status()

    assert manager.initialize() == 0
    assert manager.status() == before


def test_initialize_returns_created_count(session_factory):
    m = ParkingManager(session_factory)
    assert m.initialize() == 100


def test_lot_layout_rejects_oversized_reservations():
    with pytest.raises(ValueError):
        lot_layout(8, 5, 5)


def test_lot_layout_custom_sizes():
    slots = lot_layout(4, 1, 1)
    assert [(s.slot_id, s.category, s.reserved) for s in slots] == [
        ("S1", "HANDICAP", True),
        ("S2", "EV_CHARGING", True),
        ("S3", "STANDARD", False),
        ("S4", "STANDARD", False),
    ]


def test_handicap_vehicle_gets_handicap_slot(manager):
    result = manager.park("HC-1", "HANDICAP")

    assert isinstance(result, Parked)
    assert result.slot.slot_id == "S1"
    assert result.slot.category == "HANDICAP"
    assert result.slot.occupied
    assert result.vehicle.license_plate == "HC-1"
    assert result.vehicle.assigned_slot_id == "S1"
    assert result.vehicle.entry_time == ENTRY_TIME


def test_handicap_falls_back_to_standard_when_reserved_full(manager):
    for i in range(5):
        assert manager.park(f"HC-{i}", "HANDICAP").slot.category == "HANDICAP"

    result = manager.park("HC-5", "HANDICAP")
    assert result.slot.slot_id == "S11"
    assert result.slot.category == "STANDARD"


def test_ev_maps_to_ev_charging(manager):
    result = manager.park("EV-1", "EV")
    assert result.slot.slot_id == "S6"
    assert result.slot.category == "EV_CHARGING"


def test_ev_falls_back_to_standard(manager):
    for i in range(5):
        manager.park(f"EV-{i}", "EV")

    result = manager.park("EV-5", "EV")
    assert isinstance(result, Parked)
    assert result.slot.category == "STANDARD"


def test_ev_lot_full_when_nothing_eligible(manager):
    for i in range(5):
        manager.park(f"EV-{i}", "EV")
    _fill_standard(manager)

    # handicap slots are still free but never offered to an EV
    assert isinstance(manager.park("EV-5", "EV"), LotFull)


def test_car_never_takes_reserved_slot(manager):
    _fill_standard(manager)

    result = manager.park("CAR-late", "CAR")

    assert result == LotFull("CAR")
    assert len(_occupied(manager)) == 90
    assert all(not s.occupied for s in manager.status()[:10])


@pytest.mark.parametrize("vehicle_type", ["CAR", "MOTORCYCLE", "EV_CHARGING", "handicap"])
def test_other_types_use_standard_pool(manager, vehicle_type):
    result = manager.park("X-1", vehicle_type)
    assert result.slot.slot_id == "S11"
    assert result.vehicle.vehicle_type == vehicle_type


def test_lowest_numbered_slot_wins(manager):
    ids = [manager.park(f"CAR-{i}", "CAR").slot.slot_id for i in range(3)]
    assert ids == ["S11", "S12", "S13"]

    manager.unpark("S12")
    assert manager.park("CAR-9", "CAR").slot.slot_id == "S12"


def test_numeric_order_across_digit_boundary(manager):
    for i in range(4):
        manager.park(f"EV-{i}", "EV")
    # S6..S9 taken, next EV slot is S10, not anything sorting lexically after it
    assert manager.park("EV-4", "EV").slot.slot_id == "S10"


def test_already_parked_is_a_no_op(manager):
    manager.park("AB-123", "CAR")
    before = manager.status()

    result = manager.park("AB-123", "HANDICAP")

    assert result == AlreadyParked("AB-123")
    assert manager.status() == before


def test_full_lot_returns_lot_full(manager):
    for i in range(5):
        manager.park(f"HC-{i}", "HANDICAP")
    for i in range(5):
        manager.park(f"EV-{i}", "EV")
    _fill_standard(manager)
    assert len(_occupied(manager)) == 100

    for vehicle_type in ("CAR", "HANDICAP", "EV"):
        assert isinstance(manager.park("ONE-MORE", vehicle_type), LotFull)
    assert len(_occupied(manager)) == 100


def test_unpark_frees_slot_and_removes_vehicle(manager, session_factory):
    manager.park("AB-123", "CAR")

    result = manager.unpark("S11")

    assert isinstance(result, Unparked)
    assert result.slot_id == "S11"
    assert result.vehicle.license_plate == "AB-123"
    assert result.fee is None
    slot = manager.status()[10]
    assert not slot.occupied
    assert slot.parked_vehicle is None
    with session_factory() as session:
        assert session.get(Vehicle, "AB-123") is None

    assert manager.unpark("S11") == InvalidOrEmptySlot("S11")


def test_unpark_unknown_or_empty_slot(manager):
    assert manager.unpark("S999") == InvalidOrEmptySlot("S999")
    assert manager.unpark("S50") == InvalidOrEmptySlot("S50")


def test_plate_can_park_again_after_leaving(manager):
    manager.park("AB-123", "CAR")
    manager.unpark("S11")

    assert isinstance(manager.park("AB-123", "CAR"), Parked)


def test_park_unpark_round_trip_restores_slot(manager):
    before = manager.status()

    parked = manager.park("HC-1", "HANDICAP")
    manager.unpark(parked.slot.slot_id)

    assert manager.status() == before


def test_unpark_uses_fee_calculator(session_factory):
    class FlatFee(FeeCalculator):
        def calculate(self, vehicle, exit_time):
            assert vehicle.license_plate == "AB-123"
            return 4.5

    m = ParkingManager(session_factory, fee_calculator=FlatFee(), clock=lambda: datetime(2026, 3, 2, 9, 0))
    m.initialize()
    m.park("AB-123", "CAR")

    result = m.unpark("S11")
    assert result.fee == 4.5
    assert result.exit_time == datetime(2026, 3, 2, 9, 0)


def test_base_fee_calculator_is_unimplemented(manager):
    manager.park("AB-123", "CAR")
    vehicle = manager.status()[10].parked_vehicle
    with pytest.raises(NotImplementedError):
        FeeCalculator().calculate(vehicle, ENTRY_TIME)


def test_summary_counts(manager):
    manager.park("HC-1", "HANDICAP")
    manager.park("EV-1", "EV")
    manager.park("CAR-1", "CAR")
    manager.park("CAR-2", "CAR")

    summary = manager.summary()

    assert (summary.total, summary.occupied, summary.free) == (100, 4, 96)
    assert summary.categories["HANDICAP"].occupied == 1
    assert summary.categories["HANDICAP"].free == 4
    assert summary.categories["EV_CHARGING"].occupied == 1
    assert summary.categories["STANDARD"].total == 90
    assert summary.categories["STANDARD"].occupied == 2


def test_storage_errors_surface_as_storage_failure(manager, engine):
    Base.metadata.drop_all(engine)

    with pytest.raises(StorageFailure):
        manager.park("AB-123", "CAR")
    with pytest.raises(StorageFailure):
        manager.unpark("S11")
    with pytest.raises(StorageFailure):
        manager.status()


def test_failed_park_leaves_no_vehicle(manager, session_factory, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from sqlalchemy.orm import Session

    def boom(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "commit", boom)
    with pytest.raises(StorageFailure):
        manager.park("AB-123", "CAR")
    monkeypatch.undo()

    with session_factory() as session:
        assert session.scalar(select(func.count()).select_from(Vehicle)) == 0
    assert _occupied(manager) == []


def test_failing_fee_calculator_keeps_vehicle_parked(session_factory):
    class BrokenTariff(FeeCalculator):
        def calculate(self, vehicle, exit_time):
            raise RuntimeError("tariff service down")

    m = ParkingManager(session_factory, fee_calculator=BrokenTariff(), clock=lambda: ENTRY_TIME)
    m.initialize()
    m.park("AB-123", "CAR")

    with pytest.raises(RuntimeError):
        m.unpark("S11")

    slot = m.status()[10]
    assert slot.occupied
    assert slot.parked_vehicle.license_plate == "AB-123"
    assert m.park("AB-123", "CAR") == AlreadyParked("AB-123")


def test_one_slot_per_vehicle_enforced_by_database(manager, session_factory):
    manager.park("AB-123", "CAR")

    with session_factory() as session:
        other = session.get(ParkingSlot, "S12")
        other.occupied = True
        other.license_plate = "AB-123"
        with pytest.raises(IntegrityError):
            session.commit()
