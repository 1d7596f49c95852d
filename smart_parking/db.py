from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, relationship, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


class Vehicle(Base):
    __tablename__ = "vehicles"
    license_plate = Column(String(64), primary_key=True)
    vehicle_type = Column(String(32), nullable=False)
    entry_time = Column(DateTime, nullable=False)
    assigned_slot_id = Column(String(16), nullable=False)

    def __repr__(self):
        return f"<Vehicle(license_plate={self.license_plate}, slot={self.assigned_slot_id})>"


class ParkingSlot(Base):
    __tablename__ = "parking_slots"
    slot_id = Column(String(16), primary_key=True)
    # numeric position so that S2 sorts before S10
    number = Column(Integer, unique=True, nullable=False, index=True)
    category = Column(String(32), nullable=False)
    occupied = Column(Boolean, nullable=False, default=False)
    reserved = Column(Boolean, nullable=False, default=False)
    license_plate = Column(String(64), ForeignKey("vehicles.license_plate"), nullable=True, unique=True)

    parked_vehicle = relationship(Vehicle, lazy="joined")

    def __repr__(self):
        return f"<ParkingSlot(slot_id={self.slot_id}, category={self.category}, occupied={self.occupied})>"


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory databases live on a single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=False, **kwargs)
    else:
        engine = create_engine(url, echo=False, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
