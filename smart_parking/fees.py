"""Parking fee extension point.

No tariff is defined for the lot yet. Deployments that charge for parking
subclass :class:`FeeCalculator` and hand an instance to ``ParkingManager``;
without one, departures are recorded with no fee.
"""

from datetime import datetime

from .schemas import VehicleOut


class FeeCalculator:
    def calculate(self, vehicle: VehicleOut, exit_time: datetime) -> float:
        """Return the amount owed for ``vehicle`` leaving at ``exit_time``.

        Called inside the unpark transaction, before it commits. If this raises,
        the unpark is abandoned and the vehicle stays parked.
        """
        raise NotImplementedError("No parking tariff has been configured")
