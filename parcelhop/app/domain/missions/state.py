"""
Composite mission state.

A parcel's position in its lifecycle is the pair (status, packaging).
Only the combinations listed in LEGAL_COMBINATIONS can be constructed, so
a parcel can never be PICKED_UP or DELIVERED without a confirmed
packaging handshake.
"""

from dataclasses import dataclass

from parcelhop.app.models.parcel_enums import ParcelStatus, PackagingState


LEGAL_COMBINATIONS = {
    ParcelStatus.PENDING: {PackagingState.NOT_SUBMITTED},
    ParcelStatus.ACCEPTED: {
        PackagingState.NOT_SUBMITTED,
        PackagingState.PACKAGING_PENDING,
        PackagingState.PACKAGING_CONFIRMED,
    },
    ParcelStatus.PICKED_UP: {PackagingState.PACKAGING_CONFIRMED},
    ParcelStatus.DELIVERED: {PackagingState.PACKAGING_CONFIRMED},
    ParcelStatus.CANCELLED: set(PackagingState),
}

TERMINAL_STATUSES = {ParcelStatus.DELIVERED, ParcelStatus.CANCELLED}


@dataclass(frozen=True)
class MissionState:
    status: ParcelStatus
    packaging: PackagingState = PackagingState.NOT_SUBMITTED

    def __post_init__(self):
        # Normalise raw strings coming back from storage
        object.__setattr__(self, "status", ParcelStatus(self.status))
        object.__setattr__(self, "packaging", PackagingState(self.packaging))
        if self.packaging not in LEGAL_COMBINATIONS[self.status]:
            raise ValueError(
                f"Illegal mission state: {self.status.value}/{self.packaging.value}"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def phase(self) -> str:
        """
        Linear phase name.

        PENDING, ACCEPTED, PACKAGING_PENDING, PACKAGING_CONFIRMED,
        PICKED_UP, DELIVERED or CANCELLED.
        """
        if self.status == ParcelStatus.ACCEPTED and self.packaging != PackagingState.NOT_SUBMITTED:
            return self.packaging.value
        return self.status.value

    def __str__(self) -> str:
        return self.phase


PENDING = MissionState(ParcelStatus.PENDING)
ACCEPTED = MissionState(ParcelStatus.ACCEPTED)
PACKAGING_PENDING = MissionState(ParcelStatus.ACCEPTED, PackagingState.PACKAGING_PENDING)
PACKAGING_CONFIRMED = MissionState(ParcelStatus.ACCEPTED, PackagingState.PACKAGING_CONFIRMED)
PICKED_UP = MissionState(ParcelStatus.PICKED_UP, PackagingState.PACKAGING_CONFIRMED)
DELIVERED = MissionState(ParcelStatus.DELIVERED, PackagingState.PACKAGING_CONFIRMED)


def cancelled_from(state: MissionState) -> MissionState:
    """Cancellation keeps the packaging sub-state it was reached from."""
    return MissionState(ParcelStatus.CANCELLED, state.packaging)
