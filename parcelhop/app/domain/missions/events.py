"""
Lifecycle event names emitted to the notification dispatcher.
"""


class MissionEvent:
    PARCEL_CREATED = "ParcelCreated"
    PARCEL_ACCEPTED = "ParcelAccepted"
    CARRIER_DEPARTED = "CarrierDeparted"
    CARRIER_ARRIVED = "CarrierArrived"
    PACKAGING_SUBMITTED = "PackagingSubmitted"
    PACKAGING_CONFIRMED = "PackagingConfirmed"
    PACKAGING_REJECTED = "PackagingRejected"
    PARCEL_PICKED_UP = "ParcelPickedUp"
    PARCEL_DELIVERED = "ParcelDelivered"
    PAYMENT_RELEASE_REQUESTED = "PaymentReleaseRequested"
    PARCEL_CANCELLED = "ParcelCancelled"
