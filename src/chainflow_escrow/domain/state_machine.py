"""Shipment State Machine Guard.

Uses python-statemachine to enforce legal shipment transitions at the domain
level. No matter what the API or a courier client sends, an illegal transition
(e.g., DELIVERED -> IN_TRANSIT) raises TransitionNotAllowed before any status,
history or balance is touched.

The state machine is instantiated per shipment from its stored status and
validates a transition before the shipment record is rewritten.

Transition table:
    PENDING           -> IN_TRANSIT         (dispatch, mark_in_transit)
    PENDING           -> OUT_FOR_DELIVERY   (mark_out_for_delivery)
    IN_TRANSIT        -> IN_TRANSIT         (mark_in_transit, location update)
    IN_TRANSIT        -> OUT_FOR_DELIVERY   (mark_out_for_delivery)
    OUT_FOR_DELIVERY  -> IN_TRANSIT         (mark_in_transit, e.g. failed attempt)
    OUT_FOR_DELIVERY  -> OUT_FOR_DELIVERY   (mark_out_for_delivery)
    any non-terminal  -> DELIVERED          (deliver)
    any non-terminal  -> CANCELLED          (cancel)

DELIVERED and CANCELLED are final.
"""

from __future__ import annotations

from statemachine import State, StateMachine

from chainflow_escrow.domain.enums import ShipmentStatus

# Courier-facing target status -> event that reaches it.
# PENDING is never a valid target: a shipment cannot be "un-dispatched".
TARGET_EVENTS: dict[ShipmentStatus, str] = {
    ShipmentStatus.IN_TRANSIT: "mark_in_transit",
    ShipmentStatus.OUT_FOR_DELIVERY: "mark_out_for_delivery",
    ShipmentStatus.DELIVERED: "deliver",
    ShipmentStatus.CANCELLED: "cancel",
}


class ShipmentStateMachine(StateMachine):
    """State machine that guards the shipment lifecycle.

    Usage:
        sm = ShipmentStateMachine(current_status="PENDING")
        sm.dispatch()        # transitions to IN_TRANSIT
        sm.status            # "IN_TRANSIT"
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    IN_TRANSIT = State("IN_TRANSIT")
    OUT_FOR_DELIVERY = State("OUT_FOR_DELIVERY")
    DELIVERED = State("DELIVERED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---

    # Seller hands the package to the courier
    dispatch = PENDING.to(IN_TRANSIT)

    # Courier progress updates
    mark_in_transit = (
        PENDING.to(IN_TRANSIT)
        | IN_TRANSIT.to.itself()
        | OUT_FOR_DELIVERY.to(IN_TRANSIT)
    )
    mark_out_for_delivery = (
        PENDING.to(OUT_FOR_DELIVERY)
        | IN_TRANSIT.to(OUT_FOR_DELIVERY)
        | OUT_FOR_DELIVERY.to.itself()
    )

    # Terminal outcomes (escrow release / refund)
    deliver = (
        PENDING.to(DELIVERED)
        | IN_TRANSIT.to(DELIVERED)
        | OUT_FOR_DELIVERY.to(DELIVERED)
    )
    cancel = (
        PENDING.to(CANCELLED)
        | IN_TRANSIT.to(CANCELLED)
        | OUT_FOR_DELIVERY.to(CANCELLED)
    )

    def __init__(self, current_status: str = "PENDING") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current ShipmentStatus value (e.g., "IN_TRANSIT").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=str(current_status))

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches ShipmentStatus)."""
        return str(self.current_state_value)

    def get_allowed_targets(self) -> list[ShipmentStatus]:
        """Return the statuses a courier update may move the shipment to."""
        allowed = {event.id for event in self.allowed_events}
        return [target for target, event in TARGET_EVENTS.items() if event in allowed]

