"""
SIM box: a bounded cohort of devices operated from one physical location.

The box re-routes some of its SIMs' calls as international traffic (earning
projected revenue) and, being "in the back of a truck", relocates every
member to a new cell as one batch. Members therefore share the same cell
history, which is what the cohort detector looks for.
"""

from __future__ import annotations

import random
from typing import Iterator

from .context import ONE_MINUTE_MS
from .device import CallEvent, CallType, CellChangeEvent, DeviceState


class SimBoxEntity:
    """Bounded fraud cohort built from DeviceState references.

    Membership is fixed once capacity is reached. The entity holds references
    to devices owned by the engine's registry; it never creates or removes
    devices.

    Usage:
        simbox = SimBoxEntity(capacity=200, cell_id=0)
        for device in provisioned:
            simbox.try_enroll(device)

        event = simbox.attempt_fraud_route(caller, callee, rng, now_ms, 60)
        if event is None:
            ...  # ordinary routing

        if simbox.due_for_relocation(2, now_ms):
            events = simbox.relocate((simbox.cell_id + 1) % cell_count, now_ms)
    """

    def __init__(
        self,
        capacity: int,
        cell_id: int = 0,
        fraud_route_probability: float = 0.5,
        revenue_per_minute: float = 0.10,
        created_at: int = 0,
    ):
        """Initialize an empty SIM box.

        Args:
            capacity: Maximum number of member devices
            cell_id: Cell every member is attached to
            fraud_route_probability: Chance a member's call is re-routed
            revenue_per_minute: Projected revenue per re-routed minute
            created_at: Epoch ms used as the initial relocation time
        """
        self.capacity = capacity
        self.cell_id = cell_id
        self.fraud_route_probability = fraud_route_probability
        self.revenue_per_minute = revenue_per_minute
        self.last_relocation_at = created_at
        self.self_calls = False
        self._members: dict[int, DeviceState] = {}
        self._profit = 0.0

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[DeviceState]:
        return iter(self._members.values())

    def __str__(self) -> str:
        return (
            f"SimBox [sims={len(self)}/{self.capacity}, cell_id={self.cell_id}, "
            f"self_calls={self.self_calls}, projected_profit={self._profit:.2f}]"
        )

    @property
    def is_full(self) -> bool:
        return len(self._members) >= self.capacity

    @property
    def member_ids(self) -> list[int]:
        return sorted(self._members)

    def try_enroll(self, device: DeviceState) -> bool:
        """Add ``device`` while there is room. Returns False once full."""
        if self.is_full or device.device_id in self._members:
            return False
        self._members[device.device_id] = device
        return True

    def is_member(self, device_id: int) -> bool:
        return device_id in self._members

    def attempt_fraud_route(
        self,
        caller: DeviceState,
        callee: DeviceState,
        rng: random.Random,
        now_ms: int,
        max_call_seconds: int,
    ) -> CallEvent | None:
        """Possibly re-route ``caller``'s call as international traffic.

        Returns the call event when the attempt is re-routed, None when the
        caller is not a member or the draw says ordinary routing applies.
        """
        if not self.is_member(caller.device_id):
            return None
        if rng.random() >= self.fraud_route_probability:
            return None

        duration = rng.randrange(max_call_seconds)
        revenue = duration / 60 * self.revenue_per_minute
        self._profit += revenue

        return caller.start_call(
            callee,
            duration,
            now_ms,
            call_type=CallType.INTERNATIONAL,
            revenue=revenue,
        )

    def due_for_relocation(self, minutes: float, now_ms: int) -> bool:
        return now_ms - self.last_relocation_at >= minutes * ONE_MINUTE_MS

    def relocate(
        self, new_cell_id: int, now_ms: int, cell_count: int | None = None
    ) -> list[CellChangeEvent]:
        """Move every member to ``new_cell_id`` as one batch.

        Returns:
            One mobility event per member, in device id order
        """
        if new_cell_id < 0 or (cell_count is not None and new_cell_id >= cell_count):
            raise ValueError(f"Cell id {new_cell_id} out of range (cell_count={cell_count})")

        events = [
            self._members[device_id].change_cell(
                new_cell_id, now_ms, cell_count=cell_count, is_simbox_move=True
            )
            for device_id in self.member_ids
        ]
        self.cell_id = new_cell_id
        self.last_relocation_at = now_ms
        return events

    def projected_profit(self) -> float:
        return self._profit
