"""
Position action coordinator.

Translates user intents (close, reduce, TP/SL, add margin, batch close,
hedge) into ActionRequests for the execution layer and tracks transient
per-position state (selection, expanded row, in-flight markers).

Position records are never mutated here: size and margin only change when
the execution layer confirms and a fresh snapshot is supplied through
sync_positions(). Confirmation triggers the on_refresh hook instead of a
fixed refresh delay.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from perpguard.actions.state import ActionState, PositionActionTracker
from perpguard.contracts import (
    ActionOutcome,
    ActionRequest,
    ActionType,
    OutcomeStatus,
    Position,
    PositionSide,
)
from perpguard.contracts.base import HUNDRED, parse_decimal
from perpguard.errors import (
    ActionInFlight,
    AwaitingRefresh,
    InvalidAmount,
    InvalidInput,
    InvalidTrigger,
    UnknownPosition,
)
from perpguard.logging_config import get_logger
from perpguard.market.mark_book import MarkPriceBook
from perpguard.metrics import EngineMetrics
from perpguard.risk.calculator import parse_mark_price

logger = get_logger(__name__)

SubmitCallback = Callable[[ActionRequest], None]
RefreshCallback = Callable[[frozenset[str]], None]
Clock = Callable[[], int]

_SELECTABLE = (ActionState.IDLE, ActionState.SELECTED)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class BatchResult:
    """Requests emitted by a batch intent.

    Attributes:
        batch_id: Shared by all requests of the batch.
        requests: One request per affected position.
        skipped: position_id -> reason for positions left out.
    """

    batch_id: str
    requests: list[ActionRequest] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def position_ids(self) -> list[str]:
        """Positions that received a request."""
        return [r.position_id for r in self.requests]


class PositionActionCoordinator:
    """Action coordinator for one view/session.

    Not safe for concurrent writers without external synchronization.
    """

    def __init__(
        self,
        positions: Iterable[Position] = (),
        *,
        book: MarkPriceBook | None = None,
        submit: SubmitCallback | None = None,
        on_refresh: RefreshCallback | None = None,
        metrics: EngineMetrics | None = None,
        clock: Clock | None = None,
        session_id: str = "session",
    ) -> None:
        """Initialize coordinator.

        Args:
            positions: Initial position snapshot.
            book: Mark prices used to validate TP/SL when no mark is passed.
            submit: Execution-layer port; receives every emitted request.
            on_refresh: Called with the confirmed position ids whenever an
                action is confirmed and a fresh snapshot is needed.
            metrics: Shared counters. A private instance is created if None.
            clock: Millisecond clock. Wall clock if None.
            session_id: Prefix for request and batch ids.
        """
        self._book = book
        self._submit = submit
        self._on_refresh = on_refresh
        self.metrics = metrics or EngineMetrics()
        self._clock = clock or _wall_clock_ms
        self._session_id = session_id

        self._positions: dict[str, Position] = {}
        self._trackers: dict[str, PositionActionTracker] = {}
        self._requests: dict[str, str] = {}  # in-flight request_id -> position_id
        self._expanded_id: str | None = None
        self._next_request = 1
        self._next_batch = 1

        self.sync_positions(positions)

    # ------------------------------------------------------------------
    # Snapshot and state queries
    # ------------------------------------------------------------------

    def sync_positions(self, positions: Iterable[Position]) -> None:
        """Install a fresh position snapshot.

        CONFIRMED positions present in the snapshot return to IDLE. State of
        positions no longer present is forgotten; late outcome reports for
        them become no-ops.
        """
        ts = self._clock()
        self._positions = {p.id: p for p in positions}

        for position_id in list(self._trackers):
            if position_id not in self._positions:
                tracker = self._trackers.pop(position_id)
                if tracker.in_flight is not None:
                    self._requests.pop(tracker.in_flight.request_id, None)
                logger.debug("position left snapshot", extra={"position_id": position_id})

        for position_id in self._positions:
            tracker = self._trackers.setdefault(
                position_id,
                PositionActionTracker(position_id=position_id, state_entered_ts=ts),
            )
            if tracker.awaiting_refresh:
                tracker.refreshed(ts)

        if self._expanded_id is not None and self._expanded_id not in self._positions:
            self._expanded_id = None

    def position(self, position_id: str) -> Position:
        """Current snapshot of a position.

        Raises:
            UnknownPosition: If the id is not in the snapshot.
        """
        try:
            return self._positions[position_id]
        except KeyError:
            raise UnknownPosition(position_id) from None

    def state_of(self, position_id: str) -> ActionState:
        """UI-observable state of a position."""
        return self._tracker(position_id).state

    def last_error(self, position_id: str) -> str | None:
        """Reason of the last failed action, cleared by the next action."""
        return self._tracker(position_id).last_error

    def settlement_ref(self, position_id: str) -> str | None:
        """Settlement reference of the last confirmed action."""
        return self._tracker(position_id).settlement_ref

    @property
    def selected_ids(self) -> frozenset[str]:
        """Currently selected position ids."""
        return frozenset(pid for pid, t in self._trackers.items() if t.selected)

    @property
    def in_flight(self) -> dict[str, ActionRequest]:
        """position_id -> pending request."""
        return {
            pid: t.in_flight for pid, t in self._trackers.items() if t.in_flight is not None
        }

    @property
    def pending_refresh(self) -> frozenset[str]:
        """Positions confirmed but not yet refreshed by a snapshot."""
        return frozenset(pid for pid, t in self._trackers.items() if t.awaiting_refresh)

    @property
    def expanded_id(self) -> str | None:
        """Position whose row is expanded, if any."""
        return self._expanded_id

    # ------------------------------------------------------------------
    # Selection and view state
    # ------------------------------------------------------------------

    def toggle_selection(self, position_id: str) -> ActionState:
        """Toggle selection. No-op while an action is pending or confirmed.

        Returns:
            The position's state after the toggle.
        """
        tracker = self._tracker(position_id)
        if tracker.state not in _SELECTABLE:
            logger.debug("selection locked until refresh", extra={"position_id": position_id})
            return tracker.state
        tracker.set_selected(not tracker.selected, self._clock())
        return tracker.state

    def select_all(self) -> frozenset[str]:
        """Select every selectable position, or clear if all are selected."""
        ts = self._clock()
        selectable = [t for t in self._trackers.values() if t.state in _SELECTABLE]
        select = not all(t.selected for t in selectable)
        for tracker in selectable:
            tracker.set_selected(select, ts)
        return self.selected_ids

    def clear_selection(self) -> None:
        """Deselect every position that is not pending or awaiting refresh."""
        ts = self._clock()
        for tracker in self._trackers.values():
            if tracker.state in _SELECTABLE:
                tracker.set_selected(False, ts)

    def toggle_expanded(self, position_id: str) -> str | None:
        """Expand a position row, or collapse it if already expanded."""
        self._tracker(position_id)
        self._expanded_id = None if self._expanded_id == position_id else position_id
        return self._expanded_id

    # ------------------------------------------------------------------
    # Single-position intents
    # ------------------------------------------------------------------

    def close(self, position_id: str) -> ActionRequest:
        """Request a full close."""
        position = self._actionable(position_id)
        return self._emit(position, ActionType.CLOSE, amount=position.size)

    def reduce_by(self, position_id: str, amount: object) -> ActionRequest:
        """Request a partial close of `amount` units.

        Raises:
            InvalidAmount: Unless 0 < amount <= position.size.
        """
        position = self._actionable(position_id)
        qty = self._validated(position, lambda: self._check_reduce(position, amount))
        return self._emit(position, ActionType.REDUCE_BY, amount=qty)

    def close_percent(self, position_id: str, percentage: object) -> ActionRequest:
        """Request closing `percentage` percent of the position (100 = CLOSE).

        Raises:
            InvalidAmount: Unless 0 < percentage <= 100.
        """
        position = self._actionable(position_id)
        pct = self._validated(position, lambda: self._check_percentage(percentage, position.id))
        return self._emit_percentage(position, pct, batch_id=None)

    def add_margin(self, position_id: str, amount: object) -> ActionRequest:
        """Request adding collateral to the position.

        Raises:
            InvalidAmount: Unless amount > 0.
        """
        position = self._actionable(position_id)
        value = self._validated(position, lambda: self._check_positive(amount, position.id))
        return self._emit(position, ActionType.ADD_MARGIN, amount=value)

    def set_take_profit(
        self,
        position_id: str,
        price: object,
        mark_price: object = None,
    ) -> ActionRequest:
        """Request a take-profit trigger.

        Long: trigger must be above mark. Short: below mark.

        Raises:
            InvalidTrigger: Trigger on the wrong side of mark or not positive.
            InvalidInput: No usable mark price.
        """
        position = self._actionable(position_id)
        trigger = self._validated(
            position,
            lambda: self._check_trigger(position, price, mark_price, take_profit=True),
        )
        return self._emit(position, ActionType.SET_TP, price=trigger)

    def set_stop_loss(
        self,
        position_id: str,
        price: object,
        mark_price: object = None,
    ) -> ActionRequest:
        """Request a stop-loss trigger.

        Long: trigger must be below mark. Short: above mark.

        Raises:
            InvalidTrigger: Trigger on the wrong side of mark or not positive.
            InvalidInput: No usable mark price.
        """
        position = self._actionable(position_id)
        trigger = self._validated(
            position,
            lambda: self._check_trigger(position, price, mark_price, take_profit=False),
        )
        return self._emit(position, ActionType.SET_SL, price=trigger)

    # ------------------------------------------------------------------
    # Batch intents
    # ------------------------------------------------------------------

    def batch_reduce(
        self,
        percentage: object,
        position_ids: Iterable[str] | None = None,
    ) -> BatchResult:
        """Reduce several positions by the same percentage (100 = close).

        Args:
            percentage: Percent of each position to close, 0 < pct <= 100.
            position_ids: Targets. Defaults to the current selection.

        Raises:
            InvalidAmount: Percentage out of range; nothing is emitted.
        """
        try:
            pct = self._check_percentage(percentage, None)
        except InvalidAmount:
            self.metrics.validation_rejections += 1
            raise
        targets = self._selection_order() if position_ids is None else list(position_ids)
        return self._fan_out(
            targets,
            lambda position, batch_id: self._emit_percentage(position, pct, batch_id=batch_id),
        )

    def close_all(self) -> BatchResult:
        """Close every position in the snapshot."""
        return self._fan_out(
            list(self._positions),
            lambda position, batch_id: self._emit(
                position, ActionType.CLOSE, amount=position.size, batch_id=batch_id
            ),
        )

    def hedge_all(self) -> BatchResult:
        """Open an opposite position of equal size for every position."""
        return self._fan_out(
            list(self._positions),
            lambda position, batch_id: self._emit(
                position,
                ActionType.HEDGE,
                amount=position.size,
                side=position.opposite_side,
                batch_id=batch_id,
            ),
        )

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def report_outcome(self, outcome: ActionOutcome) -> bool:
        """Apply a terminal report from the execution layer.

        Returns:
            True if the report changed state; False if it referred to an
            abandoned, unknown or superseded request (no-op).
        """
        position_id = self._requests.get(outcome.request_id)
        tracker = self._trackers.get(position_id) if position_id is not None else None
        if (
            tracker is None
            or tracker.in_flight is None
            or tracker.in_flight.request_id != outcome.request_id
            or outcome.position_id != position_id
        ):
            self.metrics.outcomes_ignored += 1
            logger.debug(
                "outcome ignored",
                extra={"request_id": outcome.request_id, "position_id": outcome.position_id},
            )
            return False

        del self._requests[outcome.request_id]
        ts = self._clock()

        if outcome.status == OutcomeStatus.CONFIRMED:
            tracker.confirm(outcome.settlement_ref, ts)
            self.metrics.actions_confirmed += 1
            logger.info(
                "action confirmed",
                extra={
                    "request_id": outcome.request_id,
                    "position_id": tracker.position_id,
                    "settlement_ref": outcome.settlement_ref,
                },
            )
            if self._on_refresh is not None:
                self._on_refresh(frozenset({tracker.position_id}))
        else:
            reason = outcome.reason or "execution failed"
            tracker.fail(reason, ts)
            self.metrics.actions_failed += 1
            logger.info(
                "action failed",
                extra={
                    "request_id": outcome.request_id,
                    "position_id": tracker.position_id,
                    "reason": reason,
                },
            )
        return True

    def confirm(self, request_id: str, settlement_ref: str | None = None) -> bool:
        """Report a request as confirmed."""
        return self.report_outcome(
            ActionOutcome(
                request_id=request_id,
                position_id=self._requests.get(request_id, ""),
                status=OutcomeStatus.CONFIRMED,
                settlement_ref=settlement_ref,
                ts=self._clock(),
            )
        )

    def fail(self, request_id: str, reason: str) -> bool:
        """Report a request as failed."""
        return self.report_outcome(
            ActionOutcome(
                request_id=request_id,
                position_id=self._requests.get(request_id, ""),
                status=OutcomeStatus.FAILED,
                reason=reason,
                ts=self._clock(),
            )
        )

    def abandon(self, position_id: str) -> bool:
        """Stop tracking the in-flight request of a position.

        A later report for that request is ignored.

        Returns:
            True if a request was in flight.
        """
        tracker = self._trackers.get(position_id)
        if tracker is None or tracker.in_flight is None:
            return False
        self._requests.pop(tracker.in_flight.request_id, None)
        tracker.abandon(self._clock())
        logger.info("action abandoned", extra={"position_id": position_id})
        return True

    def abandon_all(self) -> int:
        """Abandon every in-flight request. Returns the number abandoned."""
        return sum(self.abandon(pid) for pid in list(self._trackers))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _tracker(self, position_id: str) -> PositionActionTracker:
        try:
            return self._trackers[position_id]
        except KeyError:
            raise UnknownPosition(position_id) from None

    def _actionable(self, position_id: str) -> Position:
        """Position that may receive a new intent.

        Raises:
            UnknownPosition: If the id is not in the snapshot.
            ActionInFlight: If a request is pending for the position.
            AwaitingRefresh: If its last action was confirmed and the
                snapshot has not been refreshed since.
        """
        position = self.position(position_id)
        tracker = self._trackers[position_id]
        if tracker.in_flight is not None:
            raise ActionInFlight(position_id, tracker.in_flight.request_id)
        if tracker.awaiting_refresh:
            raise AwaitingRefresh(position_id)
        return position

    def _selection_order(self) -> list[str]:
        return [pid for pid in self._positions if self._trackers[pid].selected]

    def _validated(self, position: Position, check: Callable[[], Decimal]) -> Decimal:
        """Run a validation, counting and logging rejections."""
        try:
            return check()
        except (InvalidAmount, InvalidTrigger, InvalidInput) as e:
            self.metrics.validation_rejections += 1
            logger.info(
                "action rejected",
                extra={"position_id": position.id, "reason": str(e)},
            )
            raise

    @staticmethod
    def _to_decimal(value: object, position_id: str | None) -> Decimal:
        try:
            result = parse_decimal(value)
        except ValueError as e:
            raise InvalidAmount(f"malformed amount {value!r}", position_id=position_id) from e
        if not result.is_finite():
            raise InvalidAmount(f"amount must be finite, got {result}", position_id=position_id)
        return result

    def _check_positive(self, amount: object, position_id: str) -> Decimal:
        value = self._to_decimal(amount, position_id)
        if value <= 0:
            raise InvalidAmount(f"amount must be > 0, got {value}", position_id=position_id)
        return value

    def _check_reduce(self, position: Position, amount: object) -> Decimal:
        qty = self._check_positive(amount, position.id)
        if qty > position.size:
            raise InvalidAmount(
                f"reduce amount {qty} exceeds position size {position.size}",
                position_id=position.id,
            )
        return qty

    def _check_percentage(self, percentage: object, position_id: str | None) -> Decimal:
        pct = self._to_decimal(percentage, position_id)
        if not (0 < pct <= HUNDRED):
            raise InvalidAmount(
                f"percentage must be in (0, 100], got {pct}", position_id=position_id
            )
        return pct

    def _resolve_mark(self, position: Position, mark_price: object) -> Decimal:
        if mark_price is not None:
            return parse_mark_price(mark_price)
        book_price = self._book.price(position.market) if self._book is not None else None
        if book_price is None:
            raise InvalidInput(f"no mark price available for {position.market}")
        return book_price

    def _check_trigger(
        self,
        position: Position,
        price: object,
        mark_price: object,
        *,
        take_profit: bool,
    ) -> Decimal:
        label = "take-profit" if take_profit else "stop-loss"
        try:
            trigger = parse_decimal(price)
        except ValueError as e:
            raise InvalidTrigger(f"malformed {label} {price!r}", position_id=position.id) from e
        if not trigger.is_finite() or trigger <= 0:
            raise InvalidTrigger(f"{label} must be > 0, got {trigger}", position_id=position.id)

        mark = self._resolve_mark(position, mark_price)
        # Profit lies above mark for a long and below mark for a short
        must_be_above = take_profit == (position.side == PositionSide.LONG)
        if must_be_above and trigger <= mark:
            raise InvalidTrigger(
                f"{label} {trigger} must be above mark {mark} for a {position.side.value}",
                position_id=position.id,
            )
        if not must_be_above and trigger >= mark:
            raise InvalidTrigger(
                f"{label} {trigger} must be below mark {mark} for a {position.side.value}",
                position_id=position.id,
            )
        return trigger

    def _emit_percentage(
        self,
        position: Position,
        pct: Decimal,
        *,
        batch_id: str | None,
    ) -> ActionRequest:
        if pct == HUNDRED:
            return self._emit(position, ActionType.CLOSE, amount=position.size, batch_id=batch_id)
        return self._emit(
            position,
            ActionType.REDUCE_BY,
            amount=position.size * pct / HUNDRED,
            batch_id=batch_id,
        )

    def _fan_out(
        self,
        targets: list[str],
        emit: Callable[[Position, str], ActionRequest],
    ) -> BatchResult:
        result = BatchResult(batch_id=f"batch_{self._session_id}_{self._next_batch:04d}")
        self._next_batch += 1

        for position_id in targets:
            position = self._positions.get(position_id)
            if position is None:
                result.skipped[position_id] = "unknown position"
                continue
            tracker = self._trackers[position_id]
            if tracker.in_flight is not None:
                result.skipped[position_id] = f"request {tracker.in_flight.request_id} in flight"
                continue
            if tracker.awaiting_refresh:
                result.skipped[position_id] = "awaiting refresh"
                continue
            try:
                result.requests.append(emit(position, result.batch_id))
            except Exception as e:
                # _emit already rolled this position back
                result.skipped[position_id] = f"submit failed: {str(e)[:100]}"
                logger.warning(
                    "batch submit failed",
                    extra={
                        "batch_id": result.batch_id,
                        "position_id": position_id,
                        "error": str(e)[:100],
                    },
                )

        logger.info(
            "batch emitted",
            extra={
                "batch_id": result.batch_id,
                "requests": len(result.requests),
                "skipped": len(result.skipped),
            },
        )
        return result

    def _emit(
        self,
        position: Position,
        action_type: ActionType,
        *,
        amount: Decimal | None = None,
        price: Decimal | None = None,
        side: PositionSide | None = None,
        batch_id: str | None = None,
    ) -> ActionRequest:
        tracker = self._tracker(position.id)
        if tracker.in_flight is not None:
            raise ActionInFlight(position.id, tracker.in_flight.request_id)
        if tracker.awaiting_refresh:
            raise AwaitingRefresh(position.id)

        ts = self._clock()
        request = ActionRequest(
            request_id=f"req_{self._session_id}_{self._next_request:06d}",
            type=action_type,
            position_id=position.id,
            market=position.market,
            side=side,
            amount=amount,
            price=price,
            batch_id=batch_id,
            ts=ts,
        )
        self._next_request += 1

        tracker.begin(request, ts)
        self._requests[request.request_id] = position.id
        self.metrics.actions_emitted += 1
        logger.info(
            "action emitted",
            extra={
                "request_id": request.request_id,
                "action": action_type.value,
                "position_id": position.id,
            },
        )

        if self._submit is not None:
            try:
                self._submit(request)
            except Exception:
                # Nothing reached the execution layer; undo the in-flight marker
                del self._requests[request.request_id]
                tracker.abandon(ts)
                self.metrics.actions_emitted -= 1
                raise
        return request
