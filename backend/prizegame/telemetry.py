"""Server-side telemetry for stock changes and rounds."""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class StockConsumedEvent:
    """
    One unit of stock left the catalog.

    For the shuffle this happens on the first reveal, before the round is
    decided; whether the player won is reported by RoundResolvedEvent.
    """

    game: str  # "shuffle" | "spin"
    player_id: str
    prize_id: str
    remaining: int
    lock_acquire_ms: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RoundResolvedEvent:
    game: str
    player_id: str
    won: bool
    prize_id: str | None
    depleted_after: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PlayRejectedEvent:
    game: str
    player_id: str
    reason: str  # ErrorCode value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SettingsSavedEvent:
    shuffle_available: int
    spin_available: int
    persisted: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TelemetryService:
    """Service for emitting server telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Sink failures must not break HTTP requests."""
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_stock_consumed(self, event: StockConsumedEvent) -> None:
        self._safe_emit("stock_consumed", event.to_dict())

    def emit_round_resolved(self, event: RoundResolvedEvent) -> None:
        self._safe_emit("round_resolved", event.to_dict())

    def emit_play_rejected(self, event: PlayRejectedEvent) -> None:
        self._safe_emit("play_rejected", event.to_dict())

    def emit_settings_saved(self, event: SettingsSavedEvent) -> None:
        self._safe_emit("settings_saved", event.to_dict())


# Global instance
telemetry_service = TelemetryService()
