import logging
from dataclasses import dataclass

from pydantic import ValidationError

from routing_metrics.config import settings
from routing_metrics.schemas.view_state import PersistedViewState, RefreshConfig
from routing_metrics.storage import KeyValueStore

logger = logging.getLogger(__name__)

ALL_SCOPE = "all"
LAST_ACCURACY_KEY = "routingAccuracyLast"
AUTO_REFRESH_KEY = "autoRefresh"


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a best-effort write. Callers may ignore a failed result."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "StoreResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: Exception) -> "StoreResult":
        return cls(ok=False, error=str(error))


def _write(store: KeyValueStore, key: str, value: str) -> StoreResult:
    try:
        store.set(key, value)
    except Exception as exc:
        logger.warning("Could not persist %s: %s", key, exc)
        return StoreResult.failure(exc)
    return StoreResult.success()


def _read(store: KeyValueStore, key: str) -> str | None:
    try:
        return store.get(key)
    except Exception as exc:
        logger.warning("Could not read %s: %s", key, exc)
        return None


class ViewStateStore:
    """Filter, view mode and page per scope (a department, or "all")."""

    def __init__(self, store: KeyValueStore, namespace: str | None = None) -> None:
        self.store = store
        self.namespace = namespace or settings.view_state_namespace

    def key(self, scope_id: str | int | None) -> str:
        scope = ALL_SCOPE if scope_id is None or scope_id == "" else str(scope_id)
        return f"{self.namespace}:{scope}"

    def save(self, scope_id: str | int | None, state: PersistedViewState) -> StoreResult:
        return _write(self.store, self.key(scope_id), state.model_dump_json(by_alias=True))

    def load(self, scope_id: str | int | None) -> PersistedViewState | None:
        raw = _read(self.store, self.key(scope_id))
        if raw is None:
            return None
        try:
            return PersistedViewState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed view state for %s", self.key(scope_id))
            return None

    def save_last_accuracy(self, accuracy_percent: float) -> StoreResult:
        return _write(self.store, LAST_ACCURACY_KEY, repr(float(accuracy_percent)))

    def load_last_accuracy(self) -> float | None:
        raw = _read(self.store, LAST_ACCURACY_KEY)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            return None


class RefreshPreferenceStore:
    """Global auto-refresh preference, shared by every scope."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def defaults(self) -> RefreshConfig:
        return RefreshConfig(
            enabled=settings.auto_refresh_enabled,
            interval_ms=settings.auto_refresh_interval_ms,
        )

    def load(self) -> RefreshConfig:
        raw = _read(self.store, AUTO_REFRESH_KEY)
        if raw is None:
            return self.defaults()
        try:
            return RefreshConfig.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed auto-refresh preference")
            return self.defaults()

    def save(self, config: RefreshConfig) -> StoreResult:
        return _write(self.store, AUTO_REFRESH_KEY, config.model_dump_json(by_alias=True))
