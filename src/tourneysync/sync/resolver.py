"""
TourneySync conflict resolution.

Maps a (local, server) record pair plus a per-entity strategy to a resolved
record, flagging the cases where a human must step in.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from tourneysync.core.logging import get_logger
from tourneysync.core.models import (
    LAST_MODIFIED,
    LOCAL_ID,
    SERVER_TIMESTAMP,
    SYNC_STATUS,
    ConflictInfo,
    EntityType,
    MatchConfirmation,
    Record,
    ResolutionResult,
    SyncStatus,
    iso_to_ms,
    now_ms,
)

logger = get_logger(__name__)

DEFAULT_EXPECTED_TOTAL = 10
DEFAULT_PRIMARY_SCORE_FIELD = "op"

MergeFn = Callable[[ConflictInfo], ResolutionResult]
DisputePredicate = Callable[[dict[str, Any] | None, dict[str, Any] | None], bool]


class UnknownStrategyError(ValueError):
    """Raised for an unrecognised strategy name."""


@dataclass(frozen=True)
class ClientWins:
    name = "client-wins"


@dataclass(frozen=True)
class ServerWins:
    name = "server-wins"


@dataclass(frozen=True)
class LastWriteWins:
    name = "last-write-wins"


@dataclass(frozen=True)
class Manual:
    name = "manual"


@dataclass(frozen=True)
class Merge:
    """Merge strategy; ``merge_fn`` overrides the per-table default merge."""

    merge_fn: MergeFn | None = None
    name = "merge"


ConflictStrategy = Union[ClientWins, ServerWins, LastWriteWins, Manual, Merge]

_STRATEGY_NAMES: dict[str, ConflictStrategy] = {
    "client-wins": ClientWins(),
    "server-wins": ServerWins(),
    "last-write-wins": LastWriteWins(),
    "manual": Manual(),
    "merge": Merge(),
}

DEFAULT_STRATEGIES: dict[EntityType, ConflictStrategy] = {
    EntityType.USERS: ServerWins(),
    EntityType.TOURNAMENTS: LastWriteWins(),
    EntityType.REGISTRATIONS: LastWriteWins(),
    EntityType.ROUNDS: ServerWins(),
    EntityType.MATCHES: Merge(),
}

_missing = set(EntityType) - set(DEFAULT_STRATEGIES)
if _missing:
    raise RuntimeError(f"No default conflict strategy for: {sorted(e.value for e in _missing)}")


def parse_strategy(value: ConflictStrategy | str) -> ConflictStrategy:
    """Accept a strategy instance or one of its hyphenated names."""
    if isinstance(value, str):
        try:
            return _STRATEGY_NAMES[value]
        except KeyError:
            raise UnknownStrategyError(f"Unknown conflict strategy: {value}") from None
    return value


def server_time_ms(record: Record) -> int:
    """Milliseconds of a record's server timestamp, 0 when absent."""
    return iso_to_ms(record.get(SERVER_TIMESTAMP))


def has_conflict(local: Record, server: Record) -> bool:
    """Whether a local record holds an edit newer than the server baseline.

    Synced records never conflict. Otherwise the local edit must postdate a
    real server timestamp. Wall-clock based, so clock skew can both hide and
    invent conflicts.
    """
    if local.get(SYNC_STATUS) == SyncStatus.SYNCED.value:
        return False

    server_ms = server_time_ms(server)
    return int(local.get(LAST_MODIFIED) or 0) > server_ms and server_ms > 0


def exceeds_expected_total(
    field: str = DEFAULT_PRIMARY_SCORE_FIELD,
    expected_total: int = DEFAULT_EXPECTED_TOTAL,
) -> DisputePredicate:
    """Dispute when both players scored ``field`` and the sum is too large.

    Scores may arrive as numeric strings; anything that is not a number
    never counts as a dispute.
    """

    def predicate(player1: dict[str, Any] | None, player2: dict[str, Any] | None) -> bool:
        p1 = (player1 or {}).get(field)
        p2 = (player2 or {}).get(field)
        if p1 is None or p2 is None:
            return False
        try:
            total = float(p1) + float(p2)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric scores", field=field, player1=p1, player2=p2)
            return False
        return total > expected_total

    return predicate


def _merge_scores(
    local_scores: dict[str, Any] | None,
    server_scores: dict[str, Any] | None,
) -> dict[str, Any] | None:
    if not local_scores or not server_scores:
        return local_scores or server_scores

    merged: dict[str, Any] = {}
    for player in sorted(set(server_scores) | set(local_scores)):
        server_side = server_scores.get(player)
        local_side = local_scores.get(player)
        if server_side is None and local_side is None:
            merged[player] = None
        else:
            merged[player] = {**(server_side or {}), **(local_side or {})}
    return merged


class ConflictResolver:
    """Resolves conflicts using a per-entity strategy map."""

    def __init__(
        self,
        strategies: Mapping[EntityType | str, ConflictStrategy | str] | None = None,
        dispute_predicate: DisputePredicate | None = None,
        fallback: ConflictStrategy = ServerWins(),
    ) -> None:
        self.strategies: dict[str, ConflictStrategy] = {
            entity.value: strategy for entity, strategy in DEFAULT_STRATEGIES.items()
        }
        for key, strategy in (strategies or {}).items():
            table = key.value if isinstance(key, EntityType) else key
            self.strategies[table] = parse_strategy(strategy)
        self.dispute_predicate = dispute_predicate or exceeds_expected_total()
        self.fallback = fallback

    def strategy_for(self, table: str) -> ConflictStrategy:
        return self.strategies.get(table, self.fallback)

    def resolve(
        self,
        conflict: ConflictInfo,
        strategy: ConflictStrategy | str | None = None,
    ) -> ResolutionResult:
        """Resolve a conflict with an explicit strategy or the table default."""
        effective = parse_strategy(strategy) if strategy is not None else self.strategy_for(
            conflict.table
        )

        if isinstance(effective, ClientWins):
            result = ResolutionResult(conflict.local_version, effective.name)
        elif isinstance(effective, ServerWins):
            result = ResolutionResult(conflict.server_version, effective.name)
        elif isinstance(effective, LastWriteWins):
            result = self._last_write_wins(conflict)
        elif isinstance(effective, Merge):
            result = self._merge(conflict, effective)
        else:
            result = ResolutionResult(
                conflict.server_version, Manual.name, requires_user_action=True
            )

        logger.debug(
            "Conflict resolved",
            table=conflict.table,
            record_id=conflict.record_id,
            strategy=result.strategy,
            requires_user_action=result.requires_user_action,
        )
        return result

    def _last_write_wins(self, conflict: ConflictInfo) -> ResolutionResult:
        local_time = int(conflict.local_version.get(LAST_MODIFIED) or 0)
        server_time = server_time_ms(conflict.server_version)

        if local_time > server_time:
            return ResolutionResult(conflict.local_version, LastWriteWins.name)
        return ResolutionResult(conflict.server_version, LastWriteWins.name)

    def _merge(self, conflict: ConflictInfo, strategy: Merge) -> ResolutionResult:
        if strategy.merge_fn is not None:
            return strategy.merge_fn(conflict)
        if conflict.table == EntityType.MATCHES.value:
            return self._merge_match(conflict)
        result = self._last_write_wins(conflict)
        return ResolutionResult(result.resolved, Merge.name, result.requires_user_action)

    def _merge_match(self, conflict: ConflictInfo) -> ResolutionResult:
        local = conflict.local_version
        server = conflict.server_version

        # A finalized result on the server is authoritative.
        if server.get("confirmation_status") in (
            MatchConfirmation.COMPLETED.value,
            MatchConfirmation.CONFIRMED.value,
        ):
            return ResolutionResult(server, Merge.name)

        merged: Record = dict(server)
        merged["confirmed_by_p1"] = bool(local.get("confirmed_by_p1") or server.get("confirmed_by_p1"))
        merged["confirmed_by_p2"] = bool(local.get("confirmed_by_p2") or server.get("confirmed_by_p2"))
        merged["scores"] = _merge_scores(local.get("scores"), server.get("scores"))

        if merged["confirmed_by_p1"] and merged["confirmed_by_p2"]:
            merged["confirmation_status"] = MatchConfirmation.CONFIRMED.value
        elif merged["confirmed_by_p1"] or merged["confirmed_by_p2"]:
            merged["confirmation_status"] = MatchConfirmation.PARTIAL.value
        elif not merged.get("confirmation_status"):
            merged["confirmation_status"] = MatchConfirmation.PENDING.value

        if LOCAL_ID in local:
            merged[LOCAL_ID] = local[LOCAL_ID]
        merged[SYNC_STATUS] = SyncStatus.SYNCED.value
        merged[LAST_MODIFIED] = now_ms()

        scores = merged["scores"] or {}
        if self.dispute_predicate(scores.get("player1"), scores.get("player2")):
            merged["confirmation_status"] = MatchConfirmation.DISPUTED.value
            logger.warning(
                "Match scores disputed",
                record_id=conflict.record_id,
                scores=scores,
            )
            return ResolutionResult(merged, Merge.name, requires_user_action=True)

        return ResolutionResult(merged, Merge.name)


_default_resolver = ConflictResolver()


def resolve_conflict(
    conflict: ConflictInfo,
    strategy: ConflictStrategy | str | None = None,
) -> ResolutionResult:
    """Resolve with the default strategy map."""
    return _default_resolver.resolve(conflict, strategy)
