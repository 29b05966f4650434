"""
In-process change feed for table row changes.

Services publish a ChangeEvent after each committed write; dashboards,
the WebSocket bridge and tests subscribe with a table name and an
optional row filter in the familiar ``column=eq.value`` form.

Delivery is synchronous on the publishing thread. Events always carry the
full row state, so consumers can treat every event as "this row is now X"
and stay correct under duplicate delivery.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
import enum
import itertools
import logging
import threading

logger = logging.getLogger(__name__)

class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: ChangeType
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def row(self) -> Dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})

    @property
    def row_id(self) -> Any:
        return self.row.get("id")

    def to_message(self) -> dict:
        return {
            "type": "change",
            "table": self.table,
            "event": self.event_type.value,
            "new": self.new,
            "old": self.old,
        }

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

class RowFilter:
    """
    Equality filter over row columns.

    Accepts ``"status=eq.pending"``, ``"status=in.(pending,assigned)"``,
    several clauses joined by ``&``, or a mapping of column to value.
    """

    def __init__(self, clauses: Optional[Mapping[str, Iterable[str]]] = None):
        self.clauses: Dict[str, frozenset] = {
            column: frozenset(values) for column, values in (clauses or {}).items()
        }

    @classmethod
    def parse(cls, expression: Union[None, str, Mapping[str, Any], "RowFilter"]) -> "RowFilter":
        if expression is None or isinstance(expression, RowFilter):
            return expression or cls()
        if isinstance(expression, Mapping):
            return cls({column: [_as_text(value)] for column, value in expression.items()})

        clauses: Dict[str, List[str]] = {}
        for part in filter(None, (p.strip() for p in expression.split("&"))):
            column, sep, rest = part.partition("=")
            operator, dot, operand = rest.partition(".")
            if not sep or not dot or not column:
                raise ValueError(f"Invalid filter expression: {part!r}")
            if operator == "eq":
                values = [operand]
            elif operator == "in" and operand.startswith("(") and operand.endswith(")"):
                values = [v.strip() for v in operand[1:-1].split(",") if v.strip()]
            else:
                raise ValueError(f"Unsupported filter operator: {operator!r}")
            clauses.setdefault(column.strip(), []).extend(values)
        return cls(clauses)

    def matches(self, row: Optional[Mapping[str, Any]]) -> bool:
        if row is None:
            return False
        return all(_as_text(row.get(column)) in values for column, values in self.clauses.items())

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def __repr__(self) -> str:
        return f"RowFilter({self.clauses!r})"

Handler = Callable[[ChangeEvent], Any]

@dataclass(eq=False)
class Subscription:
    id: int
    table: str
    row_filter: RowFilter
    handler: Handler
    _feed: Optional["ChangeFeed"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._feed is not None

    def wants(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if not self.row_filter:
            return True
        # Rows leaving the filter (e.g. pending -> assigned) are delivered too
        return self.row_filter.matches(event.new) or self.row_filter.matches(event.old)

    def unsubscribe(self) -> bool:
        """Release the subscription; safe to call more than once"""
        feed = self._feed
        if feed is None:
            return False
        return feed.unsubscribe(self)

class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions: Dict[int, Subscription] = {}

    def subscribe(self, table: str, row_filter: Union[None, str, Mapping[str, Any], RowFilter], handler: Handler) -> Subscription:
        subscription = Subscription(
            id=next(self._ids),
            table=table,
            row_filter=RowFilter.parse(row_filter),
            handler=handler,
        )
        with self._lock:
            subscription._feed = self
            self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscribed #{subscription.id} to {table} {subscription.row_filter!r}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
            subscription._feed = None
        if removed is not None:
            logger.debug(f"Unsubscribed #{subscription.id} from {subscription.table}")
        return removed is not None

    def publish(self, event: ChangeEvent) -> int:
        """Deliver event to every matching subscriber, returns the number reached"""
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.wants(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"Change handler #{subscription.id} failed for {event.table} {event.event_type.value}")
        return delivered

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions.values() if s.table == table)

class LiveCollection:
    """
    In-memory mirror of the rows matching a filter, kept current by change events.

    Applying the same event twice is a no-op. With version_key set, an event
    older than the stored row is ignored.
    """

    def __init__(self, row_filter: Union[None, str, Mapping[str, Any], RowFilter] = None, version_key: Optional[str] = None, rows: Iterable[Mapping[str, Any]] = ()):
        self.row_filter = RowFilter.parse(row_filter)
        self.version_key = version_key
        self._rows: Dict[Any, Dict[str, Any]] = {}
        for row in rows:
            self._store(dict(row))

    def _store(self, row: Dict[str, Any]):
        if not self.row_filter or self.row_filter.matches(row):
            self._rows[row["id"]] = row

    def _is_older(self, row: Mapping[str, Any]) -> bool:
        if self.version_key is None:
            return False
        current = self._rows.get(row.get("id"))
        if current is None:
            return False
        incoming, stored = row.get(self.version_key), current.get(self.version_key)
        return incoming is not None and stored is not None and incoming < stored

    def apply(self, event: ChangeEvent):
        if event.event_type == ChangeType.DELETE:
            self._rows.pop(event.row_id, None)
            return

        row = dict(event.new or {})
        if "id" not in row or self._is_older(row):
            return
        if self.row_filter and not self.row_filter.matches(row):
            self._rows.pop(row["id"], None)
        else:
            self._rows[row["id"]] = row

    __call__ = apply

    def get(self, row_id: Any) -> Optional[Dict[str, Any]]:
        return self._rows.get(row_id)

    def rows(self) -> List[Dict[str, Any]]:
        return list(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, row_id: Any) -> bool:
        return row_id in self._rows

change_feed = ChangeFeed()

def get_change_feed() -> ChangeFeed:
    """Dependency returning the process-wide change feed"""
    return change_feed
