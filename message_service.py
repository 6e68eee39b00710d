import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Optional
from book_catalog import BookCatalog
from models.message_models import (
    MessageCreate,
    MessageDetails,
    MessageType,
    MessageUpdate,
    RequestStatus,
    REQUEST_TYPES,
)

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.ACCEPTED,
        RequestStatus.DECLINED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.DECLINED: frozenset({RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

# Every (from, to) pair has an explicit answer
TRANSITION_MATRIX: Dict[tuple, bool] = {
    (src, dst): dst in _ALLOWED_TRANSITIONS[src]
    for src in RequestStatus
    for dst in RequestStatus
}

TERMINAL_STATUSES = frozenset(s for s in RequestStatus if not _ALLOWED_TRANSITIONS[s])


def is_transition_allowed(src: RequestStatus, dst: RequestStatus) -> bool:
    return TRANSITION_MATRIX[(RequestStatus(src), RequestStatus(dst))]


def build_chat_id(user_a: str, user_b: str, book_id: str) -> str:
    """Conversation key shared by both participants of a book chat."""
    first, second = sorted([str(user_a), str(user_b)], key=_id_sort_key)
    return f"{first}_{second}_{book_id}"


def _id_sort_key(value: str):
    # numeric ids compare as numbers, anything else lexically
    return (0, int(value), value) if value.isdigit() else (1, 0, value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # naive datetimes are stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MessageRuleError(Exception):
    rule = "message_rule"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def detail(self) -> Dict[str, Any]:
        return {"error": self.rule, "message": self.message}


class BookNotFound(MessageRuleError):
    rule = "book_not_found"
    status_code = 404

    def __init__(self, book_id: str):
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class InvalidReceiver(MessageRuleError):
    rule = "invalid_receiver"

    def __init__(self, receiver_id: str, owner_id: str):
        super().__init__("Invalid receiver: must be the book owner")
        self.receiver_id = receiver_id
        self.owner_id = owner_id


class SelfRequest(MessageRuleError):
    rule = "self_request"

    def __init__(self, sender_id: str):
        super().__init__("Cannot send request to yourself")
        self.sender_id = sender_id


class InvalidTransition(MessageRuleError):
    rule = "invalid_transition"
    status_code = 409

    def __init__(self, from_status: Optional[RequestStatus], to_status: RequestStatus):
        from_label = from_status.value if from_status else None
        super().__init__(f"Invalid status transition from {from_label} to {to_status.value}")
        self.from_status = from_status
        self.to_status = to_status

    def detail(self) -> Dict[str, Any]:
        detail = super().detail()
        detail["from"] = self.from_status.value if self.from_status else None
        detail["to"] = self.to_status.value
        return detail


class MessageService:
    """Write-path rules for messages and purchase/swap requests.

    Callers run `prepare_create` / `prepare_update` before persisting; any
    MessageRuleError means the write must not happen.
    """

    def __init__(self, catalog: BookCatalog, clock: Optional[Callable[[], datetime]] = None):
        self.catalog = catalog
        self.clock = clock or _utcnow

    def apply_defaults(self, payload: MessageCreate) -> MessageCreate:
        defaults: Dict[str, Any] = {}
        if payload.timestamp is None:
            defaults["timestamp"] = self.clock()
        if payload.messageType is None:
            defaults["messageType"] = MessageType.GENERAL
        return payload.model_copy(update=defaults)

    async def validate_request(self, payload: MessageCreate) -> MessageCreate:
        if payload.messageType not in REQUEST_TYPES:
            return payload

        book = await self.catalog.get_book(payload.bookId)
        if book is None:
            raise BookNotFound(payload.bookId)
        if payload.receiverId != book.ownerId:
            raise InvalidReceiver(payload.receiverId, book.ownerId)
        if payload.senderId == book.ownerId:
            raise SelfRequest(payload.senderId)

        return payload.model_copy(update={"requestStatus": RequestStatus.PENDING})

    async def prepare_create(self, payload: MessageCreate) -> MessageCreate:
        try:
            return await self.validate_request(self.apply_defaults(payload))
        except MessageRuleError as e:
            logger.warning("Rejected message from %s on book %s: %s",
                           payload.senderId, payload.bookId, e.message)
            raise

    def prepare_update(self, current: MessageDetails, changes: MessageUpdate) -> Dict[str, Any]:
        """Return the fields to set on `current`, or raise InvalidTransition."""
        proposed = changes.model_dump(exclude_unset=True)
        update: Dict[str, Any] = {}
        now = _as_utc(self.clock())

        if "read" in proposed and proposed["read"] is not None:
            if proposed["read"] and not current.read:
                update["read"] = True
                update["readAt"] = max(now, _as_utc(current.timestamp))
            elif not proposed["read"]:
                update["read"] = False
                update["readAt"] = None

        target = proposed.get("requestStatus")
        if target is not None and current.messageType in REQUEST_TYPES:
            target = RequestStatus(target)
            source = current.requestStatus
            if source is None or not is_transition_allowed(source, target):
                logger.warning("Rejected transition on message %s: %s -> %s",
                               current.id, source.value if source else None, target.value)
                raise InvalidTransition(source, target)
            changed_at = now
            if current.statusChangedAt is not None and _as_utc(current.statusChangedAt) > now:
                changed_at = _as_utc(current.statusChangedAt)
            update["requestStatus"] = target
            update["statusChangedAt"] = changed_at
            logger.info("Message %s status %s -> %s", current.id, source.value, target.value)

        return update
