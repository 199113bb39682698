"""Core send-and-record logic for the email dispatcher."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from pydantic import ValidationError

from .logger import get_logger
from .models import EmailPage, EmailRecord, EmailRequest, EmailStatus
from .persistence import Persistence, PersistenceError
from .prometheus import EmailMetrics
from .transport import TransportError

DEFAULT_PAGE_SIZE = 5
DEFAULT_SORT = "id"
DEFAULT_DIRECTION = "desc"

# Public sort names (JSON aliases and field names) to store columns
SORT_FIELDS = {
    "id": "id",
    "ownerRef": "owner_ref",
    "owner_ref": "owner_ref",
    "emailFrom": "email_from",
    "email_from": "email_from",
    "emailTo": "email_to",
    "email_to": "email_to",
    "subject": "subject",
    "text": "text",
    "sentAt": "sent_at",
    "sent_at": "sent_at",
    "status": "status",
}


class EmailValidationError(ValueError):
    """Raised when input reaching the core is malformed."""


class MailTransport(Protocol):
    async def send(self, email_from: str, email_to: str, subject: str, text: str) -> None: ...

    async def close(self) -> None: ...


class EmailDispatchCore:
    """Attempt delivery of one email per request and record the outcome."""

    def __init__(
        self,
        *,
        transport: MailTransport,
        persistence: Persistence | None = None,
        db_path: str = "/data/email_dispatch.db",
        logger=None,
        metrics: EmailMetrics | None = None,
    ):
        """Prepare the runtime collaborators."""
        self.transport = transport
        self.persistence = persistence or Persistence(db_path)
        self.logger = logger or get_logger()
        self.metrics = metrics or EmailMetrics()

    # --------------------------------------------------------------------- utils
    @staticmethod
    def _utc_now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _coerce_request(request: Union[EmailRequest, Mapping[str, Any]]) -> EmailRequest:
        """Accept a validated request or validate a raw mapping."""
        if isinstance(request, EmailRequest):
            return request
        if not isinstance(request, Mapping):
            raise EmailValidationError("email request must be a mapping")
        try:
            return EmailRequest.model_validate(dict(request))
        except ValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
            raise EmailValidationError(f"invalid email request: {', '.join(fields)}") from exc

    # ----------------------------------------------------------------- lifecycle
    async def init(self) -> None:
        """Initialise persistence."""
        await self.persistence.init_db()

    async def start(self) -> None:
        self.logger.debug("Starting EmailDispatchCore...")
        await self.init()

    async def stop(self) -> None:
        await self.transport.close()

    # ------------------------------------------------------------------ dispatch
    async def send_and_record(self, request: Union[EmailRequest, Mapping[str, Any]]) -> EmailRecord:
        """Send one email and persist the outcome.

        Transport failures are recorded as ``ERROR`` and never raised. A
        failing store write raises :class:`PersistenceError`; the message may
        already have been delivered at that point.
        """
        req = self._coerce_request(request)
        email_id = self._new_id()
        sent_at = self._utc_now()

        try:
            await self.transport.send(req.email_from, req.email_to, req.subject, req.text)
        except TransportError as exc:
            status = EmailStatus.ERROR
            self.metrics.inc_error()
            self.logger.warning(
                "Delivery failed for email %s (owner=%s, to=%s): %s",
                email_id,
                req.owner_ref,
                req.email_to,
                exc,
            )
        else:
            status = EmailStatus.SENT
            self.metrics.inc_sent()
            self.logger.info("Delivery succeeded for email %s (owner=%s)", email_id, req.owner_ref)

        record = EmailRecord(
            id=email_id,
            owner_ref=req.owner_ref,
            email_from=req.email_from,
            email_to=req.email_to,
            subject=req.subject,
            text=req.text,
            sent_at=sent_at,
            status=status,
        )
        try:
            await self.persistence.insert_email(record.to_row())
        except PersistenceError:
            self.metrics.inc_persistence_failure()
            self.logger.error(
                "Email %s was dispatched with status %s but could not be recorded",
                email_id,
                status.value,
            )
            raise
        return record

    # ------------------------------------------------------------------- queries
    async def find_by_id(self, email_id: str) -> Optional[EmailRecord]:
        """Return the record with ``email_id`` or ``None`` when absent."""
        row = await self.persistence.get_email(str(email_id))
        if row is None:
            return None
        return EmailRecord.from_row(row)

    async def list_all(self) -> List[EmailRecord]:
        """Return every record in store order."""
        rows = await self.persistence.list_emails()
        return [EmailRecord.from_row(row) for row in rows]

    @staticmethod
    def _normalise_sort(sort: Optional[str], direction: Optional[str]) -> Tuple[str, str]:
        """Resolve ``sort`` (optionally ``field,dir``) and ``direction``."""
        sort = (sort or DEFAULT_SORT).strip()
        direction = (direction or DEFAULT_DIRECTION).strip()
        if "," in sort:
            sort, _, suffix = sort.partition(",")
            sort = sort.strip()
            if suffix.strip():
                direction = suffix.strip()
        direction = direction.lower()
        if sort not in SORT_FIELDS:
            raise EmailValidationError(f"unsupported sort field '{sort}'")
        if direction not in ("asc", "desc"):
            raise EmailValidationError(f"unsupported sort direction '{direction}'")
        return sort, direction

    async def list_paged(
        self,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
        sort: Optional[str] = DEFAULT_SORT,
        direction: Optional[str] = DEFAULT_DIRECTION,
    ) -> EmailPage:
        """Return one page of records; pages past the end are empty."""
        if page < 0:
            raise EmailValidationError("page must not be negative")
        if size < 1:
            raise EmailValidationError("size must be at least 1")
        sort, direction = self._normalise_sort(sort, direction)

        total = await self.persistence.count_emails()
        offset = page * size
        rows: List[Dict[str, Any]] = []
        # Offsets past the end never reach SQLite, whose integers are 64-bit
        if offset < total:
            rows = await self.persistence.list_emails_page(
                offset=offset,
                limit=min(size, total - offset),
                sort_column=SORT_FIELDS[sort],
                descending=direction == "desc",
            )
        return EmailPage(
            content=[EmailRecord.from_row(row) for row in rows],
            page=page,
            size=size,
            total_elements=total,
            total_pages=math.ceil(total / size),
            sort=sort,
            direction=direction,
        )
