"""
Gate pass request lifecycle.

Every operation loads the full dataset from the store, applies one query
or state transition, and for mutations writes the full dataset back.
Mutations run under a single lock so concurrent requests in one process
cannot interleave their load/save cycles.

A request moves along two independent one-shot axes::

    status: Pending --review--> Approved | Rejected
    used:   False   --use-->    True

A second attempt on either axis is a ``ConflictError``.
"""
import logging
import threading
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from errors import BadRequestError, ConflictError, NotFoundError, StorageError, UnauthorizedError
from schemas import REVIEW_OUTCOMES, Dataset, GatePassRequest, Stats, User, Verification

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _missing(*values) -> bool:
    """Absent, null or empty. Whitespace-only text counts as present."""
    return any(v is None or v == "" for v in values)


def _newest_first(requests: List[GatePassRequest]) -> List[GatePassRequest]:
    return sorted(requests, key=lambda r: r.timestamp, reverse=True)


class GatePassService:
    """Operations behind the gate pass API, bound to one storage handle."""

    def __init__(self, store, clock: Callable[[], datetime] = now_utc, id_prefix: str = "REQ"):
        self.store = store
        self.clock = clock
        self.id_prefix = id_prefix
        self._lock = threading.RLock()

    # -----------------------------
    # Helpers
    # -----------------------------

    def _commit(self, dataset: Dataset, failure_message: str) -> None:
        if not self.store.save(dataset):
            raise StorageError(failure_message)

    def _new_id(self, dataset: Dataset) -> str:
        existing = {r.id for r in dataset.requests}
        suffix = int(self.clock().timestamp() * 1000)
        while f"{self.id_prefix}{suffix}" in existing:
            suffix += 1
        return f"{self.id_prefix}{suffix}"

    @staticmethod
    def _find(dataset: Dataset, request_id: str) -> GatePassRequest:
        for request in dataset.requests:
            if request.id == request_id:
                return request
        raise NotFoundError("Request not found")

    # -----------------------------
    # Operations
    # -----------------------------

    def authenticate(self, user_id: Optional[str], password: Optional[str], role: Optional[str]) -> User:
        """Exact, case-sensitive match on id, password and role."""
        dataset = self.store.load()
        for user in dataset.users:
            if user.id == user_id and user.password == password and user.role == role:
                logger.info("User %s logged in as %s", user.id, user.role)
                return user
        logger.warning("Failed login for user id %r with role %r", user_id, role)
        raise UnauthorizedError("Invalid credentials or role mismatch")

    def create_request(
        self,
        student_id: Optional[str],
        student_name: Optional[str],
        reason: Optional[str],
        return_time: Optional[str],
    ) -> GatePassRequest:
        if _missing(student_id, student_name, reason, return_time):
            raise BadRequestError("Missing required fields")

        with self._lock:
            dataset = self.store.load()
            request = GatePassRequest(
                id=self._new_id(dataset),
                student_id=student_id,
                student_name=student_name,
                reason=reason,
                return_time=return_time,
                status="Pending",
                timestamp=self.clock(),
            )
            dataset.requests.append(request)
            self._commit(dataset, "Failed to save request")

        logger.info("Created gate pass request %s for student %s", request.id, student_id)
        return request

    def list_requests(self) -> List[GatePassRequest]:
        return _newest_first(self.store.load().requests)

    def list_requests_by_student(self, student_id: str) -> List[GatePassRequest]:
        dataset = self.store.load()
        return _newest_first([r for r in dataset.requests if r.student_id == student_id])

    def get_request(self, request_id: str) -> GatePassRequest:
        return self._find(self.store.load(), request_id)

    def review_request(
        self,
        request_id: str,
        status: Optional[str],
        moderator_id: Optional[str],
        moderator_name: Optional[str],
        remarks: Optional[str] = None,
    ) -> GatePassRequest:
        """Approve or reject a Pending request.

        Validation runs before the lookup, so a bad body on an unknown id
        is a ``BadRequestError`` rather than ``NotFoundError``.
        """
        if _missing(status, moderator_id, moderator_name):
            raise BadRequestError("Missing required fields")
        if status not in REVIEW_OUTCOMES:
            raise BadRequestError("Invalid status")

        with self._lock:
            dataset = self.store.load()
            request = self._find(dataset, request_id)
            if request.status != "Pending":
                raise ConflictError("Request already reviewed")

            request.status = status
            request.moderator_id = moderator_id
            request.moderator_name = moderator_name
            request.moderator_remarks = remarks or ""
            request.reviewed_at = self.clock()
            self._commit(dataset, "Failed to update request")

        logger.info("Request %s %s by moderator %s", request_id, status.lower(), moderator_id)
        return request

    def verify_pass(self, student_id: str) -> Verification:
        """Most recent Approved and unused request for the student, if any."""
        dataset = self.store.load()
        candidates = _newest_first(
            [r for r in dataset.requests if r.student_id == student_id and r.status == "Approved" and not r.used]
        )
        if not candidates:
            return Verification(has_pass=False)
        return Verification(has_pass=True, gate_pass=candidates[0])

    def mark_used(self, request_id: str) -> GatePassRequest:
        with self._lock:
            dataset = self.store.load()
            request = self._find(dataset, request_id)
            if request.used:
                raise ConflictError("Pass already used")

            request.used = True
            request.used_at = self.clock()
            self._commit(dataset, "Failed to update pass")

        logger.info("Pass %s marked as used", request_id)
        return request

    def compute_stats(self, today: Optional[date] = None) -> Stats:
        """Counts over all requests.

        ``today`` counts requests created on the current local calendar date.
        """
        requests = self.store.load().requests
        if today is None:
            today = datetime.fromtimestamp(self.clock().timestamp()).date()
        return Stats(
            total=len(requests),
            pending=sum(1 for r in requests if r.status == "Pending"),
            approved=sum(1 for r in requests if r.status == "Approved"),
            rejected=sum(1 for r in requests if r.status == "Rejected"),
            today=sum(1 for r in requests if r.timestamp.astimezone().date() == today),
            used=sum(1 for r in requests if r.used),
        )
