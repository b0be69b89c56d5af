"""Access policy evaluation for file lineages.

``can_access`` is a pure function of the lineage head's policy fields and an
``AccessRequest``. Rules run in a fixed order and the first one that returns a
denial wins:

  1. preview veto        - previews of private or PIN'd files are always denied
  2. ownership bypass    - the owner skips rule 3 (nothing else)
  3. privacy / PIN
  4. expiration          - applies to owners too
  5. download limit      - skipped for previews
  6. per-user limit      - skipped for previews

Callers count the download and write the log only after a GRANTED decision for
a non-preview request.
"""
import enum
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from fileshare.models.file_record import FileRecord


class Decision(str, enum.Enum):
    GRANTED = "granted"
    DENIED_PRIVATE = "denied_private"
    DENIED_PIN = "denied_pin"
    DENIED_EXPIRED = "denied_expired"
    DENIED_DOWNLOAD_LIMIT = "denied_download_limit"
    DENIED_PER_USER_LIMIT = "denied_per_user_limit"
    DENIED_AUTH_REQUIRED = "denied_auth_required"

    @property
    def is_granted(self) -> bool:
        return self is Decision.GRANTED


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller, resolved by the session layer."""
    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def owns(self, record: FileRecord) -> bool:
        return self.is_authenticated and record.user_id is not None and record.user_id == self.user_id


ANONYMOUS = RequestContext()


@dataclass(frozen=True)
class AccessRequest:
    """Everything the rules need about one request.

    Download counters live on each physical record, but limits are judged per
    lineage. lineage_download_count is the sum of download_count over every
    version (the head's own counter when None) and user_download_count is the
    caller's logged downloads of any version. The caller fetches both before
    evaluation so evaluation stays pure.
    """
    context: RequestContext = ANONYMOUS
    pin: Optional[str] = None
    is_preview: bool = False
    user_download_count: int = 0
    lineage_download_count: Optional[int] = None
    now: Optional[datetime] = None


def pins_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    """Constant-time PIN comparison. Wrong length or missing PIN never matches."""
    if not expected or not supplied:
        return False
    expected_bytes = expected.encode("utf-8")
    supplied_bytes = supplied.encode("utf-8")
    if len(expected_bytes) != len(supplied_bytes):
        return False
    return hmac.compare_digest(expected_bytes, supplied_bytes)


def is_protected(head: FileRecord) -> bool:
    return bool(head.is_private) or bool(head.pin)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Rules ────────────────────────────────────────────────────────
# Each rule returns a denial or None to fall through to the next one.

def _preview_veto(head: FileRecord, request: AccessRequest) -> Optional[Decision]:
    if not request.is_preview:
        return None
    if head.is_private:
        return Decision.DENIED_PRIVATE
    if head.pin:
        return Decision.DENIED_PIN
    return None


def _privacy_and_pin(head: FileRecord, request: AccessRequest) -> Optional[Decision]:
    if request.context.owns(head):
        return None
    if head.is_private:
        if not head.pin:
            return Decision.DENIED_PRIVATE
        if not pins_match(head.pin, request.pin):
            return Decision.DENIED_PIN
        return None
    if head.pin and not pins_match(head.pin, request.pin):
        return Decision.DENIED_PIN
    return None


def _expiration(head: FileRecord, request: AccessRequest) -> Optional[Decision]:
    if head.expires_at is None:
        return None
    now = _as_utc(request.now or datetime.now(timezone.utc))
    if _as_utc(head.expires_at) <= now:
        return Decision.DENIED_EXPIRED
    return None


def _download_limit(head: FileRecord, request: AccessRequest) -> Optional[Decision]:
    if request.is_preview or head.max_downloads is None:
        return None
    count = request.lineage_download_count
    if count is None:
        count = head.download_count or 0
    if count >= head.max_downloads:
        return Decision.DENIED_DOWNLOAD_LIMIT
    return None


def _per_user_limit(head: FileRecord, request: AccessRequest) -> Optional[Decision]:
    if request.is_preview or head.max_downloads_per_user is None:
        return None
    if not request.context.is_authenticated:
        return Decision.DENIED_AUTH_REQUIRED
    if request.user_download_count >= head.max_downloads_per_user:
        return Decision.DENIED_PER_USER_LIMIT
    return None


RULES: tuple[Callable[[FileRecord, AccessRequest], Optional[Decision]], ...] = (
    _preview_veto,
    _privacy_and_pin,
    _expiration,
    _download_limit,
    _per_user_limit,
)


def can_access(head: FileRecord, request: AccessRequest) -> Decision:
    """Evaluate the head's policy for one request."""
    for rule in RULES:
        decision = rule(head, request)
        if decision is not None:
            return decision
    return Decision.GRANTED


def privacy_decision(head: FileRecord, context: RequestContext, pin: Optional[str] = None) -> Decision:
    """Privacy/PIN rule alone, for metadata and version views that count nothing."""
    return _privacy_and_pin(head, AccessRequest(context=context, pin=pin)) or Decision.GRANTED


def can_preview(head: FileRecord, is_preview: bool) -> bool:
    """Previews are refused outright for any private or PIN'd file."""
    return not (is_preview and is_protected(head))
