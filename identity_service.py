"""Identity reconciliation for fragmented contact records.

A request carrying an email, a phone number or both is resolved against the
Contact table in one serialized transaction:

    match -> expand group -> [merge primaries -> re-expand]
          -> [create secondary] -> build response

Contacts are plain value records; the identity graph lives only in the
``linkedId`` column, and merges re-point every dependent immediately so each
group stays one hop deep.
"""

import time
from typing import Iterable, List, Optional, Sequence, Union

import structlog

from config import get_settings
from contact_repository import ContactRepository
from db_models import Contact, ContactResponse, FinalResponse, LinkPrecedence
from db_setup import is_lock_conflict, transaction, utc_now
from errors import InvariantViolationError, ServiceUnavailableError, TransientConflictError

logger = structlog.get_logger(__name__)


def _creation_order(contact: Contact):
    return (contact.createdAt, contact.id)


def find_matching_contacts(repo: ContactRepository, email: Optional[str], phone: Optional[str]) -> List[Contact]:
    """Live contacts sharing the email or the phone, oldest first."""
    if not email and not phone:
        return []
    return repo.find_by_email_or_phone(email, phone)


def get_all_linked_contacts(repo: ContactRepository, contacts: Sequence[Contact]) -> List[Contact]:
    """Expand seed contacts to every live member of the groups they belong to.

    Two roots come back when the seeds straddle previously unrelated groups.
    Seeds that yield no root at all are returned untouched.
    """
    if not contacts:
        return []

    root_ids = {contact.root_id for contact in contacts if contact.root_id is not None}
    if not root_ids:
        logger.warning("Seed contacts have no group root", contact_ids=[c.id for c in contacts])
        return sorted(contacts, key=_creation_order)

    return sorted(repo.find_by_roots_or_linked_to(root_ids), key=_creation_order)


def get_oldest_primary(contacts: Iterable[Contact]) -> Contact:
    primaries = [contact for contact in contacts if contact.is_primary]
    if not primaries:
        raise InvariantViolationError("No primary contact found in the group")
    return min(primaries, key=_creation_order)


def merge_primary_contacts(repo: ContactRepository, primaries: Sequence[Contact]) -> Contact:
    """Collapse several primaries into the oldest one and return it.

    Each younger primary is demoted to a secondary of the survivor, and its own
    secondaries are re-pointed at the survivor in the same step.
    """
    canonical = get_oldest_primary(primaries)
    demoted = sorted(
        (p for p in primaries if p.id != canonical.id and p.is_primary),
        key=_creation_order,
    )

    for primary in demoted:
        repo.update(
            primary.id,
            linkedId=canonical.id,
            linkPrecedence=LinkPrecedence.SECONDARY,
        )
        repo.update_many(primary.id, linkedId=canonical.id)

    logger.info(
        "Merged primary contacts",
        primary_id=canonical.id,
        demoted_ids=[p.id for p in demoted],
    )
    return canonical


def should_create_secondary_contact(contacts: Sequence[Contact], email: Optional[str], phone: Optional[str]) -> bool:
    """Whether the request adds information the group has not recorded yet.

    Only a request naming both an email and a phone, one of them already known
    to the group, can add a secondary. Single-field requests are lookups.
    """
    if any(c.email == email and c.phoneNumber == phone for c in contacts):
        return False

    if not (email and phone):
        return False

    has_new_email = all(c.email != email for c in contacts)
    has_new_phone = all(c.phoneNumber != phone for c in contacts)
    return has_new_email or has_new_phone


def build_response(contacts: Sequence[Contact]) -> FinalResponse:
    if not contacts:
        raise InvariantViolationError("No contacts to build response from")

    primaries = [c for c in contacts if c.is_primary]
    if len(primaries) != 1:
        raise InvariantViolationError(
            f"Expected exactly one primary contact in the group, found {len(primaries)}"
        )
    primary = primaries[0]
    secondaries = sorted((c for c in contacts if not c.is_primary), key=_creation_order)

    emails = []
    phone_numbers = []
    for contact in [primary] + secondaries:
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phoneNumber and contact.phoneNumber not in phone_numbers:
            phone_numbers.append(contact.phoneNumber)

    return FinalResponse(
        contact=ContactResponse(
            primaryContactId=primary.id,
            emails=emails,
            phoneNumbers=phone_numbers,
            secondaryContactIds=[c.id for c in secondaries],
        )
    )


class IdentityService:
    """Runs the reconciliation pipeline, one transaction per attempt."""

    def __init__(self, db_path=None, clock=utc_now, max_attempts=None, retry_backoff=None):
        settings = get_settings()
        self.db_path = db_path
        self.clock = clock
        if max_attempts is None:
            max_attempts = settings.identify_max_attempts
        # At least one attempt always runs.
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = settings.identify_retry_backoff if retry_backoff is None else retry_backoff

    def identify(self, email: Optional[str] = None, phone_number: Optional[Union[str, int]] = None) -> FinalResponse:
        email = email or None
        phone = str(phone_number) if phone_number is not None else None
        phone = phone or None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._identify_once(email, phone)
            except TransientConflictError:
                if attempt == self.max_attempts:
                    logger.error("Identify retries exhausted", attempts=attempt)
                    raise ServiceUnavailableError(attempt)
                logger.warning("Contact store busy, retrying identify", attempt=attempt)
                time.sleep(self.retry_backoff * attempt)

    def _identify_once(self, email: Optional[str], phone: Optional[str]) -> FinalResponse:
        try:
            with transaction(self.db_path) as conn:
                return self.reconcile(ContactRepository(conn, clock=self.clock), email, phone)
        except Exception as exc:
            if is_lock_conflict(exc):
                raise TransientConflictError(str(exc)) from exc
            raise

    def reconcile(self, repo: ContactRepository, email: Optional[str], phone: Optional[str]) -> FinalResponse:
        """The pipeline body; expects ``repo`` to sit inside a write transaction."""
        matches = find_matching_contacts(repo, email, phone)

        if not matches:
            contact = repo.create(email, phone, None, LinkPrecedence.PRIMARY)
            logger.info("Created primary contact", contact_id=contact.id)
            return build_response([contact])

        group = get_all_linked_contacts(repo, matches)

        primaries = [c for c in group if c.is_primary]
        if len(primaries) > 1:
            merge_primary_contacts(repo, primaries)
            group = get_all_linked_contacts(repo, matches)
            if sum(1 for c in group if c.is_primary) != 1:
                logger.error("Group still has several primaries after merge", contact_ids=[c.id for c in group])
                raise InvariantViolationError("Primary merge left the group without a single primary")

        if should_create_secondary_contact(group, email, phone):
            primary = get_oldest_primary(group)
            contact = repo.create(email, phone, primary.id, LinkPrecedence.SECONDARY)
            logger.info("Created secondary contact", contact_id=contact.id, primary_id=primary.id)
            group = group + [contact]

        return build_response(group)
