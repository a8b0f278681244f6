"""Load the FluxKart demo contacts into a fresh table."""

import structlog

from app_logging import setup_logging
from config import get_settings
from contact_repository import ContactRepository
from db_models import LinkPrecedence
from db_setup import init_db, transaction

logger = structlog.get_logger(__name__)

# (email, phone, index of the primary in this list or None)
DEMO_CONTACTS = [
    ("doc@fluxkart.com", "999999", None),
    ("mcfly@fluxkart.com", "999999", 0),
    ("george@hillvalley.edu", "919191", None),
    ("lorraine@hillvalley.edu", "123456", 2),
    ("biff@hillvalley.edu", "717171", None),
    ("marty@fluxkart.com", "555555", None),
    ("jennifer@fluxkart.com", "555555", 5),
]


def seed(db_path=None):
    init_db(db_path)
    created = []
    with transaction(db_path) as conn:
        repo = ContactRepository(conn)
        repo.delete_all()
        for email, phone, primary_index in DEMO_CONTACTS:
            if primary_index is None:
                contact = repo.create(email, phone, None, LinkPrecedence.PRIMARY)
            else:
                contact = repo.create(email, phone, created[primary_index].id, LinkPrecedence.SECONDARY)
            created.append(contact)
            logger.info(
                "Seeded contact",
                contact_id=contact.id,
                email=email,
                phone=phone,
                link_precedence=contact.linkPrecedence.value,
            )
    return created


if __name__ == "__main__":
    setup_logging(get_settings().log_level)
    seed()
