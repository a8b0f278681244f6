from typing import Callable, Iterable, List, Optional

from db_models import Contact, LinkPrecedence
from db_setup import utc_now

# Only the link columns may change once a contact exists.
MUTABLE_FIELDS = ("linkedId", "linkPrecedence", "updatedAt")


def _contact_from_row(row) -> Contact:
    return Contact(**dict(row))


def _assignments(fields: dict):
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Contact fields are immutable: {', '.join(sorted(unknown))}")
    values = {
        key: value.value if isinstance(value, LinkPrecedence) else value
        for key, value in fields.items()
    }
    clause = ", ".join(f"{column} = ?" for column in values)
    return clause, list(values.values())


class ContactRepository:
    """Reads and writes Contact rows on a connection owned by the caller.

    The repository never commits; the caller's transaction decides whether
    a batch of changes lands.
    """

    def __init__(self, conn, clock: Callable[[], str] = utc_now):
        self.conn = conn
        self.clock = clock

    def find_by_email_or_phone(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Contact]:
        conditions = []
        params = []
        if email:
            conditions.append("email = ?")
            params.append(email)
        if phone:
            conditions.append("phoneNumber = ?")
            params.append(phone)

        if not conditions:
            return []

        cursor = self.conn.execute(f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND ({" OR ".join(conditions)})
            ORDER BY createdAt ASC, id ASC
        """, params)
        return [_contact_from_row(row) for row in cursor.fetchall()]

    def find_by_roots_or_linked_to(self, ids: Iterable[int]) -> List[Contact]:
        ids = sorted(set(ids))
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        cursor = self.conn.execute(f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND (id IN ({placeholders}) OR linkedId IN ({placeholders}))
            ORDER BY createdAt ASC, id ASC
        """, ids + ids)
        return [_contact_from_row(row) for row in cursor.fetchall()]

    def get(self, contact_id: int) -> Optional[Contact]:
        rows = self.conn.execute("SELECT * FROM Contact WHERE id = ?", (contact_id,)).fetchall()
        return _contact_from_row(rows[0]) if rows else None

    def create(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        linked_id: Optional[int] = None,
        precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
    ) -> Contact:
        now = self.clock()
        cursor = self.conn.execute("""
            INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (phone, email, linked_id, LinkPrecedence(precedence).value, now, now))
        return self.get(cursor.lastrowid)

    def update(self, contact_id: int, **fields) -> None:
        fields.setdefault("updatedAt", self.clock())
        clause, params = _assignments(fields)
        self.conn.execute(f"UPDATE Contact SET {clause} WHERE id = ?", params + [contact_id])

    def update_many(self, linked_id: int, **fields) -> int:
        """Apply ``fields`` to every live contact currently linked to ``linked_id``."""
        fields.setdefault("updatedAt", self.clock())
        clause, params = _assignments(fields)
        cursor = self.conn.execute(
            f"UPDATE Contact SET {clause} WHERE linkedId = ? AND deletedAt IS NULL",
            params + [linked_id],
        )
        return cursor.rowcount

    def delete_all(self) -> None:
        self.conn.execute("DELETE FROM Contact")
