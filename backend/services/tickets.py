import sqlite3
from typing import Literal, NotRequired, TypedDict

from backend.logger import get_logger
from database import db
from database.db import Registration, RegistrationStats

log = get_logger("tickets")

ScanMessage = Literal["ticket not found", "ticket revoked", "scan limit reached", "scan accepted"]


class ScanResult(TypedDict):
    valid: bool
    message: ScanMessage
    registration: NotRequired[Registration]


def generate_qr_code(reg_id: str, qr_code_data: str) -> bool:
    """
    Bind QR data to a ticket once.

    Returns False, without error, when the registration is missing or already
    has a QR; the first payload stays bound.
    """
    issued = db.set_registration_qr(reg_id, qr_code_data)
    if issued:
        log.info("QR issued for ticket %s", reg_id)
    else:
        log.info("QR not issued for ticket %s (missing or already issued)", reg_id)
    return issued


def verify_and_scan(ticket_id: str) -> ScanResult:
    """
    Admit one entry against a ticket.

    Checks run in a fixed order: existence, revocation, scan limit. The
    read-check-increment holds the SQLite write lock (BEGIN IMMEDIATE), so two
    scans of the same ticket cannot both pass the limit check.
    """
    conn = db.connect_db()
    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        registration = db.get_registration(ticket_id, conn=conn)

        if registration is None:
            conn.rollback()
            log.warning("Scan rejected: ticket %s not found", ticket_id)
            return {"valid": False, "message": "ticket not found"}

        if registration["status"] == "revoked":
            conn.rollback()
            log.warning("Scan rejected: ticket %s revoked", ticket_id)
            return {"valid": False, "registration": registration, "message": "ticket revoked"}

        if registration["scans"] >= registration["max_scans"]:
            conn.rollback()
            log.warning(
                "Scan rejected: ticket %s at limit (%d/%d)",
                ticket_id,
                registration["scans"],
                registration["max_scans"],
            )
            return {"valid": False, "registration": registration, "message": "scan limit reached"}

        cur.execute(
            """
            UPDATE registrations
            SET scans = scans + 1,
                status = CASE WHEN scans + 1 = max_scans THEN 'checked-in' ELSE status END
            WHERE id = ?
              AND status <> 'revoked'
              AND scans < max_scans
            """,
            (ticket_id,),
        )
        if cur.rowcount != 1:
            # The write lock makes this unreachable unless the row changed underneath us.
            conn.rollback()
            raise RuntimeError(f"Scan of ticket {ticket_id} lost its guarded update.")

        updated = db.get_registration(ticket_id, conn=conn)
        if updated is None:
            conn.rollback()
            raise RuntimeError(f"Ticket {ticket_id} vanished during its scan.")
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    log.info(
        "Scan accepted for ticket %s (%d/%d, status=%s)",
        ticket_id,
        updated["scans"],
        updated["max_scans"],
        updated["status"],
    )
    return {"valid": True, "registration": updated, "message": "scan accepted"}


def revoke_qr_code(reg_id: str) -> bool:
    revoked = db.set_registration_revoked(reg_id)
    if revoked:
        log.info("Ticket %s revoked", reg_id)
    return revoked


def delete_registration(reg_id: str) -> bool:
    deleted = db.delete_registration(reg_id)
    if deleted:
        log.info("Registration %s deleted", reg_id)
    return deleted


def get_stats() -> RegistrationStats:
    return db.get_registration_stats()
