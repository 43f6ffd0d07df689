from sqlalchemy.exc import IntegrityError

from models import db
from models.known_device import KnownDevice


def remember_device(email: str, fingerprint: str, user_agent: str = None) -> bool:
    """
    Records a device fingerprint for an account.
    Returns True only for the call whose insert created the row.
    """
    if not fingerprint:
        return False
    if KnownDevice.query.filter_by(email=email, fingerprint=fingerprint).first():
        return False

    db.session.add(KnownDevice(email=email, fingerprint=fingerprint, user_agent=user_agent))
    try:
        db.session.commit()
    except IntegrityError:
        # someone else recorded it first
        db.session.rollback()
        return False
    return True
