from security import lockout
from security.rate_limit import get_policy, set_count
from utils.audit import create_audit_log
from utils.validation import require_email


def admin_unlock_account(actor_id, email: str, now=None) -> dict:
    email = require_email(email)
    was_locked = lockout.unlock(email, now=now)
    create_audit_log(actor_id, "admin_account_unlocked", {"unlocked_email": email, "was_locked": was_locked})
    return {"success": True, "message": "Account unlocked successfully", "was_locked": was_locked}


def admin_reset_rate_limit(actor_id, subject, action: str, now=None) -> dict:
    get_policy(action)
    set_count(subject, action, 0, now=now)
    create_audit_log(actor_id, "admin_rate_limit_reset", {"subject": str(subject), "limit_action": action})
    return {"success": True, "message": "Rate limit reset successfully"}


def admin_set_rate_limit(actor_id, subject, action: str, count: int, now=None) -> dict:
    get_policy(action)
    new_count = set_count(subject, action, count, now=now)
    create_audit_log(actor_id, "admin_rate_limit_set", {
        "subject": str(subject),
        "limit_action": action,
        "new_count": new_count,
    })
    return {"success": True, "message": "Rate limit updated successfully", "count": new_count}
