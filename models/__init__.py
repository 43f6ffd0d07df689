from .db import db
from .audit_log import AuditLog
from .login_attempt import LoginAttempt
from .lockout_state import LockoutState
from .rate_limit_window import RateLimitWindow
from .known_device import KnownDevice
