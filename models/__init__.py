from .db import db
from .workshop import Workshop
from .login_otp import LoginOTP
from .trusted_device import TrustedDevice
from .audit_log import AuditLog
from .ip_rate_limit import IpRateLimit
