from .otp import otp_bp
from .subscription import subscription_bp
from .payments import payments_bp

__all__ = ['otp_bp', 'subscription_bp', 'payments_bp']
