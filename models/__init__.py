from .user import User
from .verification_code import VerificationCode
from .payment import Payment, PaymentStatus
from .payment_webhook import PaymentWebhook
from .transaction import Transaction

__all__ = ['User', 'VerificationCode', 'Payment', 'PaymentStatus', 'PaymentWebhook', 'Transaction']
