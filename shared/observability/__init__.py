from .setup import setup_observability
from .metrics import (
    ecomm_checkout_total,
    ecomm_checkout_duration_seconds,
    ecomm_stock_reservation_failures_total,
    ecomm_payment_verification_total,
    ecomm_order_cancellations_total
)
