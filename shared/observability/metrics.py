from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_checkout_total = Counter(
    "ecomm_checkout_total", 
    "Total checkouts processed", 
    ["status"] # Labels: 'success', 'failed', 'replayed'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds", 
    "Checkout duration in seconds"
)

ecomm_stock_reservation_failures_total = Counter(
    "ecomm_stock_reservation_failures_total",
    "Reservations rejected for insufficient stock",
    ["product_id"]
)

ecomm_payment_verification_total = Counter(
    "ecomm_payment_verification_total",
    "Out-of-band payment verifications",
    ["method", "result"] # Labels: result='verified', 'not_found', 'not_completed'
)

ecomm_order_cancellations_total = Counter(
    "ecomm_order_cancellations_total",
    "Orders cancelled with inventory released"
)
