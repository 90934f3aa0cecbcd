"""
Domain constants used across services/routers.
"""

# Order numbers: ALT-XXXX-XXXX, read aloud and typed into bank references,
# so the alphabet leaves out 0/O and 1/I/L.
ORDER_NUMBER_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

# Processor metadata keys (payment intent <-> order)
METADATA_ORDER_ID = "order_id"
METADATA_ORDER_NUMBER = "order_number"

# Payment providers
PROVIDER_STRIPE = "stripe"
PROVIDER_SIMULATED = "simulated"
PROVIDER_PAYPAL = "paypal"
PROVIDER_SIMULATED_PAYPAL = "simulated_paypal"

# Providers whose customers approve on a hosted page and come back (PayPal)
REDIRECT_PROVIDERS = frozenset({PROVIDER_PAYPAL, PROVIDER_SIMULATED_PAYPAL})

# Payment reference prefix for manually reconciled bank transfers
BANK_REFERENCE_PREFIX = "BANK:"

# Shown to the customer when the processor gives no usable reason
DEFAULT_DECLINE_REASON = "Your payment was declined. Please try another card."
