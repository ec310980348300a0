# storefront/domain/states.py
ORDER_PENDING = "pending"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (ORDER_PENDING, ORDER_COMPLETED, ORDER_CANCELLED)
ORDER_TERMINAL = frozenset({ORDER_COMPLETED, ORDER_CANCELLED})

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"

PAYMENT_TERMINAL = frozenset({PAYMENT_COMPLETED, PAYMENT_FAILED})

CASH_ON_DELIVERY = "cash_on_delivery"
BANK_TRANSFER = "bank_transfer"
E_WALLET_A = "e_wallet_a"
E_WALLET_B = "e_wallet_b"

#metody dozwolone na zamowieniu
ORDER_PAYMENT_METHODS = (CASH_ON_DELIVERY, BANK_TRANSFER, E_WALLET_A, E_WALLET_B)
#e_wallet_a nie ma providera rozliczen
PAYMENT_METHODS = (CASH_ON_DELIVERY, BANK_TRANSFER, E_WALLET_B)

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
