from django.dispatch import Signal

# Sent when an account is opened for a user. Args: account, user
account_created = Signal()

# Sent for every ledger entry written. Args: transaction
transaction_created = Signal()

# Sent when an account balance moved. Args: account, transaction
balance_changed = Signal()

# Sent after a cheer was recorded. Args: given, received
transfer_completed = Signal()

# Sent after checkout created an order. Args: order, transaction
order_placed = Signal()

# Sent after an order was cancelled and refunded. Args: order, transaction
order_cancelled = Signal()

# Sent when a cancellation request was filed. Args: order
cancellation_requested = Signal()
