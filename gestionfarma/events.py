"""
Application signals.

Same mechanism Flask uses for its own signals (blinker namespaces):
listeners are connected in the app factory, senders never know them.
"""
from blinker import Namespace

_signals = Namespace()

# Sent after a sale has been committed as COMPLETED.
# sender: TenantContext; kwargs: sale_id, amount_due, payment_method
sale_completed = _signals.signal('sale-completed')
