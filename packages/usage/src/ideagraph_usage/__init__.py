"""IdeaGraph Usage - Credit Gate and remote usage ledger client.

Version: 1.0.0

Usage:
    >>> from ideagraph_usage import CreditGate
    >>> gate = CreditGate.from_settings(get_settings())
    >>> gate.can_perform(5.0)
    True
"""

from ideagraph_usage.gate import CreditGate
from ideagraph_usage.ledger import UsageLedgerClient
from ideagraph_usage.models import UsageSnapshot, UserUsage, normalize_usage_payload

__version__ = "1.0.0"

__all__ = [
    "CreditGate",
    "UsageLedgerClient",
    "UsageSnapshot",
    "UserUsage",
    "normalize_usage_payload",
]
