"""Vendor adapters.

Import this module to auto-register all available adapters.

Example:
    # Import adapters module to register all adapters
    import syncbridge.outbound.adapters  # noqa: F401

    # Or import specific adapters
    from syncbridge.outbound.adapters.salesforce import SalesforceAdapter
    from syncbridge.outbound.adapters.hubspot import HubSpotAdapter
    from syncbridge.outbound.adapters.zoho import ZohoAdapter
"""

from __future__ import annotations

# Import adapters to trigger auto-registration
from syncbridge.outbound.adapters.hubspot import HubSpotAdapter as HubSpotAdapter
from syncbridge.outbound.adapters.salesforce import SalesforceAdapter as SalesforceAdapter
from syncbridge.outbound.adapters.zoho import ZohoAdapter as ZohoAdapter

__all__ = ["HubSpotAdapter", "SalesforceAdapter", "ZohoAdapter"]
