"""
fulfillment_services -- Package init and public API.

Responsibility:
    Composition of the module services behind ``FulfillmentCore`` and the
    ``bootstrap`` helper that turns settings into a session factory.

Architecture position:
    Services -- top of the stack.

        fulfillment_services/ -> fulfillment_modules/  (allowed)
        fulfillment_services/ -> fulfillment_engines/  (allowed)
        fulfillment_services/ -> fulfillment_kernel/   (allowed)
        fulfillment_kernel/   -> fulfillment_services/ (FORBIDDEN)
        fulfillment_engines/  -> fulfillment_services/ (FORBIDDEN)
"""

from fulfillment_services.core import FulfillmentCore, bootstrap

__all__ = [
    "FulfillmentCore",
    "bootstrap",
]
