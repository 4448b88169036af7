"""
SmartHire - Entitlement & Usage Metering API
============================================

Backend for the SmartHire AI candidate-screening product.

Scope:
- Stripe subscription state (webhook-driven unlock / lock)
- Free-tier usage quota with atomic metering
- Access gate consulted before every billable analysis
- Cross-tenant admin analytics and registry export
"""

__version__ = "1.0.0"
__product__ = "SmartHire"
