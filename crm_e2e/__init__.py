"""End-to-end test support for a hosted CRM's Lightning web UI and REST API.

The package is split into a resilient UI layer (``driver``, ``strategies``,
``readiness``), session bootstrap via token injection (``session``), a REST
client for fixture setup (``api_client``) and business-level flows
(``workflows``).
"""

__version__ = "1.0.0"
