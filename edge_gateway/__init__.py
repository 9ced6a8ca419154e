"""
                Edge API Gateway

Versioned RPC gateway and cross-region event fanout for a multi-app
restaurant ordering platform (customer app, business app, web).

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
