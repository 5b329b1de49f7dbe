"""
Fleet Kernel - shared foundations for the fleet finance engine.

Provides the pieces every other package builds on:
- Money and Currency value objects (Decimal only, never float)
- Injectable clocks
- The typed exception hierarchy
- Structured JSON logging
- SQLAlchemy base classes and engine/session management
"""

__version__ = "0.1.0"
