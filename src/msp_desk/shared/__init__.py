"""
Shared Kernel Module
====================

Shared infrastructure used by every bounded context (currently: tickets).

Architecture Pattern: Modular Monolith
- Each module is a bounded context
- Shared kernel contains only generic infrastructure (logging, HTTP
  middleware, caller identity resolution)

DO NOT add ticket business logic to the shared kernel.
"""

__version__ = "1.0.0"
