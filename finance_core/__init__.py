"""
Finance Core - Source Package

The engine behind a personal/shared finance tracker: budget periods,
transaction reconciliation and recurring transaction scheduling.

DESIGN PRINCIPLES:
1. Every service is person-scoped and takes the person explicitly
2. Fail early, fail visibly
3. No silent corrections of corrupted data
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Core Team"
