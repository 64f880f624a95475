"""
Couple Organizer - Source Package

A shared life organizer for a couple: reminders, expenses, travel
planning and AI suggestions, on top of a hosted database/auth/storage
platform.

DESIGN PRINCIPLES:
1. The UI never waits for the network (optimistic updates)
2. A full refetch is the only recovery path
3. Access is resolved once, enforced everywhere
4. Misconfiguration is a visible state, never an empty list
5. External services are swappable behind interfaces
"""

__version__ = "1.0.0"
__author__ = "Couple Organizer Team"
