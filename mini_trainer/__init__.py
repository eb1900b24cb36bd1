"""
Mini Trainer Engine.

Exercise-progress and gamification core for configurable learning trainers:
session state machine, scoring, badges, streaks and dual-tier persistence.
"""

__version__ = "1.0.0"
