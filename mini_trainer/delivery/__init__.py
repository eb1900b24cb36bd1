"""
Mini Trainer: terminal delivery layer.

Components:
- TrainerServices / build_services: application root wiring
- trainer_cli: Typer + Rich front-end
"""

from .services import TrainerServices, build_services

__all__ = [
    "TrainerServices",
    "build_services",
]
