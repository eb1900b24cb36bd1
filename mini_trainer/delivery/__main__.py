"""
Entry point for running the trainer as a module.

Usage:
    python -m mini_trainer.delivery play --theme verbs
    python -m mini_trainer.delivery stats
    python -m mini_trainer.delivery --help
"""
from .trainer_cli import main

if __name__ == "__main__":
    main()
