"""Telegram bot for tracking student assignment debts."""

__version__ = "1.0.0"
