"""Outbound delivery adapters used by job handlers."""

from .email_smtp import EmailSMTPAdapter

__all__ = ["EmailSMTPAdapter"]
