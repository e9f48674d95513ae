"""Core module for the syncit application."""

from .result import Result
from .types import APIResponse, FirestoreDocument

__all__ = ["FirestoreDocument", "APIResponse", "Result"]
