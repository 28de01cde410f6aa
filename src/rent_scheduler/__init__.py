"""Rental back-office scheduler: monthly rent generation and rent status recalculation."""

__version__ = "0.1.0"
