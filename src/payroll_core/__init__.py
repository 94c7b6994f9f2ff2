"""Payroll core: period aggregation, scenario comparison, and run finalization."""

__version__ = "0.1.0"
