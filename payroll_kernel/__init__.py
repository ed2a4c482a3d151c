"""
Payroll Kernel

Shared foundation for the payroll calculation engine:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with context propagation
- Immutable domain value objects (records, rates, elections, tables)
- Decimal-only numeric and rounding utilities
"""

__version__ = "0.1.0"
