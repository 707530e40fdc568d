"""studiodesk - studio management core for a photography business.

Projects move across a status board, estimates are approved into projects
and invoices, invoices track payments, and images live in a photo bank.
"""

__version__ = "0.1.0"
