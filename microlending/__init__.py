"""
Weekly Microloan Engine

Payment posting, schedule projection and loan state bookkeeping for
microloans repaid in fixed weekly installments. All financial math uses
Decimal and every mutation is written atomically with its audit event.
"""

__version__ = "1.0.0"
