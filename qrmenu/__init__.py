"""
                QR Menu Ordering System

Table-side ordering backend: customers scan a table QR code, browse the
menu and order; staff track and check out outstanding orders per table.
Runs on in-memory, embedded SQLite or hosted Supabase order storage.
"""

__version__ = "1.0.0"
