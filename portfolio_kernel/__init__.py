"""
Portfolio Kernel

Persistence, domain values and shared infrastructure for the portfolio
derived-state engine:
- Frozen domain snapshots of actions, milestones, links, risks and budget lines
- SQLAlchemy entity store with per-record atomic writes
- Hash-chained audit trail of every derived-field mutation
- Deduplicating alert sink
- Structured JSON logging
"""

__version__ = "0.1.0"
