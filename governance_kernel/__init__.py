"""
Governance Kernel - maker-checker approval engine

An in-memory segregation-of-duties engine with:
- Conditional rule matching over typed attribute payloads
- First-match-wins rule tie-break in store order
- Single-checker and all-checkers quorum policies
- Self-approval prevention
- Append-only decision logs
"""

__version__ = "0.1.0"
