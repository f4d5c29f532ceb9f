"""
Procurement Kernel - approval workflow and emergency override engine.

A rule-driven approval core for maritime purchase requisitions with:
- Amount/role-based approval thresholds and budget hierarchies
- Priority-ordered workflow rules with fail-closed evaluation
- Time-boxed emergency overrides with mandatory post-approval
- Full auditability via hash chain and append-only transition log
"""

__version__ = "0.1.0"
