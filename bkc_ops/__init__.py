"""
Backchain Deployment Control Plane
==================================

Deploys, wires and maintains the Backchain contract suite:
- ledger: persisted role -> address mapping
- chain: web3 client, transaction submission and confirmation
- steps: ordered, individually re-runnable deployment steps
- pricing / sales: public sale maintenance operations
"""

__version__ = "1.0.0"
__author__ = "Backchain Team"
