"""
collective_node: a collective staking pool node.

Members pool funds, the pool delegates them to one target through an
external staking service, and each member exits with a proportional
share of whatever the pool holds.
"""

__all__ = []
