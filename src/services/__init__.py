"""Service layer for the ENS agent.

Provides the tamper-evident state store, the flow and session
repositories, collaborator protocols (chain, chat), metrics, and the
conversation entry points.
"""
