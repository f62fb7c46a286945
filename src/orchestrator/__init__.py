"""Orchestration layer for the ENS agent.

Contains the flow and session models, the LLM-directed agent loop and its
tools, the bridge amount solver, and the commit-reveal waiter.
"""
