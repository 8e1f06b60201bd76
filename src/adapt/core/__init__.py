"""Collaborator contracts shared by the orchestrator and host adapters."""
