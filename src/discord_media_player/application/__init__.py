"""
Application Layer

Orchestrates domain objects and infrastructure to play media per guild.

Structure:
- interfaces/: Port interfaces for infrastructure adapters
- services/: Source resolution, the per-guild player and its registry
"""
