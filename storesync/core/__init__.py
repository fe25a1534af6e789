"""Core Application Layer: orchestrates reads, writes and queue replay.

Connects the domain layer with the infrastructure layer through interfaces.
Contains the DataAccessService and the collection-bound domain services.
"""
