"""Connectivity tracking: online/offline state and change subscriptions."""
