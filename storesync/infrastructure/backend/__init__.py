"""Document backend adapters (in-memory and Firestore)."""
