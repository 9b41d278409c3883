"""Push notification dispatch through Firebase Cloud Messaging."""
