"""Background tasks for the Play Sessions engine."""
