"""Service layer: the operations views delegate to."""
