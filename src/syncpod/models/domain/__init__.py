"""Internal domain models not exposed to users."""
