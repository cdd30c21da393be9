"""Services that implement syncpod jobs."""
