"""ImageLingo generation progress and status reconciliation."""
