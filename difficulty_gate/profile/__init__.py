"""Target difficulty profiles."""
