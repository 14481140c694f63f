"""Command line interface for leaselock."""
