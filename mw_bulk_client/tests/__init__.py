"""Tests for mw_bulk_client. None of them touch the network."""
