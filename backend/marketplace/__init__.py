"""Marketplace backend: listings, profiles and realtime buyer/seller chat."""
