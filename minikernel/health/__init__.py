"""Simplified FHIR observations and an in-memory aggregator."""