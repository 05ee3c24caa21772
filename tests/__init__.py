"""FHIR Bundle Validator Test Suite.

Unit tests cover navigation, rule evaluation, error modelling and each
validation layer; integration tests run the full pipeline on whole Bundles.
"""
