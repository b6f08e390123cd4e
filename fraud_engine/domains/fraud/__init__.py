"""Fraud detection domain: suspicion scoring, alerts, enforcement and audit history."""
