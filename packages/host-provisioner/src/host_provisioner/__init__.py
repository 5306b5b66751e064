"""Idempotent single-host provisioner for n8n."""
